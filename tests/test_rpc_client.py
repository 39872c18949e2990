"""
Execution-layer JSON-RPC client tests
"""
from unittest.mock import MagicMock

import pytest
import requests

from fleetwatch.services.rpc_client import ExecutionRpcClient, RpcError


def rpc_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return ExecutionRpcClient(url="http://el:8545", timeout=2.0, session=session)


class TestCall:

    def test_payload_and_incrementing_ids(self, client, session):
        session.post.return_value = rpc_response({"jsonrpc": "2.0", "id": 1, "result": "0x10"})

        assert client.block_number_sync() == 16
        client.block_number_sync()

        first, second = session.post.call_args_list
        assert first.args[0] == "http://el:8545"
        assert first.kwargs["json"]["method"] == "eth_blockNumber"
        assert first.kwargs["json"]["params"] == []
        assert first.kwargs["timeout"] == 2.0
        assert (first.kwargs["json"]["id"], second.kwargs["json"]["id"]) == (1, 2)

    def test_block_request_asks_for_full_transactions(self, client, session):
        session.post.return_value = rpc_response({"result": {"number": "0xff"}})

        assert client.get_block_with_transactions_sync(255) == {"number": "0xff"}
        assert session.post.call_args.kwargs["json"]["params"] == ["0xff", True]

    def test_rpc_error_object(self, client, session):
        session.post.return_value = rpc_response({"error": {"code": -32000, "message": "header not found"}})

        with pytest.raises(RpcError) as exc_info:
            client.get_transaction_receipt_sync("0xabc")
        assert exc_info.value.method == "eth_getTransactionReceipt"

    def test_malformed_response(self, client, session):
        session.post.return_value = rpc_response(["not", "an", "object"])
        with pytest.raises(RpcError):
            client.call("eth_chainId")

    def test_null_block_number(self, client, session):
        session.post.return_value = rpc_response({"result": None})
        with pytest.raises(RpcError):
            client.block_number_sync()

    def test_transport_errors_propagate(self, client, session):
        session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(requests.ConnectionError):
            client.call("eth_blockNumber")

    def test_missing_receipt_is_none(self, client, session):
        session.post.return_value = rpc_response({"result": None})
        assert client.get_transaction_receipt_sync("0xabc") is None


class TestAsync:

    @pytest.mark.asyncio
    async def test_async_wrappers(self, client, session):
        session.post.return_value = rpc_response({"result": "0x2a"})
        assert await client.block_number() == 42

        session.post.return_value = rpc_response({"result": {"gasUsed": "0x1"}})
        assert await client.get_transaction_receipt("0xabc") == {"gasUsed": "0x1"}
        assert await client.get_block_with_transactions(1) == {"gasUsed": "0x1"}

    def test_close(self, client, session):
        client.close()
        session.close.assert_called_once()
