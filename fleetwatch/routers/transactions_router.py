from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Query

from ..services import runtime
from ..services.fleet_view import TransactionFilter
from ..utils.formatting import format_large_number

router = APIRouter(tags=["transactions"])


@router.get("/transactions", summary="Most recent L2 transactions, newest first.")
def list_transactions(
    filter: TransactionFilter = Query(TransactionFilter.ALL, description="all | transfer | contract | entry"),
) -> Dict[str, Any]:
    txs = runtime.view.filtered_transactions(filter)
    return {
        "filter": filter.value,
        "count": len(txs),
        "transactions": [
            {
                **tx.model_dump(mode="json", by_alias=True),
                "value_ikas": tx.value_ikas(),
                "gas_fee_ikas": tx.gas_fee_ikas(),
            }
            for tx in txs
        ],
    }


@router.get("/statistics", summary="Running L2 statistics with derived TPS and uptime.")
def statistics() -> Dict[str, Any]:
    stats = runtime.view.statistics
    return {
        **stats.model_dump(mode="json"),
        "current_block_display": f"#{format_large_number(stats.current_block)}",
        "tps": round(stats.tps(), 2),
        "uptime": stats.uptime(),
    }
