# Metric normalization map
# Maps execution-layer (reth) Prometheus metric names to RethMetrics fields

METRIC_MAP = {
    # chain
    "reth_payloads_resolved_block": "blocks_processed",
    "reth_blockchain_tree_canonical_chain_height": "canonical_chain_height",
    # network
    "reth_network_connected_peers": "peers_connected",
    "reth_network_tracked_peers": "peers_tracked",
    # transaction pool
    "reth_transaction_pool_pending_pool_transactions": "transactions_pending",
    "reth_transaction_pool_blob_pool_transactions": "transactions_blob",
    "reth_transaction_pool_inserted_transactions": "transactions_inserted",
    # performance
    "reth_process_resident_memory_bytes": "memory_bytes",
    "reth_sync_execution_gas_processed_total": "gas_processed",
    "reth_payloads_initiated_jobs": "payloads_initiated",
    # blockchain tree
    "reth_blockchain_tree_in_mem_state_num_blocks": "in_mem_blocks",
    "reth_blockchain_tree_reorgs": "reorgs_total",
    "reth_blockchain_tree_latest_reorg_depth": "reorg_depth",
}

# Same metric name, label selects the field: (metric, label, label value) -> field
LABELLED_METRIC_MAP = {
    ("reth_static_files_segment_entries", "segment", "headers"): "headers_synced",
    ("reth_static_files_segment_entries", "segment", "transactions"): "transactions_total",
    ("reth_sync_checkpoint", "stage", "Finish"): "sync_checkpoint",
}
