"""Schema v1 - Initial ledger schema.

This version includes tables for:
- Transaction records keyed by txid
- Per-address ledger entries keyed by (address, txid)
- Running address accounts
- Sync checkpoints per chain
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'transactions',
            'columns': [
                {'name': 'txid', 'type': 'STRING', 'primary_key': True},
                {'name': 'vin', 'type': 'JSONB', 'nullable': False, 'default': "'[]'"},
                {'name': 'vout', 'type': 'JSONB', 'nullable': False, 'default': "'[]'"},
                {'name': 'total', 'type': 'INT8', 'nullable': False, 'default': '0'},  # minor units
                {'name': 'timestamp', 'type': 'INT8', 'nullable': False},
                {'name': 'blockhash', 'type': 'STRING', 'nullable': False},
                {'name': 'blockindex', 'type': 'INT8', 'nullable': False},
                {'name': 'tx_type', 'type': 'STRING', 'nullable': False},
                {'name': 'op_return', 'type': 'STRING'},
                {'name': 'algo', 'type': 'STRING'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_transactions_blockindex', 'columns': ['blockindex']},
                {'name': 'idx_transactions_timestamp', 'columns': ['timestamp']}
            ]
        },
        {
            'name': 'address_transactions',
            'columns': [
                {'name': 'address', 'type': 'STRING', 'nullable': False},
                {'name': 'txid', 'type': 'STRING', 'nullable': False},
                {'name': 'amount', 'type': 'INT8', 'nullable': False},  # signed, minor units
                {'name': 'blockindex', 'type': 'INT8', 'nullable': False}
            ],
            'primary_key': ['address', 'txid'],
            'indexes': [
                {'name': 'idx_address_transactions_txid', 'columns': ['txid']},
                {'name': 'idx_address_transactions_history', 'columns': ['address', 'blockindex']}
            ]
        },
        {
            'name': 'addresses',
            'columns': [
                {'name': 'address', 'type': 'STRING', 'primary_key': True},
                {'name': 'sent', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'received', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'balance', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_addresses_balance', 'columns': ['balance']}
            ]
        },
        {
            'name': 'sync_checkpoints',
            'columns': [
                {'name': 'chain_id', 'type': 'STRING', 'primary_key': True},
                {'name': 'last', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'txes', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ]
        }
    ]
}
