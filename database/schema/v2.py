"""Schema v2 - Per-height commit markers.

A block_commits row is written in the same transaction as the address
account increments for that height, so increments are applied at most once
per height.
"""
from .v1 import schema as v1_schema

schema = {
    'version': 2,
    'tables': v1_schema['tables'] + [
        {
            'name': 'block_commits',
            'columns': [
                {'name': 'chain_id', 'type': 'STRING', 'nullable': False},
                {'name': 'height', 'type': 'INT8', 'nullable': False},
                {'name': 'blockhash', 'type': 'STRING', 'nullable': False},
                {'name': 'tx_count', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'committed_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['chain_id', 'height'],
            'indexes': [
                {'name': 'idx_block_commits_blockhash', 'columns': ['blockhash']}
            ]
        }
    ],
    'migrations': [
        '''
        CREATE TABLE IF NOT EXISTS block_commits (
            chain_id STRING NOT NULL,
            height INT8 NOT NULL,
            blockhash STRING NOT NULL,
            tx_count INT8 NOT NULL DEFAULT 0,
            committed_at TIMESTAMP NOT NULL DEFAULT now(),
            PRIMARY KEY (chain_id, height)
        )
        ''',
        '''
        CREATE INDEX IF NOT EXISTS idx_block_commits_blockhash
        ON block_commits(blockhash)
        '''
    ]
}
