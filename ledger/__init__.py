"""Ledger module: pure transforms from node blocks to storable records.

This module provides:
- Record models for transactions, address ledger entries and account deltas
- The transaction normalizer (no I/O)
- The per-block accumulator building write change-sets
- Minor-unit conversion helpers
"""

from .models import (
    AddressDelta,
    AddressLedgerEntry,
    AddressMovement,
    Block,
    BlockChangeSet,
    BlockCommit,
    BlockTransaction,
    NormalizedTransaction,
    ResolvedInput,
    SyncCheckpoint,
    SyncMode,
    TransactionRecord,
    TxInput,
    TxOutput,
    TxType,
)
from .normalizer import NormalizerOptions, normalize_transaction
from .accumulator import BlockAccumulator, deltas_for_record
from .units import format_amount, to_minor_units

__all__ = [
    'AddressDelta',
    'AddressLedgerEntry',
    'AddressMovement',
    'Block',
    'BlockAccumulator',
    'BlockChangeSet',
    'BlockCommit',
    'BlockTransaction',
    'NormalizedTransaction',
    'NormalizerOptions',
    'ResolvedInput',
    'SyncCheckpoint',
    'SyncMode',
    'TransactionRecord',
    'TxInput',
    'TxOutput',
    'TxType',
    'deltas_for_record',
    'format_amount',
    'normalize_transaction',
    'to_minor_units'
]
