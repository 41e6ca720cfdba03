"""Sync module for ingesting block ranges into the address ledger.

This module provides:
- The sequential height walk with a resumable checkpoint
- Batched, idempotent commits of each block's change-sets
- Resolution of spent outputs for block inputs
"""

from .exceptions import (
    NotFound,
    PersistenceError,
    PreconditionError,
    SyncError,
    TransientIOError,
    UnresolvedInputError,
)
from .committer import BatchCommitter, CommitResult
from .orchestrator import SyncOrchestrator
from .resolver import InputResolver

__all__ = [
    'BatchCommitter',
    'CommitResult',
    'InputResolver',
    'NotFound',
    'PersistenceError',
    'PreconditionError',
    'SyncError',
    'SyncOrchestrator',
    'TransientIOError',
    'UnresolvedInputError'
]
