"""Error taxonomy for block ingestion."""
from typing import List, Optional


class SyncError(Exception):
    """Base exception for sync operations."""
    pass


class NotFound(SyncError):
    """Raised when a block hash or block is absent on the node."""
    pass


class UnresolvedInputError(NotFound):
    """Raised when a spent output cannot be found in the block, the store or the node."""

    def __init__(self, txid: str, vout: int):
        self.txid = txid
        self.vout = vout
        super().__init__(f"Cannot resolve input {txid}:{vout}")


class TransientIOError(SyncError):
    """Raised when the node or the store timed out or could not be reached."""
    pass


class PersistenceError(SyncError):
    """Raised when one or more batch writes of a block failed.

    Batches that succeeded are not rolled back.
    """

    def __init__(self, height: int, failed: List[str], result=None, cause: Optional[BaseException] = None):
        self.height = height
        self.failed = failed
        self.result = result
        self.cause = cause
        super().__init__(f"Height {height}: batch write failed for {', '.join(failed)}: {cause}")


class PreconditionError(SyncError):
    """Raised when heights a range depends on have not been ingested."""

    def __init__(self, chain_id: str, start: int, missing: List[int]):
        self.chain_id = chain_id
        self.start = start
        self.missing = missing
        shown = ', '.join(str(h) for h in missing[:10])
        super().__init__(
            f"Cannot ingest {chain_id} from height {start}: "
            f"earlier heights not ingested ({shown}{'...' if len(missing) > 10 else ''})"
        )
