"""Flushes one block's change-sets to the store."""
import asyncio
import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from ledger import BlockChangeSet, BlockCommit

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)


class CommitResult(BaseModel):
    height: int
    transactions: int = 0
    ledger_entries: int = 0
    accounts: int = 0
    balances_applied: bool = False
    failed: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class BatchCommitter:
    """Writes the three change-sets of a block.

    Transaction records and ledger entries are keyed upserts and are sent
    concurrently. Account increments are sent afterwards, only once both keyed
    batches are durable, through the store's per-height marker so that a
    height is never incremented twice.
    """

    def __init__(self, store, store_timeout: float = 60.0):
        """Initialize the committer.

        Args:
            store: LedgerStore to write to
            store_timeout: Seconds before a single batch is abandoned
        """
        self.store = store
        self.store_timeout = store_timeout

    async def _timed(self, coro):
        return await asyncio.wait_for(coro, timeout=self.store_timeout)

    async def commit(
        self,
        chain_id: str,
        block_hash: str,
        change_set: BlockChangeSet,
        apply_balances: bool = True
    ) -> CommitResult:
        """Commit a block's change-sets.

        Args:
            chain_id: Chain the block belongs to
            block_hash: Hash of the block, recorded on the commit marker
            change_set: Output of BlockAccumulator for the block
            apply_balances: False when the caller knows the height's increments are already applied

        Returns:
            CommitResult describing what was written

        Raises:
            PersistenceError: One or more batches failed; the others stay written
        """
        result = CommitResult(height=change_set.height)
        first_error: Optional[BaseException] = None

        outcomes = await asyncio.gather(
            self._timed(self.store.upsert_transactions(change_set.transactions)),
            self._timed(self.store.upsert_address_transactions(change_set.ledger_entries)),
            return_exceptions=True
        )

        for name, outcome in zip(('transactions', 'address_transactions'), outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Height {change_set.height}: {name} batch failed: {outcome!r}")
                result.failed.append(name)
                first_error = first_error or outcome
            elif name == 'transactions':
                result.transactions = outcome
            else:
                result.ledger_entries = outcome

        if result.failed:
            # Increments wait for a re-run that lands the keyed batches first
            logger.warning(f"Height {change_set.height}: address balances deferred")
        elif apply_balances:
            marker = BlockCommit(
                chain_id=chain_id,
                height=change_set.height,
                blockhash=block_hash,
                tx_count=change_set.tx_count
            )
            try:
                result.balances_applied = await self._timed(
                    self.store.apply_block_balances(marker, change_set.address_deltas)
                )
                if result.balances_applied:
                    result.accounts = len(change_set.address_deltas)
                else:
                    logger.info(f"Height {change_set.height}: balances already applied, skipped")
            except Exception as e:
                logger.error(f"Height {change_set.height}: addresses batch failed: {e!r}")
                result.failed.append('addresses')
                first_error = e

        if result.failed:
            raise PersistenceError(change_set.height, result.failed, result=result, cause=first_error)

        return result
