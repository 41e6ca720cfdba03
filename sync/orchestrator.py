"""Sequential height walk driving fetch, normalization and commit per block."""
import asyncio
import logging
from typing import Optional

from ledger import (
    Block,
    BlockAccumulator,
    BlockChangeSet,
    NormalizerOptions,
    SyncCheckpoint,
    SyncMode,
    normalize_transaction,
)

from .committer import BatchCommitter
from .exceptions import NotFound, PersistenceError, PreconditionError, TransientIOError

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Walks a height range one block at a time and keeps the sync checkpoint.

    Each height goes through fetch-hash, fetch-block, process and commit. A
    height that fails at any step is logged and skipped; the walk moves on but
    the checkpoint stops at the last height before the first failure, so a
    later run resumes there and heals it. Address increments are guarded by
    the per-height commit marker, so re-running a height never double-counts
    balances.
    """

    def __init__(
        self,
        node,
        store=None,
        options: Optional[NormalizerOptions] = None,
        store_timeout: float = 60.0,
        lookback: int = 1
    ):
        """Initialize the orchestrator.

        Args:
            node: Block source exposing resolve_height_to_hash and fetch_block_with_transactions
            store: LedgerStore; may be None for dry runs
            options: Normalizer options (coin units, OP_RETURN and algo decoding)
            store_timeout: Seconds before a single store call is abandoned
            lookback: Heights before a range start that must already be ingested (0 disables)
        """
        self.node = node
        self.store = store
        self.options = options or NormalizerOptions()
        self.store_timeout = store_timeout
        self.lookback = lookback
        self.committer = BatchCommitter(store, store_timeout)
        self._stop = asyncio.Event()

    def stop(self) -> None:
        """Ask the walk to end after the block currently being committed."""
        logger.info("Stop requested, finishing current block...")
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def process_block(self, block: Block) -> BlockChangeSet:
        """Normalize every transaction of a block and build its change-sets."""
        accumulator = BlockAccumulator(block.height)
        for tx in block.transactions:
            accumulator.add(normalize_transaction(block, tx, self.options))
        return accumulator.change_set()

    async def ensure_predecessors(self, chain_id: str, start_height: int) -> None:
        """Check the heights a walk starting at start_height depends on are ingested.

        Raises:
            PreconditionError: Some heights within the lookback have no commit marker
        """
        if self.lookback <= 0 or start_height <= 1:
            return
        first = max(1, start_height - self.lookback)
        missing = await asyncio.wait_for(
            self.store.missing_heights(chain_id, first, start_height - 1),
            timeout=self.store_timeout
        )
        if missing:
            raise PreconditionError(chain_id, start_height, missing)

    async def _resolve_hash(self, height: int) -> str:
        block_hash = await self.node.resolve_height_to_hash(height)
        if not block_hash:
            raise NotFound(f"No block hash for height {height}")
        return block_hash

    async def _fetch(self, height: int, block_hash: str, mode: SyncMode) -> Block:
        if mode is SyncMode.CHECK:
            logger.info(f"Checking block {height} ({block_hash})...")

        block = await self.node.fetch_block_with_transactions(block_hash)
        if block is None:
            raise NotFound(f"Block not found: {block_hash}")
        return block

    async def _commit(self, chain_id: str, block: Block, change_set: BlockChangeSet) -> bool:
        """Commit a block, returning False when its balances cannot be trusted."""
        apply_balances = True
        consistent = True
        marker = await asyncio.wait_for(
            self.store.get_block_commit(chain_id, block.height),
            timeout=self.store_timeout
        )
        if marker is not None:
            apply_balances = False
            if marker.blockhash != block.hash:
                consistent = False
                logger.error(
                    f"Height {block.height} was committed as {marker.blockhash} but the node "
                    f"now reports {block.hash}; run reorg cleanup before re-ingesting"
                )
            else:
                logger.debug(f"Height {block.height} already committed, rewriting records only")

        await self.committer.commit(chain_id, block.hash, change_set, apply_balances=apply_balances)
        return consistent

    async def ingest_range(
        self,
        chain_id: str,
        start_height: int,
        end_height: int,
        running_tx_count: int = 0,
        mode: SyncMode = SyncMode.NORMAL
    ) -> int:
        """Ingest heights start_height..end_height in ascending order.

        The checkpoint only moves across an unbroken run of committed heights.
        After the first height that fails, later heights are still ingested but
        the checkpoint stays put, so the next run starts at the failed height
        and heals it.

        Args:
            chain_id: Chain identifier keying the checkpoint and commit markers
            start_height: First height to ingest (clamped to 1)
            end_height: Last height to ingest, inclusive
            running_tx_count: Transaction count carried over from earlier walks
            mode: normal persists the checkpoint, check never does, dry-run writes nothing

        Returns:
            The running transaction count after this walk

        Raises:
            PreconditionError: Heights before start_height have not been ingested
        """
        mode = SyncMode(mode)
        start_height = max(start_height, 1)
        txes = running_tx_count
        checkpoint: Optional[SyncCheckpoint] = None
        first_gap: Optional[int] = None
        previous_failed: Optional[int] = None

        if mode is not SyncMode.DRY_RUN:
            await self.ensure_predecessors(chain_id, start_height)

        logger.info(f"Syncing {chain_id} heights {start_height}..{end_height} ({mode.value})")

        for height in range(start_height, end_height + 1):
            if self._stop.is_set():
                logger.info(f"Stopped before height {height}")
                break

            if previous_failed is not None:
                logger.warning(
                    f"Height {height}: height {previous_failed} was not ingested, "
                    "inputs spending its outputs may not resolve"
                )
                previous_failed = None

            done = False
            try:
                block_hash = await self._resolve_hash(height)
                block = await self._fetch(height, block_hash, mode)
                change_set = self.process_block(block)
                txes += change_set.tx_count

                if mode is SyncMode.DRY_RUN:
                    done = True
                else:
                    done = await self._commit(chain_id, block, change_set)

                logger.info('%s: %s txs processed', height, change_set.tx_count)

            except NotFound as e:
                logger.warning(f"Height {height} skipped: {e}")
            except TransientIOError as e:
                logger.warning(f"Height {height} skipped, node or store unavailable: {e}")
            except PersistenceError as e:
                logger.error(f"Height {height} partially ingested: {e}")
            except asyncio.TimeoutError:
                logger.error(f"Height {height} skipped, store call timed out")
            except Exception as e:
                logger.error(f"Error processing height {height}: {e}")

            if not done:
                previous_failed = height
                first_gap = height if first_gap is None else first_gap
            elif first_gap is None:
                checkpoint = SyncCheckpoint(chain_id=chain_id, last=height, txes=txes)

        await self._finalize(mode, checkpoint, first_gap, txes)
        return txes

    async def _finalize(
        self,
        mode: SyncMode,
        checkpoint: Optional[SyncCheckpoint],
        first_gap: Optional[int],
        txes: int
    ) -> None:
        if first_gap is not None:
            logger.warning(f"Height {first_gap} was not ingested; the next run resumes from it")
        if mode is not SyncMode.NORMAL:
            logger.info(f"{mode.value} walk finished, checkpoint left unchanged ({txes} txs)")
            return
        if checkpoint is None:
            logger.info("No height fully ingested, checkpoint left unchanged")
            return

        try:
            await asyncio.wait_for(self.store.save_checkpoint(checkpoint), timeout=self.store_timeout)
            logger.info(f"Checkpoint {checkpoint.chain_id}: last={checkpoint.last} txes={checkpoint.txes}")
        except Exception as e:
            logger.error(f"Failed to save checkpoint for {checkpoint.chain_id}: {e}")
