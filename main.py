import argparse
import asyncio
import signal
import logging
from typing import Optional

from config import get_settings
from database import init_db, get_store, close as db_close
from ledger import NormalizerOptions, SyncCheckpoint, SyncMode
from rpc import get_client
from rpc.node import NodeBlockSource
from sync import InputResolver, PreconditionError, SyncOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

orchestrator: Optional[SyncOrchestrator] = None

def handle_shutdown(signum, frame):
    """Handle shutdown signals gracefully."""
    logger.info("Shutdown signal received. Finishing current block...")
    if orchestrator:
        orchestrator.stop()

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest blocks into the address ledger")
    parser.add_argument('--start', type=int, help="First height (default: checkpoint + 1)")
    parser.add_argument('--end', type=int, help="Last height (default: node tip)")
    parser.add_argument(
        '--mode',
        choices=[m.value for m in SyncMode],
        default=SyncMode.NORMAL.value,
        help="normal persists the checkpoint, check never does, dry-run writes nothing"
    )
    parser.add_argument('--remove-tx', metavar='TXID', help="Remove a transaction and reverse its balances")
    parser.add_argument('--height', type=int, help="Height of the transaction given to --remove-tx")
    args = parser.parse_args(argv)
    if args.remove_tx and args.height is None:
        parser.error("--remove-tx requires --height")
    return args

async def main(argv=None) -> None:
    """Main application entry point."""
    global orchestrator

    args = parse_args(argv)
    settings = get_settings()
    chain_id = settings['chain_id']

    try:
        logger.info("Initializing database...")
        await init_db()
        store = await get_store()

        if args.remove_tx:
            removed = await store.remove_transaction_and_reverse_balances(args.remove_tx, args.height, chain_id)
            logger.info(f"Removed {removed} rows for {args.remove_tx}")
            return

        resolver = InputResolver(store, units=settings['coin_units'], store_timeout=settings['store_timeout'])
        node = NodeBlockSource(
            get_client(),
            resolver,
            timeout=settings['rpc_timeout'],
            algo_key=settings['algo_key']
        )
        orchestrator = SyncOrchestrator(
            node,
            store,
            options=NormalizerOptions.from_settings(settings),
            store_timeout=settings['store_timeout'],
            lookback=settings['sync_lookback']
        )

        # Register shutdown handlers
        signal.signal(signal.SIGINT, handle_shutdown)
        signal.signal(signal.SIGTERM, handle_shutdown)

        checkpoint = await store.get_checkpoint(chain_id) or SyncCheckpoint(chain_id=chain_id)
        start = args.start if args.start is not None else checkpoint.last + 1
        end = args.end if args.end is not None else await node.get_tip_height()
        if end is None:
            logger.error("Node did not report a tip height; pass --end or check the node is synced")
            raise SystemExit(1)

        if start > end:
            logger.info(f"{chain_id} is synced to height {checkpoint.last}, nothing to do")
            return

        txes = await orchestrator.ingest_range(chain_id, start, end, checkpoint.txes, SyncMode(args.mode))
        logger.info(f"Sync finished: {txes} transactions")

    except PreconditionError as e:
        logger.error(str(e))
        raise SystemExit(1)
    finally:
        await db_close()

def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass

if __name__ == "__main__":
    run()
