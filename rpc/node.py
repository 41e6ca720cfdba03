"""Block source backed by the node's JSON-RPC interface.

RPC calls are blocking, so each one runs in a worker thread under a timeout.
A stalled node therefore surfaces as TransientIOError instead of wedging the
sync loop.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from ledger import Block, BlockTransaction
from sync.exceptions import TransientIOError
from sync.resolver import InputResolver

from . import NodeConnectionError, NodeError, NodeRPC

logger = logging.getLogger(__name__)


class NodeBlockSource:
    """Node collaborator for the sync orchestrator."""

    def __init__(
        self,
        client: NodeRPC,
        resolver: InputResolver,
        timeout: float = 30.0,
        algo_key: Optional[str] = 'pow_algo'
    ):
        """Initialize the block source.

        Args:
            client: RPC client for the node
            resolver: Resolver used to look up spent outputs
            timeout: Seconds before a single RPC call is abandoned
            algo_key: Block field carrying the mining algorithm, if any
        """
        self.client = client
        self.resolver = resolver
        self.timeout = timeout
        self.algo_key = algo_key

    async def _call(self, method: str, *args) -> Any:
        """Run an RPC method off the event loop.

        Returns:
            The RPC result, or None when the node reports the object does not exist

        Raises:
            TransientIOError: The call timed out or the node was unreachable
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(getattr(self.client, method), *args),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise TransientIOError(f"{method} timed out after {self.timeout} seconds") from e
        except NodeConnectionError as e:
            raise TransientIOError(str(e)) from e
        except NodeError as e:
            if e.is_not_found:
                logger.debug(f"{method}{args} not found: {e}")
                return None
            raise

    async def resolve_height_to_hash(self, height: int) -> Optional[str]:
        return await self._call('getblockhash', height)

    async def get_raw_transaction(self, txid: str) -> Optional[Dict[str, Any]]:
        return await self._call('getrawtransaction', txid, True)

    async def get_tip_height(self) -> int:
        return await self._call('getblockcount')

    async def fetch_block_with_transactions(self, block_hash: str) -> Optional[Block]:
        """Fetch a block with decoded transactions and resolved inputs."""
        raw = await self._call('getblock', block_hash, 2)
        if not raw:
            return None

        raw_txs = raw.get('tx', [])
        inputs = await self.resolver.resolve_block(raw_txs, self.get_raw_transaction)

        algo = raw.get(self.algo_key) if self.algo_key else None
        return Block(
            hash=raw['hash'],
            height=raw['height'],
            time=raw['time'],
            algo=str(algo) if algo is not None else None,
            transactions=[
                BlockTransaction(
                    txid=tx['txid'],
                    time=tx.get('time'),
                    vout=tx.get('vout', []),
                    inputs=tx_inputs
                )
                for tx, tx_inputs in zip(raw_txs, inputs)
            ]
        )
