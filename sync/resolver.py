"""Resolution of spent outputs for the inputs of a block.

Heights are ingested in ascending order, so an output spent at height h was
created either earlier in the same block or at a height already in the store.
The node is only asked as a last resort.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ledger import ResolvedInput, to_minor_units
from ledger.normalizer import output_address

from .exceptions import TransientIOError, UnresolvedInputError

logger = logging.getLogger(__name__)

RawFetcher = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]


def _find_vout(vouts: List[Dict[str, Any]], n: int) -> Optional[Dict[str, Any]]:
    for position, vout in enumerate(vouts):
        if vout.get('n', position) == n:
            return vout
    return None


class InputResolver:
    """Looks up address and amount of every input in a block."""

    def __init__(self, store=None, units: int = 8, store_timeout: float = 60.0):
        """Initialize the resolver.

        Args:
            store: LedgerStore used to read outputs of already-ingested transactions
            units: Decimal places of the chain's native asset
            store_timeout: Seconds before a store lookup is abandoned
        """
        self.store = store
        self.units = units
        self.store_timeout = store_timeout

    def _from_node_vout(self, vout: Dict[str, Any]) -> ResolvedInput:
        return ResolvedInput(
            address=output_address(vout),
            amount=to_minor_units(vout.get('value', 0), self.units)
        )

    async def _from_store(self, txid: str, n: int) -> Optional[ResolvedInput]:
        if self.store is None:
            return None
        try:
            outputs = await asyncio.wait_for(
                self.store.get_transaction_outputs(txid),
                timeout=self.store_timeout
            )
        except (asyncio.TimeoutError, OSError) as e:
            raise TransientIOError(f"Store lookup of {txid} failed: {e}") from e
        if outputs is None or n >= len(outputs):
            return None
        output = outputs[n]
        return ResolvedInput(address=output.addresses, amount=output.amount)

    async def resolve_input(
        self,
        vin: Dict[str, Any],
        created: Dict[str, List[Dict[str, Any]]],
        fetch_raw: Optional[RawFetcher] = None
    ) -> ResolvedInput:
        if 'coinbase' in vin:
            return ResolvedInput(coinbase=True)

        # Nodes with getblock verbosity 3 embed the spent output
        if vin.get('prevout'):
            return self._from_node_vout(vin['prevout'])

        txid = vin['txid']
        n = vin['vout']

        if txid in created:
            vout = _find_vout(created[txid], n)
            if vout is not None:
                return self._from_node_vout(vout)

        resolved = await self._from_store(txid, n)
        if resolved is not None:
            return resolved

        if fetch_raw is not None:
            raw = await fetch_raw(txid)
            if raw:
                vout = _find_vout(raw.get('vout', []), n)
                if vout is not None:
                    logger.debug(f"Resolved input {txid}:{n} from node")
                    return self._from_node_vout(vout)

        raise UnresolvedInputError(txid, n)

    async def resolve_block(
        self,
        raw_txs: List[Dict[str, Any]],
        fetch_raw: Optional[RawFetcher] = None
    ) -> List[List[ResolvedInput]]:
        """Resolve the inputs of every transaction of a block, in block order."""
        created: Dict[str, List[Dict[str, Any]]] = {}
        resolved: List[List[ResolvedInput]] = []
        for tx in raw_txs:
            inputs = []
            for vin in tx.get('vin', []):
                inputs.append(await self.resolve_input(vin, created, fetch_raw))
            resolved.append(inputs)
            created[tx['txid']] = tx.get('vout', [])
        return resolved
