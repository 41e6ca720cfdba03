"""Tests for spent output resolution."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from ledger import TxOutput
from sync import InputResolver, TransientIOError, UnresolvedInputError

from tests.conftest import vout

pytestmark = pytest.mark.asyncio


def _raw_tx(txid, vin, outputs):
    return {'txid': txid, 'vin': vin, 'vout': outputs}


async def test_coinbase_input():
    resolved = await InputResolver().resolve_input({'coinbase': '03abcd'}, {})
    assert resolved.coinbase
    assert resolved.address is None


async def test_prevout_is_used_directly():
    vin = {'txid': 'a' * 64, 'vout': 0, 'prevout': vout("A", 250)}
    resolved = await InputResolver().resolve_input(vin, {})
    assert (resolved.address, resolved.amount) == ("A", 250)


async def test_same_block_outputs_resolve_first():
    """Test an output created earlier in the block resolves without I/O."""
    store = AsyncMock()
    fetch_raw = AsyncMock()
    raw_txs = [
        _raw_tx("t1", [{'coinbase': '00'}], [vout("A", 700, 0), vout("B", 300, 1)]),
        _raw_tx("t2", [{'txid': "t1", 'vout': 1}], [vout("C", 300, 0)]),
    ]

    inputs = await InputResolver(store).resolve_block(raw_txs, fetch_raw)

    assert inputs[0][0].coinbase
    assert (inputs[1][0].address, inputs[1][0].amount) == ("B", 300)
    store.get_transaction_outputs.assert_not_called()
    fetch_raw.assert_not_called()


async def test_store_outputs_used_before_node():
    store = AsyncMock()
    store.get_transaction_outputs.return_value = [
        TxOutput(addresses="A", amount=1),
        TxOutput(addresses="B", amount=2),
    ]
    fetch_raw = AsyncMock()

    resolved = await InputResolver(store).resolve_input({'txid': 'old', 'vout': 1}, {}, fetch_raw)

    assert (resolved.address, resolved.amount) == ("B", 2)
    store.get_transaction_outputs.assert_awaited_once_with('old')
    fetch_raw.assert_not_called()


async def test_node_fallback_with_units():
    """Test the node is asked when the store does not know the transaction."""
    store = AsyncMock()
    store.get_transaction_outputs.return_value = None
    fetch_raw = AsyncMock(return_value={'vout': [
        {'value': Decimal('1.25'), 'n': 3, 'scriptPubKey': {'addresses': ['Z']}}
    ]})

    resolved = await InputResolver(store, units=2).resolve_input({'txid': 'x', 'vout': 3}, {}, fetch_raw)

    assert (resolved.address, resolved.amount) == ("Z", 125)
    fetch_raw.assert_awaited_once_with('x')


async def test_unresolvable_input():
    fetch_raw = AsyncMock(return_value=None)

    with pytest.raises(UnresolvedInputError) as exc_info:
        await InputResolver().resolve_input({'txid': 'x', 'vout': 0}, {}, fetch_raw)

    assert exc_info.value.txid == 'x'
    assert exc_info.value.vout == 0


async def test_store_timeout_is_transient():
    async def slow(txid):
        await asyncio.sleep(1)

    store = AsyncMock()
    store.get_transaction_outputs.side_effect = slow

    with pytest.raises(TransientIOError):
        await InputResolver(store, store_timeout=0.01).resolve_input({'txid': 'x', 'vout': 0}, {})


async def test_store_connection_error_is_transient():
    store = AsyncMock()
    store.get_transaction_outputs.side_effect = ConnectionRefusedError("refused")

    with pytest.raises(TransientIOError):
        await InputResolver(store).resolve_input({'txid': 'x', 'vout': 0}, {})
