"""Tests for transaction normalization."""

from decimal import Decimal

from ledger import (
    NormalizerOptions,
    ResolvedInput,
    TxType,
    format_amount,
    normalize_transaction,
    to_minor_units,
)
from ledger.normalizer import classify, decode_op_return, extract_op_return, output_address

from tests.conftest import make_block, make_tx, null_data, vout

HELLO_HEX = b"hello".hex()


def test_to_minor_units():
    """Test node amounts convert exactly to minor units."""
    assert to_minor_units(Decimal("1.5")) == 150000000
    assert to_minor_units(0.1) == 10000000
    assert to_minor_units("5", units=2) == 500
    assert to_minor_units(0) == 0


def test_format_amount():
    """Test minor units render in major units with 8 decimal places."""
    assert str(format_amount(500, units=2)) == "5.00000000"
    assert str(format_amount(123456789)) == "1.23456789"
    assert format_amount(-300, units=2) == Decimal("-3.00")


def test_output_address_variants():
    """Test address lookup across script formats."""
    assert output_address({'scriptPubKey': {'address': 'A'}}) == 'A'
    assert output_address({'scriptPubKey': {'addresses': ['B', 'C']}}) == 'B'
    assert output_address({'scriptPubKey': {'type': 'nonstandard'}}) is None
    assert output_address({}) is None


def test_decode_op_return():
    assert decode_op_return(f"OP_RETURN {HELLO_HEX}") == "hello"
    assert decode_op_return("OP_RETURN") is None
    assert decode_op_return("OP_RETURN zz") is None


def test_extract_op_return_last_wins():
    """Test the last null-data output provides the decoded text."""
    outputs = [null_data(b"first".hex(), 0), vout("A", 1, 1), null_data(b"second".hex(), 2)]
    assert extract_op_return(outputs) == "second"
    assert extract_op_return([vout("A", 1)]) is None


def test_classify():
    """Test transaction type classification."""
    coinbase = [ResolvedInput(coinbase=True)]
    spend = [ResolvedInput(address="A", amount=10)]

    assert classify(coinbase, [vout("A", 10)]) == TxType.COINBASE
    assert classify(spend, [vout("B", 10)]) == TxType.STANDARD
    assert classify(spend, [vout("B", 10), null_data(HELLO_HEX, 1)]) == TxType.NULLDATA
    assert classify(spend, [vout(None, 10)]) == TxType.NONSTANDARD
    assert classify([ResolvedInput(amount=10)], [vout("B", 10)]) == TxType.NONSTANDARD


def test_normalize_change_transaction():
    """Test a spend with change yields signed movements and the output total."""
    options = NormalizerOptions(units=2)
    tx = make_tx("tx", inputs=[("A", 500)], outputs=[("B", 300), ("A", 200)], units=2)
    block = make_block(100, [tx])

    normalized = normalize_transaction(block, tx, options)
    record = normalized.record

    assert record.total == 500
    assert str(format_amount(record.total, options.units)) == "5.00000000"
    assert record.blockindex == 100
    assert record.blockhash == block.hash
    assert record.timestamp == block.time
    assert record.tx_type == TxType.STANDARD
    assert [(i.addresses, i.amount) for i in record.vin] == [("A", 500)]
    assert [(o.addresses, o.amount) for o in record.vout] == [("B", 300), ("A", 200)]
    assert [(m.address, m.amount) for m in normalized.movements] == [
        ("A", -500), ("B", 300), ("A", 200)
    ]


def test_normalize_coinbase():
    """Test coinbase inputs are dropped from vin and produce no movement."""
    tx = make_tx("cb", outputs=[("M", 5000)], coinbase=True, time=42)
    normalized = normalize_transaction(make_block(1, [tx]), tx)

    assert normalized.record.vin == []
    assert normalized.record.tx_type == TxType.COINBASE
    assert normalized.record.timestamp == 42
    assert [(m.address, m.amount) for m in normalized.movements] == [("M", 5000)]


def test_normalize_skips_outputs_without_address():
    """Test outputs with no address are recorded but move nothing."""
    tx = make_tx("tx", inputs=[("A", 10)], outputs=[(None, 4), ("B", 6)])
    normalized = normalize_transaction(make_block(5, [tx]), tx)

    assert normalized.record.total == 10
    assert normalized.record.tx_type == TxType.NONSTANDARD
    assert [m.address for m in normalized.movements] == ["A", "B"]


def test_op_return_and_algo_are_optional():
    """Test OP_RETURN text and algo are only kept when enabled."""
    tx = make_tx("tx", inputs=[("A", 10)], outputs=[("B", 10)])
    tx.vout.append(null_data(HELLO_HEX, 1))
    block = make_block(7, [tx]).model_copy(update={'algo': 'x16rv2'})

    plain = normalize_transaction(block, tx).record
    assert plain.op_return is None
    assert plain.algo is None

    shown = normalize_transaction(
        block, tx, NormalizerOptions(show_op_return=True, show_algo=True)
    ).record
    assert shown.op_return == "hello"
    assert shown.algo == "x16rv2"
