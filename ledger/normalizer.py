"""Map one block transaction to a transaction record and address movements.

Everything here is pure: inputs arrive already resolved on
``BlockTransaction.inputs`` and no function performs I/O. This is the point
where node amounts (decimal major units) become stored minor units.
"""
import binascii
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .models import (
    AddressMovement,
    Block,
    BlockTransaction,
    NormalizedTransaction,
    ResolvedInput,
    TransactionRecord,
    TxInput,
    TxOutput,
    TxType,
)
from .units import to_minor_units


class NormalizerOptions(BaseModel):
    units: int = 8
    show_op_return: bool = False
    show_algo: bool = False

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'NormalizerOptions':
        return cls(
            units=settings['coin_units'],
            show_op_return=settings['show_op_return'],
            show_algo=settings['show_algo']
        )


def output_address(vout: Dict[str, Any]) -> Optional[str]:
    """Destination address of a decoded output, if the script has one."""
    script = vout.get('scriptPubKey') or {}
    if script.get('address'):
        return script['address']
    addresses = script.get('addresses')
    if addresses:
        return addresses[0]
    return None


def is_null_data(vout: Dict[str, Any]) -> bool:
    script = vout.get('scriptPubKey') or {}
    return script.get('type') == 'nulldata' or 'OP_RETURN' in (script.get('asm') or '')


def decode_op_return(asm: str) -> Optional[str]:
    """Decode the pushed data of an OP_RETURN script as text."""
    payload = ''.join(asm.replace('OP_RETURN', '').split())
    if not payload:
        return None
    try:
        raw = binascii.unhexlify(payload)
    except (binascii.Error, ValueError):
        return None
    return raw.decode('utf-8', errors='replace')


def extract_op_return(vouts: List[Dict[str, Any]]) -> Optional[str]:
    # Last null-data output wins
    text = None
    for vout in vouts:
        if is_null_data(vout):
            asm = (vout.get('scriptPubKey') or {}).get('asm') or ''
            decoded = decode_op_return(asm)
            if decoded is not None:
                text = decoded
    return text


def classify(inputs: List[ResolvedInput], vouts: List[Dict[str, Any]]) -> TxType:
    """Derive the transaction type from the shape of its inputs and outputs."""
    if any(i.coinbase for i in inputs):
        return TxType.COINBASE
    if any(i.address is None for i in inputs):
        return TxType.NONSTANDARD
    if any(output_address(v) is None and not is_null_data(v) for v in vouts):
        return TxType.NONSTANDARD
    if any(is_null_data(v) for v in vouts):
        return TxType.NULLDATA
    return TxType.STANDARD


def normalize_transaction(
    block: Block,
    tx: BlockTransaction,
    options: Optional[NormalizerOptions] = None
) -> NormalizedTransaction:
    """Build the transaction record and the signed per-address movements of tx.

    Inputs produce debits (negative amounts) and outputs produce credits.
    Coinbase inputs and scripts without an address produce no movement.
    """
    options = options or NormalizerOptions()

    vin = [
        TxInput(addresses=i.address, amount=i.amount)
        for i in tx.inputs
        if not i.coinbase
    ]
    vout = [
        TxOutput(addresses=output_address(v), amount=to_minor_units(v.get('value', 0), options.units))
        for v in tx.vout
    ]

    record = TransactionRecord(
        txid=tx.txid,
        vin=vin,
        vout=vout,
        total=sum(o.amount for o in vout),
        timestamp=tx.time if tx.time else block.time,
        blockhash=block.hash,
        blockindex=block.height,
        tx_type=classify(tx.inputs, tx.vout),
        op_return=extract_op_return(tx.vout) if options.show_op_return else None,
        algo=block.algo if options.show_algo else None
    )

    movements = [
        AddressMovement(address=i.addresses, amount=-i.amount)
        for i in vin
        if i.addresses
    ]
    movements.extend(
        AddressMovement(address=o.addresses, amount=o.amount)
        for o in vout
        if o.addresses
    )

    return NormalizedTransaction(record=record, movements=movements)
