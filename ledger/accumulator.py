"""Per-block aggregation of normalized transactions into write change-sets."""
from typing import Dict, Iterable, List, Tuple

from .models import (
    AddressDelta,
    AddressLedgerEntry,
    BlockChangeSet,
    NormalizedTransaction,
    TransactionRecord,
    TxInput,
    TxOutput,
)


def merge_deltas(target: Dict[str, AddressDelta], address: str, delta: AddressDelta) -> None:
    """Add delta into target[address] using the pointwise sum."""
    current = target.get(address)
    target[address] = delta if current is None else current + delta


def deltas_for_record(vin: Iterable[TxInput], vout: Iterable[TxOutput]) -> Dict[str, AddressDelta]:
    """Account deltas one transaction contributes, recomputed from its stored vin/vout."""
    deltas: Dict[str, AddressDelta] = {}
    for i in vin:
        if i.addresses:
            merge_deltas(deltas, i.addresses, AddressDelta.from_amount(-i.amount))
    for o in vout:
        if o.addresses:
            merge_deltas(deltas, o.addresses, AddressDelta.from_amount(o.amount))
    return deltas


class BlockAccumulator:
    """Collects every transaction of one block into three change-sets.

    Ledger entries are keyed by (address, txid) so a transaction touching an
    address more than once yields a single net entry. Account deltas are keyed
    by address across the whole block.
    """

    def __init__(self, height: int):
        self.height = height
        self._transactions: List[TransactionRecord] = []
        self._entries: Dict[Tuple[str, str], AddressLedgerEntry] = {}
        self._deltas: Dict[str, AddressDelta] = {}

    def add(self, normalized: NormalizedTransaction) -> None:
        record = normalized.record
        self._transactions.append(record)

        for movement in normalized.movements:
            key = (movement.address, record.txid)
            entry = self._entries.get(key)
            if entry is None:
                self._entries[key] = AddressLedgerEntry(
                    address=movement.address,
                    txid=record.txid,
                    amount=movement.amount,
                    blockindex=self.height
                )
            else:
                entry.amount += movement.amount

            merge_deltas(self._deltas, movement.address, AddressDelta.from_amount(movement.amount))

    def __len__(self) -> int:
        return len(self._transactions)

    def change_set(self) -> BlockChangeSet:
        return BlockChangeSet(
            height=self.height,
            transactions=list(self._transactions),
            ledger_entries=list(self._entries.values()),
            address_deltas=dict(self._deltas)
        )
