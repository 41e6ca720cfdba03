"""Record types produced by block normalization.

Amounts on every model are integers in minor units (the smallest indivisible
unit of the chain's native asset). Use ``ledger.units.format_amount`` to
render them in major units.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TxType(str, Enum):
    COINBASE = "coinbase"
    STANDARD = "standard"
    NULLDATA = "nulldata"
    NONSTANDARD = "nonstandard"


class SyncMode(str, Enum):
    NORMAL = "normal"
    CHECK = "check"
    DRY_RUN = "dry-run"


class ResolvedInput(BaseModel):
    """A transaction input with its previous output already looked up."""
    address: Optional[str] = None
    amount: int = 0
    coinbase: bool = False


class BlockTransaction(BaseModel):
    txid: str
    time: Optional[int] = None
    vout: List[Dict[str, Any]] = Field(default_factory=list)
    inputs: List[ResolvedInput] = Field(default_factory=list)


class Block(BaseModel):
    hash: str
    height: int
    time: int
    algo: Optional[str] = None
    transactions: List[BlockTransaction] = Field(default_factory=list)


class TxInput(BaseModel):
    addresses: Optional[str] = None
    amount: int


class TxOutput(BaseModel):
    addresses: Optional[str] = None
    amount: int


class TransactionRecord(BaseModel):
    txid: str
    vin: List[TxInput] = Field(default_factory=list)
    vout: List[TxOutput] = Field(default_factory=list)
    total: int
    timestamp: int
    blockhash: str
    blockindex: int
    tx_type: TxType
    op_return: Optional[str] = None
    algo: Optional[str] = None


class AddressMovement(BaseModel):
    """Signed amount moved for one address by one input or output."""
    address: str
    amount: int


class NormalizedTransaction(BaseModel):
    record: TransactionRecord
    movements: List[AddressMovement] = Field(default_factory=list)


class AddressLedgerEntry(BaseModel):
    address: str
    txid: str
    amount: int
    blockindex: int


class AddressDelta(BaseModel):
    """Net change to an address account: sent, received and balance increments."""
    sent: int = 0
    received: int = 0
    balance: int = 0

    @classmethod
    def from_amount(cls, amount: int) -> 'AddressDelta':
        if amount < 0:
            return cls(sent=-amount, balance=amount)
        return cls(received=amount, balance=amount)

    def __add__(self, other: 'AddressDelta') -> 'AddressDelta':
        return AddressDelta(
            sent=self.sent + other.sent,
            received=self.received + other.received,
            balance=self.balance + other.balance
        )

    def __neg__(self) -> 'AddressDelta':
        return AddressDelta(sent=-self.sent, received=-self.received, balance=-self.balance)

    @property
    def is_zero(self) -> bool:
        return not (self.sent or self.received or self.balance)


class BlockChangeSet(BaseModel):
    height: int
    transactions: List[TransactionRecord] = Field(default_factory=list)
    ledger_entries: List[AddressLedgerEntry] = Field(default_factory=list)
    address_deltas: Dict[str, AddressDelta] = Field(default_factory=dict)

    @property
    def tx_count(self) -> int:
        return len(self.transactions)


class SyncCheckpoint(BaseModel):
    chain_id: str
    last: int = 0
    txes: int = 0


class BlockCommit(BaseModel):
    chain_id: str
    height: int
    blockhash: str
    tx_count: int = 0
