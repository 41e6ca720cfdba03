"""Shared fixtures: an in-memory ledger store, a scripted node and block builders."""

from decimal import Decimal
from typing import Callable, Dict, List, Optional, Set, Tuple

import pytest
import pytest_asyncio

from ledger import (
    AddressDelta,
    AddressLedgerEntry,
    Block,
    BlockCommit,
    BlockTransaction,
    ResolvedInput,
    SyncCheckpoint,
    TransactionRecord,
    TxOutput,
    deltas_for_record,
)


def vout(address: Optional[str], minor: int, n: int = 0, units: int = 8) -> dict:
    """A decoded node output paying minor units to address."""
    script = {'type': 'pubkeyhash', 'asm': 'OP_DUP OP_HASH160 00 OP_EQUALVERIFY OP_CHECKSIG'}
    if address:
        script['address'] = address
    else:
        script['type'] = 'nonstandard'
    return {'value': Decimal(minor) / (Decimal(10) ** units), 'n': n, 'scriptPubKey': script}


def null_data(hex_payload: str, n: int = 0) -> dict:
    return {
        'value': Decimal('0'),
        'n': n,
        'scriptPubKey': {'type': 'nulldata', 'asm': f'OP_RETURN {hex_payload}'}
    }


def make_tx(
    txid: str,
    inputs: List[Tuple[Optional[str], int]] = (),
    outputs: List[Tuple[Optional[str], int]] = (),
    coinbase: bool = False,
    units: int = 8,
    time: Optional[int] = None
) -> BlockTransaction:
    resolved = [ResolvedInput(coinbase=True)] if coinbase else []
    resolved.extend(ResolvedInput(address=a, amount=amt) for a, amt in inputs)
    return BlockTransaction(
        txid=txid,
        time=time,
        vout=[vout(a, amt, n, units) for n, (a, amt) in enumerate(outputs)],
        inputs=resolved
    )


def make_block(height: int, transactions: List[BlockTransaction], time: int = 1700000000) -> Block:
    return Block(hash=f"{height:064x}", height=height, time=time + height, transactions=transactions)


def chain_block(height: int) -> Block:
    """Deterministic block: a coinbase to M and a spend from M to a rotating payee."""
    payee = f"P{height % 3}"
    return make_block(height, [
        make_tx(f"cb{height}", outputs=[("M", 5000)], coinbase=True),
        make_tx(f"tx{height}", inputs=[("M", 1000)], outputs=[(payee, 600), ("M", 400)])
    ])


class MemoryLedgerStore:
    """In-memory stand-in for database.store.LedgerStore with the same semantics."""

    def __init__(self):
        self.transactions: Dict[str, TransactionRecord] = {}
        self.entries: Dict[Tuple[str, str], AddressLedgerEntry] = {}
        self.accounts: Dict[str, AddressDelta] = {}
        self.commits: Dict[Tuple[str, int], BlockCommit] = {}
        self.checkpoints: Dict[str, SyncCheckpoint] = {}
        self.fail: Set[str] = set()
        self.calls: List[str] = []

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise ConnectionError(f"{name} unavailable")

    async def upsert_transactions(self, records):
        self._maybe_fail('transactions')
        for r in records:
            self.transactions[r.txid] = r.model_copy(deep=True)
        return len(records)

    async def upsert_address_transactions(self, entries):
        self._maybe_fail('address_transactions')
        for e in entries:
            self.entries[(e.address, e.txid)] = e.model_copy(deep=True)
        return len(entries)

    def _increment(self, deltas):
        for address, delta in deltas.items():
            if delta.is_zero:
                continue
            current = self.accounts.get(address, AddressDelta())
            self.accounts[address] = current + delta
        return len(deltas)

    async def increment_address_accounts(self, deltas):
        self._maybe_fail('addresses')
        return self._increment(deltas)

    async def apply_block_balances(self, commit, deltas):
        self._maybe_fail('addresses')
        key = (commit.chain_id, commit.height)
        if key in self.commits:
            return False
        self.commits[key] = commit.model_copy()
        self._increment(deltas)
        return True

    async def get_block_commit(self, chain_id, height):
        return self.commits.get((chain_id, height))

    async def missing_heights(self, chain_id, start, end):
        return [h for h in range(start, end + 1) if (chain_id, h) not in self.commits]

    async def get_checkpoint(self, chain_id):
        return self.checkpoints.get(chain_id)

    async def save_checkpoint(self, checkpoint):
        self._maybe_fail('checkpoint')
        self.checkpoints[checkpoint.chain_id] = checkpoint.model_copy()

    async def get_transaction_outputs(self, txid):
        record = self.transactions.get(txid)
        return [TxOutput(**o.model_dump()) for o in record.vout] if record else None

    async def remove_transaction_and_reverse_balances(self, txid, height, chain_id=None):
        record = self.transactions.get(txid)
        if record is None or record.blockindex != height:
            return 0
        applied = any(
            key[1] == height and (chain_id is None or key[0] == chain_id) and commit.blockhash == record.blockhash
            for key, commit in self.commits.items()
        )
        if applied:
            self._increment({a: -d for a, d in deltas_for_record(record.vin, record.vout).items()})
        removed = [key for key in self.entries if key[1] == txid]
        for key in removed:
            del self.entries[key]
        del self.transactions[txid]
        if chain_id is not None and not any(r.blockindex == height for r in self.transactions.values()):
            self.commits.pop((chain_id, height), None)
        return 1 + len(removed)

    def balance_matches_ledger(self, address: str) -> bool:
        ledger_sum = sum(e.amount for (a, _), e in self.entries.items() if a == address)
        return self.accounts.get(address, AddressDelta()).balance == ledger_sum

    def snapshot(self):
        return (
            {k: v.model_dump() for k, v in self.transactions.items()},
            {k: v.model_dump() for k, v in self.entries.items()},
            {k: v.model_dump() for k, v in self.accounts.items()},
        )


class ScriptedNode:
    """Node collaborator serving prepared blocks by height."""

    def __init__(self, blocks: Dict[int, Block]):
        self.blocks = blocks
        self.hash_errors: Dict[int, Exception] = {}
        self.on_fetch: Optional[Callable[[int], None]] = None
        self.fetched: List[int] = []

    async def resolve_height_to_hash(self, height):
        if height in self.hash_errors:
            raise self.hash_errors[height]
        block = self.blocks.get(height)
        return block.hash if block else None

    async def fetch_block_with_transactions(self, block_hash):
        for height, block in self.blocks.items():
            if block.hash == block_hash:
                self.fetched.append(height)
                if self.on_fetch:
                    self.on_fetch(height)
                return block
        return None


@pytest.fixture
def store() -> MemoryLedgerStore:
    return MemoryLedgerStore()


@pytest.fixture
def chain_blocks() -> Dict[int, Block]:
    return {h: chain_block(h) for h in range(100, 201)}


@pytest_asyncio.fixture
async def node(chain_blocks) -> ScriptedNode:
    return ScriptedNode(chain_blocks)
