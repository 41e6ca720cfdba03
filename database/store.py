"""Ledger persistence on top of an asyncpg pool.

Transaction records and address ledger entries are written with full-replace
upserts and can be resubmitted freely. Address accounts are written with
increment upserts, which double-count when replayed; the only idempotent way
to apply them is apply_block_balances, which records a per-height commit
marker in the same database transaction.
"""
import json
import logging
from typing import Dict, List, Optional

from ledger import (
    AddressDelta,
    AddressLedgerEntry,
    BlockCommit,
    SyncCheckpoint,
    TransactionRecord,
    TxInput,
    TxOutput,
    deltas_for_record,
)

logger = logging.getLogger(__name__)

UPSERT_TRANSACTION = '''
    INSERT INTO transactions (
        txid, vin, vout, total, timestamp, blockhash,
        blockindex, tx_type, op_return, algo, updated_at
    )
    VALUES ($1, $2::JSONB, $3::JSONB, $4, $5, $6, $7, $8, $9, $10, now())
    ON CONFLICT (txid) DO UPDATE SET
        vin = EXCLUDED.vin,
        vout = EXCLUDED.vout,
        total = EXCLUDED.total,
        timestamp = EXCLUDED.timestamp,
        blockhash = EXCLUDED.blockhash,
        blockindex = EXCLUDED.blockindex,
        tx_type = EXCLUDED.tx_type,
        op_return = EXCLUDED.op_return,
        algo = EXCLUDED.algo,
        updated_at = now()
'''

UPSERT_ADDRESS_TRANSACTION = '''
    INSERT INTO address_transactions (address, txid, amount, blockindex)
    VALUES ($1, $2, $3, $4)
    ON CONFLICT (address, txid) DO UPDATE SET
        amount = EXCLUDED.amount,
        blockindex = EXCLUDED.blockindex
'''

INCREMENT_ADDRESS = '''
    INSERT INTO addresses (address, sent, received, balance, updated_at)
    VALUES ($1, $2, $3, $4, now())
    ON CONFLICT (address) DO UPDATE SET
        sent = addresses.sent + EXCLUDED.sent,
        received = addresses.received + EXCLUDED.received,
        balance = addresses.balance + EXCLUDED.balance,
        updated_at = now()
'''

def _affected(status: str) -> int:
    """Row count from an asyncpg command status such as 'DELETE 3'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0

def _json_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return json.loads(value)
    return list(value)

class LedgerStore:
    """Storage collaborator for the sync engine."""

    def __init__(self, pool):
        """Initialize the store.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def upsert_transactions(self, records: List[TransactionRecord]) -> int:
        """Upsert transaction records by txid, replacing every field on conflict."""
        if not records:
            return 0
        rows = [
            (
                r.txid,
                json.dumps([i.model_dump() for i in r.vin]),
                json.dumps([o.model_dump() for o in r.vout]),
                r.total,
                r.timestamp,
                r.blockhash,
                r.blockindex,
                r.tx_type.value,
                r.op_return,
                r.algo
            )
            for r in records
        ]
        async with self.pool.acquire() as conn:
            await conn.executemany(UPSERT_TRANSACTION, rows)
        return len(rows)

    async def upsert_address_transactions(self, entries: List[AddressLedgerEntry]) -> int:
        """Upsert ledger entries by (address, txid), replacing the amount on conflict."""
        if not entries:
            return 0
        rows = [(e.address, e.txid, e.amount, e.blockindex) for e in entries]
        async with self.pool.acquire() as conn:
            await conn.executemany(UPSERT_ADDRESS_TRANSACTION, rows)
        return len(rows)

    async def _increment(self, conn, deltas: Dict[str, AddressDelta]) -> int:
        # Sorted so concurrent writers would lock rows in the same order
        rows = [
            (address, d.sent, d.received, d.balance)
            for address, d in sorted(deltas.items())
            if not d.is_zero
        ]
        if rows:
            await conn.executemany(INCREMENT_ADDRESS, rows)
        return len(rows)

    async def increment_address_accounts(self, deltas: Dict[str, AddressDelta]) -> int:
        """Add deltas to address accounts, inserting missing accounts.

        Not idempotent: calling twice with the same deltas applies them twice.
        """
        async with self.pool.acquire() as conn:
            return await self._increment(conn, deltas)

    async def apply_block_balances(self, commit: BlockCommit, deltas: Dict[str, AddressDelta]) -> bool:
        """Apply a block's account deltas at most once per (chain_id, height).

        Returns:
            True if the deltas were applied, False if the height already had a marker
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                inserted = await conn.fetchval(
                    '''
                    INSERT INTO block_commits (chain_id, height, blockhash, tx_count)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (chain_id, height) DO NOTHING
                    RETURNING height
                    ''',
                    commit.chain_id,
                    commit.height,
                    commit.blockhash,
                    commit.tx_count
                )
                if inserted is None:
                    return False
                await self._increment(conn, deltas)
                return True

    async def get_block_commit(self, chain_id: str, height: int) -> Optional[BlockCommit]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                SELECT chain_id, height, blockhash, tx_count
                FROM block_commits
                WHERE chain_id = $1 AND height = $2
                ''',
                chain_id,
                height
            )
        return BlockCommit(**dict(row)) if row else None

    async def missing_heights(self, chain_id: str, start: int, end: int) -> List[int]:
        """Heights in [start, end] without a commit marker."""
        if end < start:
            return []
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT height FROM block_commits
                WHERE chain_id = $1 AND height BETWEEN $2 AND $3
                ''',
                chain_id,
                start,
                end
            )
        present = {row['height'] for row in rows}
        return [h for h in range(start, end + 1) if h not in present]

    async def get_checkpoint(self, chain_id: str) -> Optional[SyncCheckpoint]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                'SELECT chain_id, last, txes FROM sync_checkpoints WHERE chain_id = $1',
                chain_id
            )
        return SyncCheckpoint(**dict(row)) if row else None

    async def save_checkpoint(self, checkpoint: SyncCheckpoint) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                '''
                INSERT INTO sync_checkpoints (chain_id, last, txes, updated_at)
                VALUES ($1, $2, $3, now())
                ON CONFLICT (chain_id) DO UPDATE SET
                    last = EXCLUDED.last,
                    txes = EXCLUDED.txes,
                    updated_at = now()
                ''',
                checkpoint.chain_id,
                checkpoint.last,
                checkpoint.txes
            )

    async def get_transaction_outputs(self, txid: str) -> Optional[List[TxOutput]]:
        """Stored outputs of a transaction in vout order, or None if unknown."""
        async with self.pool.acquire() as conn:
            vout = await conn.fetchval('SELECT vout FROM transactions WHERE txid = $1', txid)
        if vout is None:
            return None
        return [TxOutput(**o) for o in _json_list(vout)]

    async def _balances_applied(self, conn, height: int, blockhash: str, chain_id: Optional[str]) -> bool:
        """Whether the increments for the block holding a record were ever applied."""
        if chain_id is None:
            found = await conn.fetchval(
                'SELECT count(*) FROM block_commits WHERE height = $1 AND blockhash = $2',
                height,
                blockhash
            )
        else:
            found = await conn.fetchval(
                'SELECT count(*) FROM block_commits WHERE chain_id = $1 AND height = $2 AND blockhash = $3',
                chain_id,
                height,
                blockhash
            )
        return bool(found)

    async def remove_transaction_and_reverse_balances(
        self,
        txid: str,
        height: int,
        chain_id: Optional[str] = None
    ) -> int:
        """Delete a transaction and its ledger entries and undo its account deltas.

        Account deltas are only reversed when a commit marker for the record's
        own block hash exists, since without one the increments were never
        applied. When chain_id is given and no transactions remain at height,
        the height's commit marker is removed too so the replacement block can
        be ingested.

        Returns:
            Number of rows removed (transaction record plus ledger entries)
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    'SELECT vin, vout, blockhash FROM transactions WHERE txid = $1 AND blockindex = $2',
                    txid,
                    height
                )
                if row is None:
                    return 0

                if await self._balances_applied(conn, height, row['blockhash'], chain_id):
                    vin = [TxInput(**i) for i in _json_list(row['vin'])]
                    vout = [TxOutput(**o) for o in _json_list(row['vout'])]
                    reversed_deltas = {
                        address: -delta
                        for address, delta in deltas_for_record(vin, vout).items()
                    }
                    await self._increment(conn, reversed_deltas)
                else:
                    logger.warning(
                        f"No commit marker for {row['blockhash']} at height {height}; "
                        f"balances of {txid} were never applied, leaving accounts unchanged"
                    )

                entries = _affected(await conn.execute(
                    'DELETE FROM address_transactions WHERE txid = $1',
                    txid
                ))
                records = _affected(await conn.execute(
                    'DELETE FROM transactions WHERE txid = $1',
                    txid
                ))

                if chain_id is not None:
                    remaining = await conn.fetchval(
                        'SELECT count(*) FROM transactions WHERE blockindex = $1',
                        height
                    )
                    if not remaining:
                        await conn.execute(
                            'DELETE FROM block_commits WHERE chain_id = $1 AND height = $2',
                            chain_id,
                            height
                        )

        logger.info(f"Removed transaction {txid} at height {height}: {entries} ledger entries reversed")
        return records + entries
