"""Position and transaction persistence boundary with a SQLite implementation."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterator, List, Optional, Protocol

from ..monitoring.logger import get_logger
from .schemas import (
    Position,
    PositionDelta,
    PositionStatus,
    TransactionEntry,
    TransactionType,
    utcnow,
)


class PositionLedger(Protocol):
    """Narrow CRUD interface the orchestrator records outcomes through."""

    def record_position(self, delta: PositionDelta) -> Position:
        """Create a position or merge the delta into the open one for owner+strategy+chain."""

    def record_transaction(self, entry: TransactionEntry) -> None:
        ...

    def close_position(self, position_id: int) -> None:
        ...

    def list_positions(self, owner: str, *, include_closed: bool = False) -> List[Position]:
        ...


CREATE_POSITION_TABLE = """
CREATE TABLE IF NOT EXISTS positions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT NOT NULL,
    strategy_id TEXT NOT NULL,
    chain_id INTEGER NOT NULL,
    token_name TEXT NOT NULL,
    amount TEXT NOT NULL,
    entry_price TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    status TEXT NOT NULL
);
"""

CREATE_TRANSACTION_TABLE = """
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT NOT NULL,
    chain_id INTEGER NOT NULL,
    strategy_id TEXT NOT NULL,
    hash TEXT NOT NULL,
    amount TEXT NOT NULL,
    token_name TEXT NOT NULL,
    type TEXT NOT NULL,
    recorded_at TEXT NOT NULL
);
"""

CREATE_POSITION_INDEX = """
CREATE INDEX IF NOT EXISTS idx_positions_owner_strategy
ON positions (owner, strategy_id, chain_id, status);
"""

_POSITION_COLUMNS = (
    "id, owner, strategy_id, chain_id, token_name, amount, entry_price, created_at, updated_at, status"
)


class SQLiteLedger:
    """SQLite-backed ledger with create-or-merge position semantics."""

    def __init__(self, database_path: Path) -> None:
        self._database_path = Path(database_path)
        self._logger = get_logger(__name__)
        self._initialize()

    def _initialize(self) -> None:
        self._database_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as con:
            con.execute(CREATE_POSITION_TABLE)
            con.execute(CREATE_TRANSACTION_TABLE)
            con.execute(CREATE_POSITION_INDEX)
            con.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        con = sqlite3.connect(self._database_path)
        try:
            yield con
        finally:
            con.close()

    def record_position(self, delta: PositionDelta) -> Position:
        owner = delta.owner.lower()
        now = utcnow().isoformat()
        with self._connect() as con:
            row = con.execute(
                f"""
                SELECT {_POSITION_COLUMNS} FROM positions
                WHERE owner = ? AND strategy_id = ? AND chain_id = ? AND status = ?
                ORDER BY id LIMIT 1
                """,
                (owner, delta.strategy_id, delta.chain_id, PositionStatus.ACTIVE.value),
            ).fetchone()
            if row is not None:
                merged = Decimal(row[5]) + Decimal(delta.amount)
                con.execute(
                    "UPDATE positions SET amount = ?, updated_at = ? WHERE id = ?",
                    (str(merged), now, row[0]),
                )
                position_id = int(row[0])
                self._logger.info(
                    "Merged deposit into position %s for %s", position_id, delta.strategy_id
                )
            else:
                cur = con.execute(
                    """
                    INSERT INTO positions (
                        owner, strategy_id, chain_id, token_name, amount, entry_price,
                        created_at, updated_at, status
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        owner,
                        delta.strategy_id,
                        delta.chain_id,
                        delta.token_name,
                        str(Decimal(delta.amount)),
                        "1",
                        now,
                        now,
                        PositionStatus.ACTIVE.value,
                    ),
                )
                position_id = int(cur.lastrowid)
                self._logger.info("Opened position %s for %s", position_id, delta.strategy_id)
            con.commit()
        position = self.get_position(position_id)
        assert position is not None
        return position

    def record_transaction(self, entry: TransactionEntry) -> None:
        with self._connect() as con:
            con.execute(
                """
                INSERT INTO transactions (
                    owner, chain_id, strategy_id, hash, amount, token_name, type, recorded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.owner.lower(),
                    entry.chain_id,
                    entry.strategy_id,
                    entry.hash,
                    str(entry.amount),
                    entry.token_name,
                    entry.type.value,
                    entry.recorded_at.isoformat(),
                ),
            )
            con.commit()

    def close_position(self, position_id: int) -> None:
        with self._connect() as con:
            con.execute(
                "UPDATE positions SET status = ?, updated_at = ? WHERE id = ?",
                (PositionStatus.CLOSED.value, utcnow().isoformat(), position_id),
            )
            con.commit()

    def get_position(self, position_id: int) -> Optional[Position]:
        with self._connect() as con:
            row = con.execute(
                f"SELECT {_POSITION_COLUMNS} FROM positions WHERE id = ?", (position_id,)
            ).fetchone()
        return self._row_to_position(row) if row else None

    def list_positions(self, owner: str, *, include_closed: bool = False) -> List[Position]:
        query = f"SELECT {_POSITION_COLUMNS} FROM positions WHERE owner = ?"
        params: tuple = (owner.lower(),)
        if not include_closed:
            query += " AND status = ?"
            params = (owner.lower(), PositionStatus.ACTIVE.value)
        with self._connect() as con:
            rows = con.execute(query + " ORDER BY id", params).fetchall()
        return [self._row_to_position(row) for row in rows]

    def list_transactions(
        self, owner: str, transaction_type: Optional[TransactionType] = None
    ) -> List[TransactionEntry]:
        query = (
            "SELECT owner, chain_id, strategy_id, hash, amount, token_name, type, recorded_at "
            "FROM transactions WHERE owner = ?"
        )
        params: tuple = (owner.lower(),)
        if transaction_type is not None:
            query += " AND type = ?"
            params = (owner.lower(), transaction_type.value)
        with self._connect() as con:
            rows = con.execute(query + " ORDER BY id", params).fetchall()
        return [
            TransactionEntry(
                owner=row[0],
                chain_id=int(row[1]),
                strategy_id=row[2],
                hash=row[3],
                amount=Decimal(row[4]),
                token_name=row[5],
                type=TransactionType(row[6]),
                recorded_at=datetime.fromisoformat(row[7]),
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_position(row) -> Position:
        return Position(
            id=int(row[0]),
            owner=row[1],
            strategy_id=row[2],
            chain_id=int(row[3]),
            token_name=row[4],
            amount=Decimal(row[5]),
            entry_price=Decimal(row[6]),
            created_at=datetime.fromisoformat(row[7]),
            updated_at=datetime.fromisoformat(row[8]),
            status=PositionStatus(row[9]),
        )


__all__ = ["PositionLedger", "SQLiteLedger"]
