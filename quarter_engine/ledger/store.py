"""
Round Ledger — append-only, hash-chained record of every processed round.

Behavioral Contract:
- Append-only. No record is ever modified or deleted
- Each record is signed with sha256 and chained to the previous record's
  signature, so any edit to a stored row breaks verify_chain()
- One record per (game, round); appending a duplicate raises
- Records carry hashes, not states: replaying the round from its inputs must
  reproduce the stored hashes
"""

import hashlib
import json
import logging
import sqlite3
from typing import List, Optional

from quarter_engine.core.errors import EngineError
from quarter_engine.models.ledger import RoundLedgerRecord
from quarter_engine.models.results import RoundOutput

logger = logging.getLogger(__name__)


def _sign(record: RoundLedgerRecord) -> str:
    record_dict = record.model_dump(mode="json")
    record_dict["signature"] = ""
    record_bytes = json.dumps(record_dict, sort_keys=True, default=str).encode()
    return hashlib.sha256(record_bytes).hexdigest()


class RoundLedger:
    """
    Append-only round ledger.
    SQLite; ":memory:" unless a path is given.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS rounds (
                id TEXT PRIMARY KEY,
                game_id TEXT NOT NULL,
                round_number INTEGER NOT NULL,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                record_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_rounds_game_id ON rounds(game_id)
        """)
        self._conn.commit()

    def append(self, game_id: str, output: RoundOutput) -> RoundLedgerRecord:
        """Record a processed round, chained to the latest record."""
        record = RoundLedgerRecord(
            id=f"{game_id}:r{output.round_number}",
            game_id=game_id,
            round_number=output.round_number,
            seed=output.audit.seed,
            round_seed=output.audit.round_seed,
            engine_version=output.audit.engine_version,
            draws=output.audit.draws,
            state_hashes=dict(output.audit.state_hashes_after),
            market_hash=output.audit.market_hash,
            standings=[r.team_id for r in output.rankings],
        )
        if self.get_by_id(record.id) is not None:
            raise EngineError(f"Round {output.round_number} of game {game_id} is already recorded")

        record.prior_record_hash = self._get_latest_hash()
        record.signature = _sign(record)

        self._conn.execute(
            """
            INSERT INTO rounds (id, game_id, round_number, signature, prior_record_hash, record_json)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.game_id,
                record.round_number,
                record.signature,
                record.prior_record_hash,
                record.model_dump_json(),
            ),
        )
        self._conn.commit()
        logger.debug("Ledger appended %s (%s)", record.id, record.signature[:12])
        return record

    def _get_latest_hash(self) -> Optional[str]:
        row = self._conn.execute(
            "SELECT signature FROM rounds ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> RoundLedgerRecord:
        return RoundLedgerRecord.model_validate_json(row["record_json"])

    def get_by_id(self, record_id: str) -> Optional[RoundLedgerRecord]:
        row = self._conn.execute(
            "SELECT record_json FROM rounds WHERE id = ?", (record_id,)
        ).fetchone()
        return self._deserialize(row) if row else None

    def query_by_game(self, game_id: str) -> List[RoundLedgerRecord]:
        """All recorded rounds of a game, oldest first."""
        rows = self._conn.execute(
            "SELECT record_json FROM rounds WHERE game_id = ? ORDER BY rowid",
            (game_id,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def verify_chain(self) -> bool:
        """True when no stored record has been altered or reordered."""
        rows = self._conn.execute(
            "SELECT record_json, signature FROM rounds ORDER BY rowid"
        ).fetchall()

        previous: Optional[str] = None
        for row in rows:
            record = self._deserialize(row)
            if record.signature != row["signature"] or _sign(record) != record.signature:
                logger.warning("Ledger record %s failed signature check", record.id)
                return False
            if record.prior_record_hash != previous:
                logger.warning("Ledger record %s is not chained to its predecessor", record.id)
                return False
            previous = record.signature
        return True

    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) as cnt FROM rounds").fetchone()
        return row["cnt"]

    def close(self) -> None:
        self._conn.close()
