"""
SQLite-backed record store.

Tables:
- conversations: per-conversation metadata (default subject, preferred model)
- turns: append-only turn log, integer ids assigned by SQLite
- summaries: compressed blocks of turns
- pins: extracted or manually created facts

Child tables reference conversations with ON DELETE CASCADE.
"""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from ..models.memory import ConversationMeta, MemoryStats, Pin, Summary, Turn, Urgency
from .store import RecordStore, validate_role

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    default_subject_id TEXT,
    preferred_model TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS turns (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    text TEXT NOT NULL,
    model_id TEXT,
    token_cost INTEGER,
    importance REAL NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_turns_conversation ON turns(conversation_id, id);

CREATE TABLE IF NOT EXISTS summaries (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    text TEXT NOT NULL,
    turn_count INTEGER NOT NULL,
    first_turn_id INTEGER NOT NULL,
    last_turn_id INTEGER NOT NULL,
    importance REAL NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_summaries_conversation ON summaries(conversation_id, last_turn_id);

CREATE TABLE IF NOT EXISTS pins (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    subject_id TEXT,
    content TEXT NOT NULL,
    source_turn_id INTEGER,
    category TEXT NOT NULL,
    urgency TEXT NOT NULL,
    importance REAL NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_pins_conversation ON pins(conversation_id);
"""


class SQLiteRecordStore(RecordStore):
    """
    File-backed SQLite record store.

    Uses WAL mode; every write commits immediately so a turn insert is atomic.
    Pass ``":memory:"`` for a throwaway database.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10.0)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys=ON")
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.executescript(SCHEMA)
        self._conn.commit()
        logger.info(f"Opened record store at {self.db_path}")

    def close(self) -> None:
        self._conn.close()

    # ---------- conversations ----------

    def ensure_conversation(
        self, conversation_id: str, preferred_model: Optional[str] = None
    ) -> ConversationMeta:
        meta = self.get_conversation(conversation_id)
        if meta is None:
            now = datetime.now()
            self._conn.execute(
                "INSERT INTO conversations (id, default_subject_id, preferred_model, created_at) "
                "VALUES (?, NULL, ?, ?)",
                (conversation_id, preferred_model, now.isoformat()),
            )
            self._conn.commit()
            logger.info(f"Created conversation {conversation_id}")
            return ConversationMeta(
                conversation_id=conversation_id, preferred_model=preferred_model, created_at=now
            )
        if preferred_model and not meta.preferred_model:
            self.set_preferred_model(conversation_id, preferred_model)
            meta.preferred_model = preferred_model
        return meta

    def get_conversation(self, conversation_id: str) -> Optional[ConversationMeta]:
        row = self._conn.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()
        if row is None:
            return None
        return ConversationMeta(
            conversation_id=row["id"],
            default_subject_id=row["default_subject_id"],
            preferred_model=row["preferred_model"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def set_default_subject(self, conversation_id: str, subject_id: Optional[str]) -> None:
        self.ensure_conversation(conversation_id)
        self._conn.execute(
            "UPDATE conversations SET default_subject_id = ? WHERE id = ?",
            (subject_id, conversation_id),
        )
        self._conn.commit()

    def set_preferred_model(self, conversation_id: str, model_id: Optional[str]) -> None:
        self.ensure_conversation(conversation_id)
        self._conn.execute(
            "UPDATE conversations SET preferred_model = ? WHERE id = ?",
            (model_id, conversation_id),
        )
        self._conn.commit()

    # ---------- turns ----------

    def add_turn(
        self,
        conversation_id: str,
        role: str,
        text: str,
        importance: float,
        model_id: Optional[str] = None,
        token_cost: Optional[int] = None,
    ) -> Turn:
        validate_role(role)
        self.ensure_conversation(conversation_id)
        now = datetime.now()
        cursor = self._conn.execute(
            "INSERT INTO turns (conversation_id, role, text, model_id, token_cost, importance, "
            "created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (conversation_id, role, text, model_id, token_cost, importance, now.isoformat()),
        )
        self._conn.commit()
        return Turn(
            id=cursor.lastrowid,
            conversation_id=conversation_id,
            role=role,
            text=text,
            importance=importance,
            created_at=now,
            model_id=model_id,
            token_cost=token_cost,
        )

    def recent_turns(self, conversation_id: str, limit: int) -> List[Turn]:
        if limit <= 0:
            return []
        rows = self._conn.execute(
            "SELECT * FROM (SELECT * FROM turns WHERE conversation_id = ? "
            "ORDER BY id DESC LIMIT ?) ORDER BY id ASC",
            (conversation_id, limit),
        ).fetchall()
        return [self._row_to_turn(r) for r in rows]

    def turns_after(self, conversation_id: str, after_turn_id: Optional[int]) -> List[Turn]:
        rows = self._conn.execute(
            "SELECT * FROM turns WHERE conversation_id = ? AND id > ? ORDER BY id ASC",
            (conversation_id, after_turn_id if after_turn_id is not None else 0),
        ).fetchall()
        return [self._row_to_turn(r) for r in rows]

    def count_turns(self, conversation_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) AS count FROM turns WHERE conversation_id = ?", (conversation_id,)
        ).fetchone()
        return row["count"]

    # ---------- summaries ----------

    def add_summary(self, summary: Summary) -> None:
        self.ensure_conversation(summary.conversation_id)
        self._conn.execute(
            "INSERT INTO summaries (id, conversation_id, text, turn_count, first_turn_id, "
            "last_turn_id, importance, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                summary.id,
                summary.conversation_id,
                summary.text,
                summary.turn_count,
                summary.first_turn_id,
                summary.last_turn_id,
                summary.importance,
                summary.created_at.isoformat(),
            ),
        )
        self._conn.commit()

    def recent_summaries(self, conversation_id: str, limit: int) -> List[Summary]:
        if limit <= 0:
            return []
        rows = self._conn.execute(
            "SELECT * FROM (SELECT * FROM summaries WHERE conversation_id = ? "
            "ORDER BY last_turn_id DESC LIMIT ?) ORDER BY last_turn_id ASC",
            (conversation_id, limit),
        ).fetchall()
        return [self._row_to_summary(r) for r in rows]

    def last_summary(self, conversation_id: str) -> Optional[Summary]:
        row = self._conn.execute(
            "SELECT * FROM summaries WHERE conversation_id = ? ORDER BY last_turn_id DESC LIMIT 1",
            (conversation_id,),
        ).fetchone()
        return self._row_to_summary(row) if row else None

    # ---------- pins ----------

    def add_pin(self, pin: Pin) -> None:
        self.ensure_conversation(pin.conversation_id)
        self._conn.execute(
            "INSERT INTO pins (id, conversation_id, subject_id, content, source_turn_id, "
            "category, urgency, importance, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                pin.id,
                pin.conversation_id,
                pin.subject_id,
                pin.content,
                pin.source_turn_id,
                pin.category,
                pin.urgency.value,
                pin.importance,
                pin.created_at.isoformat(),
            ),
        )
        self._conn.commit()

    def list_pins(self, conversation_id: str) -> List[Pin]:
        rows = self._conn.execute(
            "SELECT * FROM pins WHERE conversation_id = ? ORDER BY created_at ASC",
            (conversation_id,),
        ).fetchall()
        return [self._row_to_pin(r) for r in rows]

    # ---------- housekeeping ----------

    def stats(self, conversation_id: str) -> MemoryStats:
        turn_row = self._conn.execute(
            "SELECT COUNT(*) AS total, AVG(importance) AS avg_importance, "
            "MIN(created_at) AS oldest, MAX(created_at) AS newest "
            "FROM turns WHERE conversation_id = ?",
            (conversation_id,),
        ).fetchone()
        summary_count = self._conn.execute(
            "SELECT COUNT(*) AS count FROM summaries WHERE conversation_id = ?", (conversation_id,)
        ).fetchone()["count"]
        pin_count = self._conn.execute(
            "SELECT COUNT(*) AS count FROM pins WHERE conversation_id = ?", (conversation_id,)
        ).fetchone()["count"]

        return MemoryStats(
            total_turns=turn_row["total"],
            total_summaries=summary_count,
            total_pins=pin_count,
            oldest_turn=datetime.fromisoformat(turn_row["oldest"]) if turn_row["oldest"] else None,
            newest_turn=datetime.fromisoformat(turn_row["newest"]) if turn_row["newest"] else None,
            average_importance=turn_row["avg_importance"] or 0.0,
        )

    def delete_conversation(self, conversation_id: str) -> None:
        self._conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        self._conn.commit()
        logger.info(f"Deleted conversation {conversation_id}")

    @staticmethod
    def _row_to_turn(row: sqlite3.Row) -> Turn:
        return Turn(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            text=row["text"],
            importance=row["importance"],
            created_at=datetime.fromisoformat(row["created_at"]),
            model_id=row["model_id"],
            token_cost=row["token_cost"],
        )

    @staticmethod
    def _row_to_summary(row: sqlite3.Row) -> Summary:
        return Summary(
            id=row["id"],
            conversation_id=row["conversation_id"],
            text=row["text"],
            turn_count=row["turn_count"],
            first_turn_id=row["first_turn_id"],
            last_turn_id=row["last_turn_id"],
            importance=row["importance"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_pin(row: sqlite3.Row) -> Pin:
        return Pin(
            id=row["id"],
            conversation_id=row["conversation_id"],
            subject_id=row["subject_id"],
            content=row["content"],
            source_turn_id=row["source_turn_id"],
            category=row["category"],
            urgency=Urgency(row["urgency"]),
            importance=row["importance"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
