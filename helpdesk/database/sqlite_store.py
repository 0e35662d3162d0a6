import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from helpdesk.core.errors import StoreError
from helpdesk.core.logging import get_plain_logger
from helpdesk.database.base import HelpDeskStore
from helpdesk.models.schemas import HelpRequest, KnowledgeEntry, RequestStatus

logger = get_plain_logger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent
SCHEMA_FILES = ("help_requests.sql", "knowledge_base.sql")


def _ts(value: datetime) -> str:
    # Fixed width so that text comparison in SQL matches time order
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _help_request_from_row(row: sqlite3.Row) -> HelpRequest:
    data = dict(row)
    if data.get("metadata"):
        data["metadata"] = json.loads(data["metadata"])
    return HelpRequest(**data)


def _knowledge_entry_from_row(row: sqlite3.Row) -> KnowledgeEntry:
    return KnowledgeEntry(**dict(row))


class SQLiteStore(HelpDeskStore):
    """
    Local SQLite backend

    One connection per operation. Writes run inside BEGIN IMMEDIATE so a
    conditional update and the read of its result see the same state.
    """

    def __init__(self, db_path: str = "salon_data.db", busy_timeout: float = 5.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._init_db()

    def _init_db(self):
        """Create tables and indexes if missing"""
        with self._connect() as conn:
            for name in SCHEMA_FILES:
                sql = (SCHEMA_DIR / name).read_text(encoding="utf-8")
                conn.executescript(sql)
        logger.info(f"Database initialized at {self.db_path}")

    @contextmanager
    def _connect(self, write: bool = False):
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        except sqlite3.Error as e:
            raise StoreError(f"Could not open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row

        try:
            if write:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"SQLite error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # Help requests

    def insert_help_request(
        self,
        room_name: str,
        participant_identity: str,
        question: str,
        created_at: datetime,
        timeout_at: datetime,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> HelpRequest:
        request_id = str(uuid.uuid4())
        with self._connect(write=True) as conn:
            conn.execute("""
                INSERT INTO help_requests
                (id, room_name, participant_identity, question, status, created_at, timeout_at, metadata)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                request_id,
                room_name,
                participant_identity,
                question,
                RequestStatus.PENDING.value,
                _ts(created_at),
                _ts(timeout_at),
                json.dumps(metadata) if metadata else None,
            ))
            row = conn.execute(
                "SELECT * FROM help_requests WHERE id = ?", (request_id,)
            ).fetchone()
        return _help_request_from_row(row)

    def get_help_request(self, request_id: str) -> Optional[HelpRequest]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM help_requests WHERE id = ?", (request_id,)
            ).fetchone()
        return _help_request_from_row(row) if row else None

    def close_help_request(
        self,
        request_id: str,
        status: RequestStatus,
        resolved_at: datetime,
        supervisor_answer: Optional[str] = None,
    ) -> Optional[HelpRequest]:
        with self._connect(write=True) as conn:
            cursor = conn.execute("""
                UPDATE help_requests
                SET status = ?,
                    supervisor_answer = ?,
                    resolved_at = ?
                WHERE id = ?
                AND status = ?
            """, (
                RequestStatus(status).value,
                supervisor_answer,
                _ts(resolved_at),
                request_id,
                RequestStatus.PENDING.value,
            ))
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT * FROM help_requests WHERE id = ?", (request_id,)
            ).fetchone()
        return _help_request_from_row(row)

    def expire_help_requests(self, now: datetime) -> List[HelpRequest]:
        cutoff = _ts(now)
        with self._connect(write=True) as conn:
            ids = [
                r["id"] for r in conn.execute("""
                    SELECT id FROM help_requests
                    WHERE status = ?
                    AND timeout_at < ?
                """, (RequestStatus.PENDING.value, cutoff))
            ]
            if not ids:
                return []

            placeholders = ", ".join("?" for _ in ids)
            conn.execute(f"""
                UPDATE help_requests
                SET status = ?,
                    resolved_at = ?
                WHERE status = ?
                AND id IN ({placeholders})
            """, (RequestStatus.UNRESOLVED.value, cutoff, RequestStatus.PENDING.value, *ids))

            rows = conn.execute(
                f"SELECT * FROM help_requests WHERE id IN ({placeholders})", ids
            ).fetchall()
        return [_help_request_from_row(r) for r in rows]

    def list_help_requests(
        self,
        status: Optional[RequestStatus] = None,
        limit: Optional[int] = None,
    ) -> List[HelpRequest]:
        query = "SELECT * FROM help_requests"
        params: list = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(RequestStatus(status).value)
        query += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_help_request_from_row(r) for r in rows]

    # Knowledge base

    def insert_knowledge_entry(
        self,
        question: str,
        answer: str,
        source_request_id: Optional[str],
        created_at: datetime,
    ) -> KnowledgeEntry:
        entry_id = str(uuid.uuid4())
        with self._connect(write=True) as conn:
            conn.execute("""
                INSERT INTO knowledge_base
                (id, question, answer, source_request_id, usage_count, created_at, updated_at)
                VALUES (?, ?, ?, ?, 0, ?, ?)
            """, (entry_id, question, answer, source_request_id, _ts(created_at), _ts(created_at)))
            row = conn.execute(
                "SELECT * FROM knowledge_base WHERE id = ?", (entry_id,)
            ).fetchone()
        return _knowledge_entry_from_row(row)

    def get_knowledge_entry(self, entry_id: str) -> Optional[KnowledgeEntry]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM knowledge_base WHERE id = ?", (entry_id,)
            ).fetchone()
        return _knowledge_entry_from_row(row) if row else None

    def list_knowledge_entries(self, limit: Optional[int] = None) -> List[KnowledgeEntry]:
        query = "SELECT * FROM knowledge_base ORDER BY usage_count DESC, updated_at DESC, rowid DESC"
        params: list = []
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_knowledge_entry_from_row(r) for r in rows]

    def increment_knowledge_usage(self, entry_id: str, used_at: datetime) -> Optional[KnowledgeEntry]:
        with self._connect(write=True) as conn:
            cursor = conn.execute("""
                UPDATE knowledge_base
                SET usage_count = usage_count + 1,
                    last_used_at = ?,
                    updated_at = MAX(updated_at, ?)
                WHERE id = ?
            """, (_ts(used_at), _ts(used_at), entry_id))
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                "SELECT * FROM knowledge_base WHERE id = ?", (entry_id,)
            ).fetchone()
        return _knowledge_entry_from_row(row)
