"""
Database Module - SQLite-based storage for messages, rules, and settings
========================================================================

This module provides the record store used by the reply pipeline:
- Inbound/outbound message records
- Rule management (create, edit, toggle, delete, import)
- Singleton bot settings
- Message retention and cleanup
- Statistics
"""

import sqlite3
import json
import yaml
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any
from contextlib import contextmanager
import threading

from rules.models import Condition, Rule, RuleResponse, Settings, validate_rule, validate_settings
from .exceptions import DatabaseError, ValidationError
from .logging import get_logger

logger = get_logger("core.database")

MESSAGE_FIELDS = ("chat_id", "sender", "recipient", "body", "direction", "status")
RECORD_KINDS = ("message", "rule")
RETENTION_KEY = "message_ttl_days"
MAX_RETENTION_DAYS = 36500


def _now() -> str:
    return _utc_iso(datetime.now(timezone.utc))


def _utc_iso(moment: datetime) -> str:
    # Fixed width so stored timestamps compare correctly as text
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _positive_days(days) -> float:
    if isinstance(days, bool) or not isinstance(days, (int, float)) or not 0 < days <= MAX_RETENTION_DAYS:
        raise ValidationError(f"Retention days must be a positive number up to {MAX_RETENTION_DAYS}", {"days": days})
    return days


def _parse_bound(value, name: str) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid {name} date: {value!r}")
    if not isinstance(value, datetime):
        raise ValidationError(f"{name} must be a datetime or ISO 8601 string")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class Database:
    """
    SQLite database manager for the auto responder.

    Provides thread-safe database operations with per-thread connections
    and automatic schema creation.

    Attributes:
        db_path (str): Path to SQLite database file
    """

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file

        Raises:
            DatabaseError: If database cannot be initialized
        """
        self.db_path = db_path
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._lock = threading.Lock()

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        conn = getattr(self._local, "connection", None)
        with self._lock:
            if conn is None or conn not in self._connections:
                conn = sqlite3.connect(
                    self.db_path,
                    check_same_thread=False,
                    timeout=30.0
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode = WAL")
                self._connections.append(conn)
                self._local.connection = conn
        return conn

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions.

        Provides automatic commit on success and rollback on error.

        Example:
            with db.transaction() as conn:
                conn.execute("INSERT INTO messages ...")
        """
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise DatabaseError(f"Transaction failed: {e}")

    def _init_schema(self) -> None:
        """
        Create all tables if they don't exist.

        Raises:
            DatabaseError: If schema creation fails
        """
        schema_sql = """
        -- Messages table: every inbound and outbound chat message
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            chat_id TEXT NOT NULL,
            sender TEXT NOT NULL,
            recipient TEXT NOT NULL,
            body TEXT NOT NULL,
            direction TEXT NOT NULL CHECK (direction IN ('in', 'out')),
            status TEXT,
            timestamp TEXT NOT NULL
        );

        -- Rules table: conditions and response are JSON documents
        CREATE TABLE IF NOT EXISTS rules (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            description TEXT,
            enabled INTEGER NOT NULL DEFAULT 1,
            priority INTEGER NOT NULL DEFAULT 1,
            conditions TEXT NOT NULL,
            response TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        -- Settings table: JSON-encoded values by key
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id);
        CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp);
        CREATE INDEX IF NOT EXISTS idx_rules_enabled_priority ON rules(enabled, priority DESC, created_at DESC);
        """

        try:
            with self.transaction() as conn:
                conn.executescript(schema_sql)
        except DatabaseError as e:
            raise DatabaseError(f"Failed to initialize database schema: {e}")

    # === Generic record creation ===

    def create_record(self, kind: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Store a record of the given kind.

        Args:
            kind: 'message' or 'rule'
            fields: Record fields

        Returns:
            The stored record as a dictionary

        Raises:
            DatabaseError: For unknown kinds or storage failures
            ValidationError: For invalid rules
        """
        if kind == "message":
            return self.add_message(**{k: fields.get(k) for k in MESSAGE_FIELDS if k in fields})
        if kind == "rule":
            return self.create_rule(Rule.from_dict(fields)).to_dict()
        raise DatabaseError(f"Unknown record kind: {kind}", {"kinds": list(RECORD_KINDS)})

    # === Message Operations ===

    def add_message(
        self,
        chat_id: str,
        sender: str,
        recipient: str,
        body: str,
        direction: str,
        status: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Add a message record.

        Args:
            chat_id: Conversation the message belongs to
            sender: Who sent it ('bot' or 'dashboard' for our own replies)
            recipient: Who it was sent to
            body: Message text
            direction: 'in' or 'out'
            status: Optional delivery status

        Returns:
            Stored message dictionary
        """
        timestamp = _now()
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO messages (chat_id, sender, recipient, body, direction, status, timestamp)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (chat_id, sender, recipient, body or "", direction, status, timestamp)
                )
                message_id = cursor.lastrowid
        except DatabaseError as e:
            raise DatabaseError(f"Failed to add message: {e}")

        return {
            "id": message_id,
            "chat_id": chat_id,
            "sender": sender,
            "recipient": recipient,
            "body": body or "",
            "direction": direction,
            "status": status,
            "timestamp": timestamp,
        }

    def get_messages(
        self,
        chat_id: Optional[str] = None,
        direction: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """
        Retrieve messages, newest first.

        Args:
            chat_id: Filter by conversation (optional)
            direction: Filter by direction (optional)
            limit: Maximum number of messages to return
            offset: Number of messages to skip
        """
        query = "SELECT * FROM messages WHERE 1=1"
        params: List[Any] = []

        if chat_id:
            query += " AND chat_id = ?"
            params.append(chat_id)

        if direction:
            query += " AND direction = ?"
            params.append(direction)

        query += " ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self.transaction() as conn:
            return [dict(row) for row in conn.execute(query, params).fetchall()]

    # === Retention ===

    def cleanup_messages(self, days: float) -> int:
        """
        Delete messages older than ``days`` days.

        Returns:
            Number of deleted messages

        Raises:
            ValidationError: If days is not a positive number
        """
        days = _positive_days(days)
        cutoff = _utc_iso(datetime.now(timezone.utc) - timedelta(days=days))
        with self.transaction() as conn:
            deleted = conn.execute("DELETE FROM messages WHERE timestamp < ?", (cutoff,)).rowcount

        logger.info(f"Deleted {deleted} message(s) older than {days:g} day(s)")
        return deleted

    def cleanup_range(self, start, end) -> int:
        """
        Delete messages stored between two instants, both inclusive.

        Args:
            start: datetime or ISO 8601 string (naive values are UTC)
            end: datetime or ISO 8601 string (naive values are UTC)

        Returns:
            Number of deleted messages

        Raises:
            ValidationError: For unparseable bounds or start after end
        """
        lower, upper = _parse_bound(start, "start"), _parse_bound(end, "end")
        if lower > upper:
            raise ValidationError("start must not be after end", {"start": str(start), "end": str(end)})

        with self.transaction() as conn:
            deleted = conn.execute(
                "DELETE FROM messages WHERE timestamp >= ? AND timestamp <= ?",
                (_utc_iso(lower), _utc_iso(upper))
            ).rowcount

        logger.info(f"Deleted {deleted} message(s) between {lower.isoformat()} and {upper.isoformat()}")
        return deleted

    def set_retention(self, days: float) -> float:
        """
        Store how many days messages are kept.

        Raises:
            ValidationError: If days is not a positive number
        """
        days = _positive_days(days)
        self.set_setting(RETENTION_KEY, days)
        logger.info(f"Message retention set to {days:g} day(s)")
        return days

    def get_retention(self, default: float) -> float:
        """Stored retention period, or ``default`` when none (or garbage) is stored."""
        stored = self.get_setting(RETENTION_KEY)
        try:
            return _positive_days(stored)
        except ValidationError:
            if stored is not None:
                logger.warning(f"Ignoring stored retention {stored!r}, using {default} days")
            return default

    def apply_retention(self, default_days: float) -> int:
        """Delete messages past the retention period. Returns the number deleted."""
        return self.cleanup_messages(self.get_retention(default_days))

    # === Rule Operations ===

    def _row_to_rule(self, row: sqlite3.Row) -> Rule:
        data = dict(row)
        data["enabled"] = bool(data["enabled"])
        try:
            data["conditions"] = json.loads(data["conditions"])
            data["response"] = json.loads(data["response"])
        except json.JSONDecodeError:
            logger.warning(f"Rule {data['id']} has unreadable JSON, loading it without conditions")
            data["conditions"] = []
            data["response"] = {}
        return Rule.from_dict(data)

    def create_rule(self, rule: Rule) -> Rule:
        """
        Validate and store a new rule.

        Raises:
            ValidationError: If the rule is invalid
        """
        validate_rule(rule)

        now = _now()
        with self.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO rules (name, description, enabled, priority, conditions, response, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rule.name.strip(),
                    rule.description,
                    int(rule.enabled),
                    rule.priority,
                    json.dumps([c.to_dict() for c in rule.conditions]),
                    json.dumps(rule.response.to_dict()),
                    now,
                    now,
                )
            )
            rule_id = cursor.lastrowid

        logger.info(f"Created rule {rule_id}: {rule.name!r}")
        return self.get_rule(rule_id)

    def get_rule(self, rule_id: int) -> Optional[Rule]:
        with self.transaction() as conn:
            row = conn.execute("SELECT * FROM rules WHERE id = ?", (rule_id,)).fetchone()
        return self._row_to_rule(row) if row else None

    def list_rules(self) -> List[Rule]:
        """All rules, in evaluation order."""
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM rules ORDER BY priority DESC, created_at DESC, id DESC"
            ).fetchall()
        return [self._row_to_rule(row) for row in rows]

    def list_enabled_rules(self) -> List[Rule]:
        """
        Enabled rules ordered by priority, then recency.

        Newer rules come first among equal priorities; the id breaks ties
        between rules created within the same instant.
        """
        with self.transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM rules
                WHERE enabled = 1
                ORDER BY priority DESC, created_at DESC, id DESC
                """
            ).fetchall()
        return [self._row_to_rule(row) for row in rows]

    def update_rule(self, rule_id: int, changes: Dict[str, Any]) -> Optional[Rule]:
        """
        Apply changes to a rule and re-validate it.

        Returns:
            Updated rule, or None if it does not exist
        """
        current = self.get_rule(rule_id)
        if current is None:
            return None

        data = current.to_dict()
        for key, value in changes.items():
            if key in ("id", "created_at", "updated_at"):
                continue
            if key == "conditions" and isinstance(value, list):
                value = [c.to_dict() if isinstance(c, Condition) else c for c in value]
            elif key == "response" and isinstance(value, RuleResponse):
                value = value.to_dict()
            data[key] = value
        updated = Rule.from_dict(data)
        validate_rule(updated)

        with self.transaction() as conn:
            conn.execute(
                """
                UPDATE rules
                SET name = ?, description = ?, enabled = ?, priority = ?,
                    conditions = ?, response = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    updated.name.strip(),
                    updated.description,
                    int(updated.enabled),
                    updated.priority,
                    json.dumps([c.to_dict() for c in updated.conditions]),
                    json.dumps(updated.response.to_dict()),
                    _now(),
                    rule_id,
                )
            )
        return self.get_rule(rule_id)

    def toggle_rule(self, rule_id: int) -> Optional[Rule]:
        """Flip a rule's enabled flag."""
        with self.transaction() as conn:
            cursor = conn.execute(
                "UPDATE rules SET enabled = 1 - enabled, updated_at = ? WHERE id = ?",
                (_now(), rule_id)
            )
            if cursor.rowcount == 0:
                return None
        return self.get_rule(rule_id)

    def delete_rule(self, rule_id: int) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM rules WHERE id = ?", (rule_id,))
            return cursor.rowcount > 0

    def import_rules(self, path: str) -> List[Rule]:
        """
        Create rules from a YAML file with a top-level ``rules`` list.

        Invalid entries are skipped and logged.

        Raises:
            DatabaseError: If the file cannot be read or parsed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (IOError, yaml.YAMLError) as e:
            raise DatabaseError(f"Failed to load rules file: {e}", {"path": path})

        created = []
        for index, entry in enumerate(data.get("rules") or []):
            if not isinstance(entry, dict):
                logger.warning(f"Skipping rule #{index}: not a mapping")
                continue
            try:
                created.append(self.create_rule(Rule.from_dict(entry)))
            except ValidationError as e:
                logger.warning(f"Skipping rule #{index} ({entry.get('name')!r}): {e}")
        return created

    # === Settings Operations ===

    def get_setting(self, key: str, default: Any = None) -> Any:
        with self.transaction() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return row["value"]

    def set_setting(self, key: str, value: Any) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO settings (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), _now())
            )

    def get_settings(self) -> Optional[Settings]:
        """
        Current bot settings.

        Returns:
            Settings, or None if settings were never stored
        """
        keys = list(Settings().to_dict())
        placeholders = ", ".join("?" for _ in keys)
        with self.transaction() as conn:
            rows = conn.execute(
                f"SELECT key, value FROM settings WHERE key IN ({placeholders})", keys
            ).fetchall()

        if not rows:
            return None

        stored = {}
        for row in rows:
            try:
                stored[row["key"]] = json.loads(row["value"])
            except json.JSONDecodeError:
                logger.warning(f"Ignoring unreadable setting {row['key']!r}")
        return Settings.from_dict(stored)

    def update_settings(self, **changes) -> Settings:
        """
        Update some settings, keeping the rest.

        Raises:
            ValidationError: For unknown keys or invalid values
        """
        current = self.get_settings() or Settings()
        data = current.to_dict()

        unknown = set(changes) - set(data)
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        data.update(changes)
        updated = Settings.from_dict(data)
        validate_settings(updated)

        for key, value in updated.to_dict().items():
            self.set_setting(key, value)

        logger.info("Settings updated", extra={"changed": sorted(changes)})
        return updated

    # === Statistics ===

    def get_statistics(self) -> Dict[str, Any]:
        with self.transaction() as conn:
            stats: Dict[str, Any] = {}

            cursor = conn.execute(
                "SELECT direction, COUNT(*) as count FROM messages GROUP BY direction"
            )
            stats["messages"] = {row["direction"]: row["count"] for row in cursor.fetchall()}

            cursor = conn.execute("SELECT COUNT(DISTINCT chat_id) as count FROM messages")
            stats["chats"] = cursor.fetchone()["count"]

            cursor = conn.execute(
                "SELECT enabled, COUNT(*) as count FROM rules GROUP BY enabled"
            )
            by_state = {row["enabled"]: row["count"] for row in cursor.fetchall()}
            stats["rules"] = {"enabled": by_state.get(1, 0), "disabled": by_state.get(0, 0)}

            return stats

    def close(self) -> None:
        """Close the connections opened by every thread."""
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local.connection = None


def init_database(db_path: str) -> Database:
    """
    Initialize and return a database instance.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Database instance
    """
    return Database(db_path)
