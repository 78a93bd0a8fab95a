"""Repository for users, papers, library, history and chat persistence."""

import json
import secrets
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Optional

from paperchat.exceptions import ValidationError
from paperchat.models.chat import Chat, ChatMessage, User
from paperchat.models.paper import Paper
from paperchat.utils.text import truncate

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL DEFAULT '',
    password TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS sessions (
    token TEXT PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS papers (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    summary TEXT NOT NULL DEFAULT '',
    authors TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS user_library (
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    paper_id TEXT NOT NULL REFERENCES papers(id),
    created_at TEXT NOT NULL,
    UNIQUE(user_id, paper_id)
);
CREATE TABLE IF NOT EXISTS user_recently_viewed (
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    paper_id TEXT NOT NULL REFERENCES papers(id),
    viewed_at TEXT NOT NULL,
    UNIQUE(user_id, paper_id)
);
CREATE TABLE IF NOT EXISTS user_history (
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    paper_id TEXT NOT NULL REFERENCES papers(id),
    created_at TEXT NOT NULL,
    UNIQUE(user_id, paper_id)
);
CREATE TABLE IF NOT EXISTS chat_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    paper_id TEXT NOT NULL REFERENCES papers(id),
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS chats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    paper_id TEXT NOT NULL,
    paper_title TEXT NOT NULL,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id INTEGER NOT NULL REFERENCES chats(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_messages_user_paper ON chat_messages(user_id, paper_id);
CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_paper(row: sqlite3.Row) -> Paper:
    try:
        authors = json.loads(row["authors"] or "[]")
    except json.JSONDecodeError:
        authors = []
    return Paper(
        title=row["title"],
        link=row["id"],
        summary=row["summary"] or "",
        authors=[str(a) for a in authors] if isinstance(authors, list) else [str(authors)],
    )


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        password_hash=row["password"],
        created_at=row["created_at"],
    )


def _row_to_chat(row: sqlite3.Row) -> Chat:
    return Chat(
        id=row["id"],
        user_id=row["user_id"],
        paper_id=row["paper_id"],
        paper_title=row["paper_title"],
        title=row["title"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class Repository:
    """Per-user paper, chat and account storage using SQLite.

    Every query is scoped by user id; the web layer never reads another
    user's rows.
    """

    def __init__(self, db_path: Path):
        """Initialize repository with database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._init_db()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    # ── Users & sessions ─────────────────────────────────────────────

    def create_user(self, email: str, name: str, password_hash: str) -> User:
        """Insert a new user.

        Raises:
            ValidationError: If a user with this email already exists
        """
        email = email.strip().lower()
        now = _now()
        with self._connection() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO users (email, name, password, created_at) VALUES (?, ?, ?, ?)",
                    (email, name, password_hash, now),
                )
            except sqlite3.IntegrityError:
                raise ValidationError("User with this email already exists") from None
            conn.commit()
            user_id = cursor.lastrowid
        return User(id=user_id, email=email, name=name, password_hash=password_hash, created_at=now)

    def find_user_by_email(self, email: str) -> Optional[User]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
            ).fetchone()
        return _row_to_user(row) if row else None

    def find_user_by_id(self, user_id: int) -> Optional[User]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_user(row) if row else None

    def create_session(self, user_id: int, days: int = 30) -> str:
        """Create a session token for *user_id* valid for *days*."""
        token = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO sessions (token, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
                (token, user_id, now.isoformat(), (now + timedelta(days=days)).isoformat()),
            )
            conn.commit()
        return token

    def find_user_by_token(self, token: str) -> Optional[User]:
        """Resolve a non-expired session token to its user."""
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT u.* FROM sessions s JOIN users u ON u.id = s.user_id
                WHERE s.token = ? AND s.expires_at > ?
                """,
                (token, _now()),
            ).fetchone()
        return _row_to_user(row) if row else None

    def delete_session(self, token: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
            conn.commit()

    # ── Papers ───────────────────────────────────────────────────────

    def upsert_paper(self, paper: Paper) -> None:
        """Insert or refresh paper metadata keyed by link."""
        with self._connection() as conn:
            self._upsert_paper(conn, paper)
            conn.commit()

    @staticmethod
    def _upsert_paper(conn: sqlite3.Connection, paper: Paper) -> None:
        conn.execute(
            """
            INSERT INTO papers (id, title, summary, authors, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                summary = excluded.summary,
                authors = excluded.authors
            """,
            (paper.link, paper.title, paper.summary, json.dumps(list(paper.authors)), _now()),
        )

    def find_paper(self, link: str) -> Optional[Paper]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM papers WHERE id = ?", (link,)).fetchone()
        return _row_to_paper(row) if row else None

    # ── Library ──────────────────────────────────────────────────────

    def list_library(self, user_id: int) -> list[Paper]:
        """Return the user's saved papers sorted by title."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT p.* FROM user_library l JOIN papers p ON p.id = l.paper_id
                WHERE l.user_id = ?
                ORDER BY p.title COLLATE NOCASE ASC
                """,
                (user_id,),
            ).fetchall()
        return [_row_to_paper(row) for row in rows]

    def add_to_library(self, user_id: int, paper: Paper) -> bool:
        """Save *paper* to the user's library.

        Returns:
            True if a row was inserted, False if it was already saved
        """
        with self._connection() as conn:
            self._upsert_paper(conn, paper)
            cursor = conn.execute(
                "INSERT OR IGNORE INTO user_library (user_id, paper_id, created_at) VALUES (?, ?, ?)",
                (user_id, paper.link, _now()),
            )
            conn.commit()
            return cursor.rowcount > 0

    def remove_from_library(self, user_id: int, link: str) -> int:
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM user_library WHERE user_id = ? AND paper_id = ?",
                (user_id, link),
            )
            conn.commit()
            return cursor.rowcount

    # ── Recently viewed ──────────────────────────────────────────────

    def list_recently_viewed(self, user_id: int) -> list[Paper]:
        """Return recently viewed papers, newest first."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT p.* FROM user_recently_viewed r JOIN papers p ON p.id = r.paper_id
                WHERE r.user_id = ?
                ORDER BY r.viewed_at DESC
                """,
                (user_id,),
            ).fetchall()
        return [_row_to_paper(row) for row in rows]

    def record_view(self, user_id: int, paper: Paper) -> None:
        """Upsert a recently-viewed row; re-viewing refreshes ``viewed_at``."""
        with self._connection() as conn:
            self._upsert_paper(conn, paper)
            conn.execute(
                """
                INSERT INTO user_recently_viewed (user_id, paper_id, viewed_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id, paper_id) DO UPDATE SET viewed_at = excluded.viewed_at
                """,
                (user_id, paper.link, _now()),
            )
            conn.commit()

    def remove_recently_viewed(self, user_id: int, link: str) -> int:
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM user_recently_viewed WHERE user_id = ? AND paper_id = ?",
                (user_id, link),
            )
            conn.commit()
            return cursor.rowcount

    # ── History (papers the user has chatted about) ──────────────────

    def list_history(self, user_id: int) -> list[Paper]:
        """Return papers with a history record or chat messages, latest activity first."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT p.*, MAX(a.ts) AS last_activity
                FROM papers p JOIN (
                    SELECT paper_id, created_at AS ts FROM user_history WHERE user_id = ?
                    UNION ALL
                    SELECT paper_id, created_at AS ts FROM chat_messages WHERE user_id = ?
                ) a ON a.paper_id = p.id
                GROUP BY p.id
                ORDER BY last_activity DESC
                """,
                (user_id, user_id),
            ).fetchall()
        return [_row_to_paper(row) for row in rows]

    def add_history(self, user_id: int, paper: Paper) -> bool:
        """Record *paper* in the user's history and drop it from recently viewed.

        Returns:
            True if a new history row was created
        """
        with self._connection() as conn:
            self._upsert_paper(conn, paper)
            cursor = conn.execute(
                "INSERT OR IGNORE INTO user_history (user_id, paper_id, created_at) VALUES (?, ?, ?)",
                (user_id, paper.link, _now()),
            )
            inserted = cursor.rowcount > 0
            conn.execute(
                "DELETE FROM user_recently_viewed WHERE user_id = ? AND paper_id = ?",
                (user_id, paper.link),
            )
            conn.commit()
            return inserted

    def is_in_history(self, user_id: int, link: str) -> bool:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM user_history WHERE user_id = ? AND paper_id = ?
                UNION
                SELECT 1 FROM chat_messages WHERE user_id = ? AND paper_id = ?
                LIMIT 1
                """,
                (user_id, link, user_id, link),
            ).fetchone()
        return row is not None

    def remove_history(self, user_id: int, link: str) -> int:
        """Delete the history record and every chat message for the pair."""
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM chat_messages WHERE user_id = ? AND paper_id = ?",
                (user_id, link),
            )
            removed = cursor.rowcount
            cursor = conn.execute(
                "DELETE FROM user_history WHERE user_id = ? AND paper_id = ?",
                (user_id, link),
            )
            conn.commit()
            return removed + cursor.rowcount

    # ── Per-paper chat messages ──────────────────────────────────────

    def save_message(self, user_id: int, paper: Paper, message: ChatMessage) -> ChatMessage:
        """Persist one message; returns it with ``created_at`` assigned."""
        now = _now()
        with self._connection() as conn:
            self._upsert_paper(conn, paper)
            conn.execute(
                """
                INSERT INTO chat_messages (user_id, paper_id, role, content, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, paper.link, message.role, message.content, now),
            )
            conn.commit()
        return ChatMessage(role=message.role, content=message.content, created_at=now)

    def list_messages(self, user_id: int, link: str) -> list[ChatMessage]:
        """Return the user's messages for a paper in conversation order."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT role, content, created_at FROM chat_messages
                WHERE user_id = ? AND paper_id = ?
                ORDER BY created_at ASC, id ASC
                """,
                (user_id, link),
            ).fetchall()
        return [
            ChatMessage(role=row["role"], content=row["content"], created_at=row["created_at"])
            for row in rows
        ]

    # ── Chat threads ─────────────────────────────────────────────────

    def create_chat(self, user_id: int, paper_id: str, paper_title: str) -> Chat:
        now = _now()
        title = f"Chat: {truncate(paper_title, 50)}"
        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO chats (user_id, paper_id, paper_title, title, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, paper_id, paper_title, title, now, now),
            )
            conn.commit()
            chat_id = cursor.lastrowid
        return Chat(
            id=chat_id,
            user_id=user_id,
            paper_id=paper_id,
            paper_title=paper_title,
            title=title,
            created_at=now,
            updated_at=now,
        )

    def list_chats(self, user_id: int) -> list[Chat]:
        """Return the user's chats, most recently updated first."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM chats WHERE user_id = ? ORDER BY updated_at DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [_row_to_chat(row) for row in rows]

    def find_chat(self, user_id: int, chat_id: int) -> Optional[Chat]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM chats WHERE id = ? AND user_id = ?", (chat_id, user_id)
            ).fetchone()
        return _row_to_chat(row) if row else None

    def delete_chat(self, user_id: int, chat_id: int) -> bool:
        """Delete a chat owned by *user_id*; its messages cascade."""
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM chats WHERE id = ? AND user_id = ?", (chat_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def add_chat_message(self, chat_id: int, role: str, content: str) -> dict:
        """Append a message to a chat thread and bump its ``updated_at``."""
        now = _now()
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO messages (chat_id, role, content, created_at) VALUES (?, ?, ?, ?)",
                (chat_id, role, content, now),
            )
            conn.execute("UPDATE chats SET updated_at = ? WHERE id = ?", (now, chat_id))
            conn.commit()
            message_id = cursor.lastrowid
        return {
            "id": message_id,
            "chat_id": chat_id,
            "role": role,
            "content": content,
            "created_at": now,
        }

    def list_chat_messages(self, chat_id: int) -> list[dict]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE chat_id = ? ORDER BY created_at ASC, id ASC",
                (chat_id,),
            ).fetchall()
        return [dict(row) for row in rows]
