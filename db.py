import sqlite3
from typing import List, Dict, Optional

from config import DB_PATH


def _connect():
    return sqlite3.connect(DB_PATH)


def init_db() -> None:
    """Initialize the SQLite database and required tables."""
    with _connect() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS players (
                chat_id INTEGER NOT NULL,
                tele_id INTEGER NOT NULL,
                name TEXT NOT NULL COLLATE NOCASE,
                PRIMARY KEY (chat_id, tele_id)
            )
            """
        )
        conn.commit()


def link_player(chat_id: int, tele_id: int, name: str) -> None:
    """Upsert the name a chat member is announced under."""
    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO players (chat_id, tele_id, name)
            VALUES (?, ?, ?)
            ON CONFLICT(chat_id, tele_id) DO UPDATE SET
                name = excluded.name
            """,
            (chat_id, tele_id, name),
        )
        conn.commit()


def find_linked_user(chat_id: int, name: str) -> Optional[int]:
    """Return the Telegram id linked to `name` in a chat, matched case-insensitively."""
    with _connect() as conn:
        cur = conn.execute(
            "SELECT tele_id FROM players WHERE chat_id = ? AND name = ?",
            (chat_id, name.strip()),
        )
        row = cur.fetchone()
        return int(row[0]) if row else None


def get_players(chat_id: int) -> List[Dict]:
    """Return a list of players for a chat as dicts: {tele_id, name}."""
    with _connect() as conn:
        cur = conn.execute(
            "SELECT tele_id, name FROM players WHERE chat_id = ? ORDER BY tele_id",
            (chat_id,),
        )
        rows = cur.fetchall()
    return [{"tele_id": int(r[0]), "name": str(r[1])} for r in rows]
