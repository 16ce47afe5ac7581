"""
SQLite-backed persistence for article summaries and per-user interactions.

Tables:
    users             (id, email, created_at)
    article_summaries (one row per URL; JSON columns for structured fields)
    users_articles    (one row per (user, article); view count, bookmark flag)
"""

import json
import logging
import os
import sqlite3
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sciensaurus.config import DB_PATH
from sciensaurus.utils import source_from_url

logger = logging.getLogger(__name__)

JSON_COLUMNS = ("visual_summary", "keywords", "study_metadata", "related_research")

ARTICLE_COLUMNS = (
    "title", "source", "publish_date", "summary", "visual_summary", "keywords",
    "study_metadata", "related_research", "raw_content",
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS article_summaries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    source TEXT,
    publish_date TEXT,
    summary TEXT,
    visual_summary TEXT,
    keywords TEXT,
    study_metadata TEXT,
    related_research TEXT,
    raw_content TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS users_articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    article_summary_id INTEGER NOT NULL REFERENCES article_summaries(id) ON DELETE CASCADE,
    is_bookmarked INTEGER NOT NULL DEFAULT 0,
    view_count INTEGER NOT NULL DEFAULT 0,
    notes TEXT,
    created_at TEXT NOT NULL,
    last_viewed_at TEXT NOT NULL,
    UNIQUE (user_id, article_summary_id)
);
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ArticleStore:
    """Article summaries and user interactions in one SQLite file.

    Args:
        db_path: SQLite path, or ":memory:".
        clock: Returns the current time; injectable for deterministic tests.
    """

    def __init__(self, db_path: str = None, clock: Callable[[], datetime] = _utcnow):
        if db_path is None:
            db_path = DB_PATH
        self.db_path = db_path
        self.clock = clock
        self._closed = False

        if db_path != ":memory:" and os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)
        # The ASGI event loop may run in a different thread than the creator
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        if not self._closed:
            self._closed = True
            self.conn.close()

    def _now(self) -> str:
        return self.clock().isoformat()

    # --- Articles ---

    def validate_publish_date(self, value: Optional[str]) -> Optional[str]:
        """Future dates become now; unparseable dates become None."""
        if not value:
            return None
        parsed = _parse_timestamp(value)
        if parsed is None:
            logger.warning(f"Invalid publish_date {value!r}, storing NULL")
            return None
        if parsed > self.clock():
            logger.warning(f"publish_date {value!r} is in the future, using current date")
            return self._now()
        return value

    def store_article_summary(self, data: Dict[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
        """Insert or update the summary for ``data['url']``.

        Returns:
            {"articleSummaryId": int, "userArticle": dict or None}

        Raises:
            ValueError: when ``url`` or ``title`` is missing.
        """
        url, title = data.get("url"), data.get("title")
        if not url or not title:
            raise ValueError("URL and title are required")

        values = {col: data.get(col) for col in ARTICLE_COLUMNS}
        values["publish_date"] = self.validate_publish_date(values["publish_date"])
        values["source"] = values["source"] or source_from_url(url)
        for col in JSON_COLUMNS:
            if values[col] is not None:
                values[col] = json.dumps(values[col])

        now = self._now()
        existing = self.conn.execute("SELECT id FROM article_summaries WHERE url = ?", (url,)).fetchone()
        if existing:
            article_id = existing["id"]
            assignments = ", ".join(f"{col} = ?" for col in ARTICLE_COLUMNS)
            self.conn.execute(
                f"UPDATE article_summaries SET {assignments}, updated_at = ? WHERE id = ?",
                (*[values[col] for col in ARTICLE_COLUMNS], now, article_id),
            )
            logger.info(f"Updated article summary {article_id} for {url}")
        else:
            cur = self.conn.execute(
                f"INSERT INTO article_summaries (url, {', '.join(ARTICLE_COLUMNS)}, created_at, updated_at) "
                f"VALUES (?, {', '.join('?' for _ in ARTICLE_COLUMNS)}, ?, ?)",
                (url, *[values[col] for col in ARTICLE_COLUMNS], now, now),
            )
            article_id = cur.lastrowid
            logger.info(f"Inserted article summary {article_id} for {url}")
        self.conn.commit()

        user_article = self.record_interaction(user_id, article_id) if user_id else None
        return {"articleSummaryId": article_id, "userArticle": user_article}

    def _decode_article(self, row: sqlite3.Row) -> Dict[str, Any]:
        article = dict(row)
        for col in JSON_COLUMNS:
            if col in article and article[col] is not None:
                try:
                    article[col] = json.loads(article[col])
                except (json.JSONDecodeError, TypeError):
                    article[col] = None
        return article

    def get_article(self, article_id: int) -> Optional[Dict[str, Any]]:
        row = self.conn.execute("SELECT * FROM article_summaries WHERE id = ?", (article_id,)).fetchone()
        return self._decode_article(row) if row else None

    def get_article_by_url(self, url: str) -> Optional[Dict[str, Any]]:
        row = self.conn.execute("SELECT * FROM article_summaries WHERE url = ?", (url,)).fetchone()
        return self._decode_article(row) if row else None

    def count_articles(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM article_summaries").fetchone()[0]

    # --- Users and interactions ---

    def ensure_user_exists(self, user_id: str, email: Optional[str] = None) -> None:
        self.conn.execute(
            "INSERT OR IGNORE INTO users (id, email, created_at) VALUES (?, ?, ?)",
            (user_id, email, self._now()),
        )
        self.conn.commit()

    def _user_article(self, user_id: str, article_id: int) -> Optional[Dict[str, Any]]:
        row = self.conn.execute(
            "SELECT * FROM users_articles WHERE user_id = ? AND article_summary_id = ?",
            (user_id, article_id),
        ).fetchone()
        if not row:
            return None
        record = dict(row)
        record["is_bookmarked"] = bool(record["is_bookmarked"])
        return record

    def record_interaction(self, user_id: str, article_id: int,
                           is_bookmarked: Optional[bool] = None) -> Dict[str, Any]:
        """Record a view: first view inserts with view_count 1, later ones increment.

        The bookmark flag is only changed when ``is_bookmarked`` is given.
        """
        self.ensure_user_exists(user_id)
        now = self._now()
        existing = self._user_article(user_id, article_id)
        if existing:
            bookmarked = existing["is_bookmarked"] if is_bookmarked is None else is_bookmarked
            self.conn.execute(
                "UPDATE users_articles SET view_count = view_count + 1, last_viewed_at = ?, "
                "is_bookmarked = ? WHERE id = ?",
                (now, int(bookmarked), existing["id"]),
            )
        else:
            self.conn.execute(
                "INSERT INTO users_articles (user_id, article_summary_id, is_bookmarked, view_count, "
                "created_at, last_viewed_at) VALUES (?, ?, ?, 1, ?, ?)",
                (user_id, article_id, int(bool(is_bookmarked)), now, now),
            )
        self.conn.commit()
        return self._user_article(user_id, article_id)

    def toggle_bookmark(self, user_id: str, article_id: int) -> bool:
        """Flip the bookmark flag and return its new value.

        Raises:
            KeyError: when the article does not exist.
        """
        if self.get_article(article_id) is None:
            raise KeyError(article_id)
        self.ensure_user_exists(user_id)
        existing = self._user_article(user_id, article_id)
        if existing:
            new_value = not existing["is_bookmarked"]
            self.conn.execute(
                "UPDATE users_articles SET is_bookmarked = ? WHERE id = ?",
                (int(new_value), existing["id"]),
            )
        else:
            new_value = True
            now = self._now()
            self.conn.execute(
                "INSERT INTO users_articles (user_id, article_summary_id, is_bookmarked, view_count, "
                "created_at, last_viewed_at) VALUES (?, ?, 1, 0, ?, ?)",
                (user_id, article_id, now, now),
            )
        self.conn.commit()
        return new_value

    def remove_user_article(self, user_id: str, article_id: int) -> bool:
        """Detach an article from a user's list; False when nothing was removed."""
        deleted = self.conn.execute(
            "DELETE FROM users_articles WHERE user_id = ? AND article_summary_id = ?",
            (user_id, article_id),
        ).rowcount
        self.conn.commit()
        return deleted > 0

    def get_user_articles(self, user_id: str, limit: int = 10,
                          bookmarked_only: bool = False) -> List[Dict[str, Any]]:
        """User's articles, most recently viewed first."""
        query = (
            "SELECT a.*, ua.is_bookmarked, ua.view_count, ua.last_viewed_at, "
            "ua.created_at AS saved_at "
            "FROM users_articles ua JOIN article_summaries a ON a.id = ua.article_summary_id "
            "WHERE ua.user_id = ?"
        )
        if bookmarked_only:
            query += " AND ua.is_bookmarked = 1"
        query += " ORDER BY ua.last_viewed_at DESC, ua.id DESC LIMIT ?"
        articles = []
        for row in self.conn.execute(query, (user_id, limit)).fetchall():
            article = self._decode_article(row)
            article["is_bookmarked"] = bool(article["is_bookmarked"])
            article.pop("raw_content", None)
            articles.append(article)
        return articles

    # --- Statistics ---

    def get_dashboard_stats(self, user_id: str, limit: int = 8) -> Dict[str, Any]:
        """Counts, 30-day growth and recent articles for one user.

        growthPercentage compares articles saved in the last 30 days with the
        30 days before that; with no earlier articles it is 100 if anything
        was saved recently, else 0.
        """
        rows = self.conn.execute(
            "SELECT created_at, is_bookmarked FROM users_articles WHERE user_id = ?", (user_id,)
        ).fetchall()
        now = self.clock()
        saved = [t for t in (_parse_timestamp(r["created_at"]) for r in rows) if t is not None]
        recent = sum(1 for t in saved if t > now - timedelta(days=30))
        previous = sum(1 for t in saved if now - timedelta(days=60) < t <= now - timedelta(days=30))
        if previous:
            growth = round((recent - previous) / previous * 100)
        else:
            growth = 100 if recent else 0

        last_saved_days_ago = (now - max(saved)).days if saved else None
        return {
            "articlesAnalyzed": {
                "count": len(rows),
                "growthPercentage": growth,
                "savedCount": sum(1 for r in rows if r["is_bookmarked"]),
            },
            "recentArticles": self.get_user_articles(user_id, limit=limit),
            "lastSavedDaysAgo": last_saved_days_ago,
        }

    def get_keyword_stats(self, user_id: str) -> Dict[str, Any]:
        """Case-insensitive keyword frequencies over a user's articles.

        researchInterestCount counts keywords seen at least twice; topKeyword
        is the most frequent one in the casing it was first seen with.
        """
        rows = self.conn.execute(
            "SELECT a.keywords FROM users_articles ua "
            "JOIN article_summaries a ON a.id = ua.article_summary_id "
            "WHERE ua.user_id = ? ORDER BY ua.id",
            (user_id,),
        ).fetchall()
        originals = []
        for row in rows:
            try:
                keywords = json.loads(row["keywords"]) if row["keywords"] else []
            except json.JSONDecodeError:
                keywords = []
            originals.extend(k.strip() for k in keywords if isinstance(k, str) and k.strip())

        if not originals:
            return {"researchInterestCount": 0, "topKeyword": None}

        frequency = Counter(k.lower() for k in originals)
        top_lower = frequency.most_common(1)[0][0]
        top = next(k for k in originals if k.lower() == top_lower)
        return {
            "researchInterestCount": sum(1 for count in frequency.values() if count >= 2),
            "topKeyword": top,
        }
