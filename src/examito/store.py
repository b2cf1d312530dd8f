from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, date, datetime, tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from . import srs
from .config import settings
from .id_factory import generate_card_id
from .logging import logger
from .metrics import registry
from .models.review import (
    INITIAL_EASE_FACTOR,
    INITIAL_INTERVAL_DAYS,
    Rating,
    ReviewItem,
)


_CARD_COLUMNS = "id, category, front, back, interval_days, ease_factor, review_count, due_at"


def _to_utc(value: datetime) -> datetime:
    """Normalise a timestamp to aware UTC; naive values are taken as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _row_to_item(row: sqlite3.Row) -> ReviewItem:
    return ReviewItem(
        id=row["id"],
        category=row["category"],
        front=row["front"],
        back=row["back"],
        interval=int(row["interval_days"]),
        ease_factor=float(row["ease_factor"]),
        review_count=int(row["review_count"]),
        due_date=datetime.fromisoformat(row["due_at"]),
    )


class FlashcardStore:
    """SQLite-backed flashcard store driving the review scheduler.

    - cards: 各カードの現在の SRS 状態（interval/ease/due/review_count）
    - reviews: 採点履歴（追記のみ）
    - 採点は BEGIN IMMEDIATE で直列化し、srs.review の結果だけを書き戻す
    """

    def __init__(self, db_path: str, timezone_name: str = "UTC") -> None:
        self.db_path = db_path
        self.tz = ZoneInfo(timezone_name)
        self._ensure_dirs()
        self._init_db()

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10.0, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a connection inside an immediate (write-locked) transaction."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                yield conn
            except Exception:
                conn.execute("ROLLBACK;")
                raise
            conn.execute("COMMIT;")
        finally:
            conn.close()

    def _ensure_dirs(self) -> None:
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cards (
                    id TEXT PRIMARY KEY,
                    category TEXT NOT NULL DEFAULT '',
                    front TEXT NOT NULL,
                    back TEXT NOT NULL,
                    interval_days INTEGER NOT NULL DEFAULT 1,
                    ease_factor REAL NOT NULL DEFAULT 2.5,
                    review_count INTEGER NOT NULL DEFAULT 0,
                    due_at TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reviews (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    card_id TEXT NOT NULL,
                    reviewed_at TEXT NOT NULL,
                    rating TEXT NOT NULL,
                    interval_days INTEGER NOT NULL,
                    ease_factor REAL NOT NULL,
                    due_at TEXT NOT NULL,
                    FOREIGN KEY(card_id) REFERENCES cards(id) ON DELETE CASCADE
                );
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cards_category ON cards(category);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_reviews_reviewed_at ON reviews(reviewed_at);")
        finally:
            conn.close()

    @staticmethod
    def _upsert(conn: sqlite3.Connection, item: ReviewItem, created_at: str) -> None:
        conn.execute(
            """
            INSERT INTO cards(
                id, category, front, back, interval_days, ease_factor, review_count, due_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                category = excluded.category,
                front = excluded.front,
                back = excluded.back,
                interval_days = excluded.interval_days,
                ease_factor = excluded.ease_factor,
                review_count = excluded.review_count,
                due_at = excluded.due_at;
            """,
            (
                item.id,
                item.category,
                item.front,
                item.back,
                item.interval,
                item.ease_factor,
                item.review_count,
                _to_utc(item.due_date).isoformat(),
                created_at,
            ),
        )

    # --- cards ---
    def add_card(self, front: str, back: str, category: str, *, now: datetime | None = None) -> ReviewItem:
        """Create a card that is due immediately.

        新規カードは due=now, interval=1, ease=2.5 で作成する。
        """
        created = self.add_cards([{"front": front, "back": back, "category": category}], now=now)
        return created[0]

    def add_cards(self, cards: Iterable[Mapping[str, str]], *, now: datetime | None = None) -> list[ReviewItem]:
        moment = _to_utc(now or datetime.now(UTC))
        items = [
            ReviewItem(
                id=generate_card_id(),
                front=card["front"],
                back=card["back"],
                category=card.get("category", ""),
                due_date=moment,
                interval=INITIAL_INTERVAL_DAYS,
                ease_factor=INITIAL_EASE_FACTOR,
            )
            for card in cards
        ]
        with self._transaction() as conn:
            for item in items:
                self._upsert(conn, item, moment.isoformat())
        if len(items) == 1:
            logger.info("card_created", card_id=items[0].id, category=items[0].category)
        else:
            logger.info("cards_created", count=len(items))
        return items

    def get_card(self, card_id: str) -> ReviewItem | None:
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT {_CARD_COLUMNS} FROM cards WHERE id = ?;", (card_id,)).fetchone()
            return _row_to_item(row) if row is not None else None
        finally:
            conn.close()

    def list_cards(self, category: str | None = None) -> list[ReviewItem]:
        """Return cards newest first, optionally restricted to one category."""
        conn = self._connect()
        try:
            if category is None:
                cur = conn.execute(
                    f"SELECT {_CARD_COLUMNS} FROM cards ORDER BY created_at DESC, rowid DESC;"
                )
            else:
                cur = conn.execute(
                    f"SELECT {_CARD_COLUMNS} FROM cards WHERE category = ? ORDER BY created_at DESC, rowid DESC;",
                    (category,),
                )
            return [_row_to_item(row) for row in cur.fetchall()]
        finally:
            conn.close()

    def list_categories(self) -> list[str]:
        conn = self._connect()
        try:
            cur = conn.execute("SELECT DISTINCT category FROM cards WHERE category != '' ORDER BY category ASC;")
            return [row["category"] for row in cur.fetchall()]
        finally:
            conn.close()

    def delete_card(self, card_id: str) -> bool:
        """Delete a card and its review history. 存在しない場合は False。"""
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM cards WHERE id = ?;", (card_id,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info("card_deleted", card_id=card_id)
        return deleted

    # --- review ---
    def _local_now(self, now: datetime | None, tz: tzinfo | None) -> datetime:
        """Express ``now`` (default: current time) in the learner's timezone."""
        return _to_utc(now or datetime.now(UTC)).astimezone(tz or self.tz)

    def get_due(
        self,
        *,
        as_of: date | None = None,
        limit: int | None = None,
        tz: tzinfo | None = None,
    ) -> list[ReviewItem]:
        """Return cards due on or before ``as_of``'s day, earliest first.

        日付境界は ``tz``（省略時はストアのタイムゾーン）で判定する。
        ``as_of`` に date を渡した場合はその暦日をそのまま使う。
        """
        if as_of is None or isinstance(as_of, datetime):
            reference: date = self._local_now(as_of, tz)
        else:
            reference = as_of
        due = srs.select_due(self.list_cards(), reference)
        due.sort(key=lambda item: (_to_utc(item.due_date), item.id))
        return due[:limit] if limit is not None else due

    def grade(
        self,
        card_id: str,
        rating: Rating,
        *,
        is_first_review: bool | None = None,
        now: datetime | None = None,
    ) -> ReviewItem | None:
        """Apply a rating to a stored card and persist the result.

        BEGIN IMMEDIATE で同一 DB への書き込みを直列化し、読み込み→srs.review→
        書き戻し→履歴追記を一つのトランザクションで行う。
        """
        rating = Rating(rating)
        moment = _to_utc(now or datetime.now(UTC))
        with self._transaction() as conn:
            row = conn.execute(f"SELECT {_CARD_COLUMNS} FROM cards WHERE id = ?;", (card_id,)).fetchone()
            if row is None:
                return None
            updated = srs.review(_row_to_item(row), rating, now=moment, is_first_review=is_first_review)
            next_due = _to_utc(updated.due_date).isoformat()
            conn.execute(
                """
                UPDATE cards
                SET interval_days = ?, ease_factor = ?, review_count = ?, due_at = ?
                WHERE id = ?;
                """,
                (updated.interval, updated.ease_factor, updated.review_count, next_due, card_id),
            )
            conn.execute(
                """
                INSERT INTO reviews(card_id, reviewed_at, rating, interval_days, ease_factor, due_at)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (card_id, moment.isoformat(), rating.value, updated.interval, updated.ease_factor, next_due),
            )
        registry.record_review(rating.value)
        logger.info(
            "review_graded",
            card_id=card_id,
            rating=rating.value,
            interval=updated.interval,
            ease_factor=updated.ease_factor,
            review_count=updated.review_count,
            due_at=next_due,
        )
        return updated

    # --- stats & history ---
    def get_stats(self, *, now: datetime | None = None, tz: tzinfo | None = None) -> tuple[int, int]:
        """Return (due_today_count, reviewed_today_count).

        - due_today_count: 本日中に due となるカード件数
        - reviewed_today_count: 学習者のタイムゾーンで当日 00:00 以降にレビューされた件数
        """
        local = self._local_now(now, tz)
        local_midnight = datetime(local.year, local.month, local.day, tzinfo=local.tzinfo)
        today_start = local_midnight.astimezone(UTC)
        due_today = len(self.get_due(as_of=local, tz=tz))
        conn = self._connect()
        try:
            cur = conn.execute(
                "SELECT COUNT(1) AS c FROM reviews WHERE reviewed_at >= ?;",
                (today_start.isoformat(),),
            )
            reviewed_today = int(cur.fetchone()["c"])
        finally:
            conn.close()
        return due_today, reviewed_today

    def get_recent_reviewed(self, limit: int = 5) -> list[ReviewItem]:
        """直近にレビューしたカードを新しい順に最大 limit 件（重複なし）返す。"""
        conn = self._connect()
        try:
            cur = conn.execute(
                """
                SELECT c.id, c.category, c.front, c.back, c.interval_days, c.ease_factor, c.review_count, c.due_at
                FROM cards c
                JOIN (
                    SELECT card_id, MAX(id) AS last_id
                    FROM reviews
                    GROUP BY card_id
                ) r ON r.card_id = c.id
                ORDER BY r.last_id DESC
                LIMIT ?;
                """,
                (limit,),
            )
            return [_row_to_item(row) for row in cur.fetchall()]
        finally:
            conn.close()

    # --- profile load/save ---
    def export_profile(self) -> dict[str, Any]:
        return {"flashcards": [item.model_dump(mode="json") for item in self.list_cards()]}

    def import_profile(self, payload: Mapping[str, Any]) -> int:
        """Upsert the flashcards of a saved profile object.

        旧プロファイル互換: camelCase キーを受け付け、欠けた SRS 値は既定値で補う。
        形式不正のカードはスキップする。
        """
        raw_cards = payload.get("flashcards") or []
        if not isinstance(raw_cards, Sequence) or isinstance(raw_cards, (str, bytes)):
            raw_cards = []

        items: list[ReviewItem] = []
        skipped = 0
        for raw in raw_cards:
            if not isinstance(raw, Mapping):
                skipped += 1
                continue
            data = dict(raw)
            if not data.get("id"):
                data["id"] = generate_card_id()
            try:
                items.append(ReviewItem.model_validate(data))
            except ValidationError:
                skipped += 1

        created_at = datetime.now(UTC).isoformat()
        with self._transaction() as conn:
            for item in items:
                self._upsert(conn, item, created_at)
        logger.info("profile_imported", imported=len(items), skipped=skipped)
        return len(items)


# module-level singleton store (wired to settings)
store = FlashcardStore(db_path=settings.srs_db_path, timezone_name=settings.timezone)
