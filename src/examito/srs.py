"""Spaced-repetition review scheduler.

簡略化した SM-2 系アルゴリズム。全関数は純粋関数で、入力の ReviewItem を
変更せず新しい値を返す。現在時刻は呼び出し側が渡す。

- hard: 間隔を 1 日にリセットし、ease を 0.2 下げる（下限 1.3）
- good/easy の初回: 3 日 / 7 日の固定間隔
- good/easy の 2 回目以降: ceil(interval * ease)（上限 MAX_INTERVAL_DAYS）
- easy: ease を 0.15 上げる
"""

from __future__ import annotations

import math
import random
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta

from .models.review import (
    MAX_INTERVAL_DAYS,
    MIN_EASE_FACTOR,
    MIN_INTERVAL_DAYS,
    Rating,
    ReviewItem,
)


FIRST_REVIEW_INTERVAL_DAYS: dict[Rating, int] = {
    Rating.good: 3,
    Rating.easy: 7,
}
EASY_EASE_BONUS = 0.15
HARD_EASE_PENALTY = 0.2


def _calendar_day(value: datetime, reference: date) -> date:
    """Return the calendar day of ``value`` as seen from ``reference``'s timezone."""

    if (
        isinstance(reference, datetime)
        and reference.tzinfo is not None
        and value.tzinfo is not None
    ):
        value = value.astimezone(reference.tzinfo)
    return value.date()


def select_due(items: Iterable[ReviewItem], as_of: date) -> list[ReviewItem]:
    """Return the items due on or before the calendar day of ``as_of``.

    The comparison is date-granular: an item due later today still counts.
    Input order is preserved.
    """

    as_of_day = as_of.date() if isinstance(as_of, datetime) else as_of
    return [item for item in items if _calendar_day(item.due_date, as_of) <= as_of_day]


def next_interval(item: ReviewItem, rating: Rating, is_first_review: bool) -> int:
    if rating is Rating.hard:
        return MIN_INTERVAL_DAYS
    if is_first_review:
        return FIRST_REVIEW_INTERVAL_DAYS[rating]
    interval = min(MAX_INTERVAL_DAYS, max(MIN_INTERVAL_DAYS, item.interval))
    ease = max(MIN_EASE_FACTOR, item.ease_factor)
    grown = interval * ease
    if grown >= MAX_INTERVAL_DAYS:
        return MAX_INTERVAL_DAYS
    return max(MIN_INTERVAL_DAYS, math.ceil(grown))


def next_ease_factor(item: ReviewItem, rating: Rating) -> float:
    ease = max(MIN_EASE_FACTOR, item.ease_factor)
    if rating is Rating.easy:
        return ease + EASY_EASE_BONUS
    if rating is Rating.hard:
        return max(MIN_EASE_FACTOR, ease - HARD_EASE_PENALTY)
    return ease


def review(
    item: ReviewItem,
    rating: Rating,
    *,
    now: datetime,
    is_first_review: bool | None = None,
) -> ReviewItem:
    """Apply one graded review and return the updated item.

    ``is_first_review`` defaults to whether the item has never been graded
    (``review_count == 0``). Only ``interval``, ``ease_factor``, ``due_date``
    and ``review_count`` change.
    """

    rating = Rating(rating)
    if is_first_review is None:
        is_first_review = item.review_count == 0

    interval = next_interval(item, rating, is_first_review)
    ease_factor = next_ease_factor(item, rating)
    return item.model_copy(
        update={
            "interval": interval,
            "ease_factor": ease_factor,
            "due_date": now + timedelta(days=interval),
            "review_count": item.review_count + 1,
        }
    )


def select_for_categories(
    items: Iterable[ReviewItem],
    categories: Sequence[str],
    *,
    limit: int,
    rng: random.Random | None = None,
) -> list[ReviewItem]:
    """Build a shuffled deck restricted to ``categories`` (Smart Review).

    おすすめカテゴリは外部（LLM など）から受け取る。件数は ``limit`` まで。
    """

    wanted = set(categories)
    deck = [item for item in items if item.category in wanted]
    (rng or random.Random()).shuffle(deck)
    return deck[: max(0, limit)]
