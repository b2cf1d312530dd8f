from datetime import tzinfo
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, HTTPException, Query

from .. import srs
from ..config import settings
from ..models.review import (
    ReviewGradeRequest,
    ReviewGradeResponse,
    ReviewStatsResponse,
    ReviewTodayResponse,
    SmartReviewRequest,
    SmartReviewResponse,
)
from ..store import store

router = APIRouter(tags=["review"])

TimezoneQuery = Annotated[
    str | None,
    Query(
        max_length=64,
        description="IANA timezone for the learner's day (default: settings.timezone) / 学習者のタイムゾーン",
    ),
]


def _resolve_tz(name: str | None) -> tzinfo | None:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise HTTPException(status_code=422, detail=f"unknown timezone: {name}") from None


@router.get("/today", response_model=ReviewTodayResponse, summary="本日の復習カードを取得")
async def review_today(
    limit: int | None = Query(default=None, ge=1, le=500),
    tz: TimezoneQuery = None,
) -> ReviewTodayResponse:
    """Return cards due today, earliest first.

    limit 未指定時は settings.srs_max_today 件まで返す。
    「今日」は tz（未指定時は settings.timezone）の暦日で判定する。
    """
    due = store.get_due(tz=_resolve_tz(tz))
    cap = limit or settings.srs_max_today
    return ReviewTodayResponse(items=due[:cap], total_due=len(due))


@router.post("/grade", response_model=ReviewGradeResponse, summary="採点して次回出題日を更新")
async def review_grade(req: ReviewGradeRequest) -> ReviewGradeResponse:
    """Grade a card (hard/good/easy) and return its next schedule."""
    updated = store.grade(req.item_id, req.rating, is_first_review=req.is_first_review)
    if updated is None:
        raise HTTPException(status_code=404, detail="item not found")
    return ReviewGradeResponse(
        ok=True,
        next_due=updated.due_date,
        interval=updated.interval,
        ease_factor=updated.ease_factor,
    )


@router.get("/stats", response_model=ReviewStatsResponse, summary="進捗統計（本日の残数、直近レビュー）")
async def review_stats(tz: TimezoneQuery = None) -> ReviewStatsResponse:
    """Return progress stats for the session experience.

    - due_now: 本日中に due のカード件数
    - reviewed_today: 当日（tz の 00:00 以降）レビュー済み数
    - recent: 直近レビュー（最大5件）
    """
    due_now, reviewed_today = store.get_stats(tz=_resolve_tz(tz))
    recent = store.get_recent_reviewed(limit=5)
    return ReviewStatsResponse(due_now=due_now, reviewed_today=reviewed_today, recent=recent)


@router.post("/smart", response_model=SmartReviewResponse, summary="おすすめカテゴリに絞った復習デッキ")
async def review_smart(req: SmartReviewRequest) -> SmartReviewResponse:
    """Build a shuffled deck from the recommended categories.

    カテゴリの推薦は呼び出し側（LLM 等）が行う。全カード数が
    smart_review_min_cards 未満なら 400 を返す。
    """
    cards = store.list_cards()
    if len(cards) < settings.smart_review_min_cards:
        raise HTTPException(
            status_code=400,
            detail=f"need at least {settings.smart_review_min_cards} flashcards for a smart review",
        )
    deck = srs.select_for_categories(cards, req.categories, limit=settings.smart_review_max_cards)
    return SmartReviewResponse(items=deck, deck_size=len(deck), categories=req.categories)
