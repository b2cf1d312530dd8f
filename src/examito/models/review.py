from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# 新規カードの初期値と SM-2 系アルゴリズムの下限値。
INITIAL_INTERVAL_DAYS: int = 1
INITIAL_EASE_FACTOR: float = 2.5
MIN_INTERVAL_DAYS: int = 1
MAX_INTERVAL_DAYS: int = 36500  # 100 年
MIN_EASE_FACTOR: float = 1.3


class Rating(str, Enum):
    """Learner's self-assessed recall quality for one review."""

    hard = "hard"
    good = "good"
    easy = "easy"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ReviewItem(BaseModel):
    """A single front/back flashcard tracked by the scheduler.

    SRS の状態は (due_date, interval, ease_factor) の三つ組と、初回判定用の
    review_count で表す。インスタンスは不変で、更新は常に新しい値を返す。

    旧プロファイル（camelCase の dueDate/easeFactor/subject）からの読み込みを
    受け付け、欠損値は作成時の既定値で、下限割れは下限値で補正する。
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    front: str
    back: str
    category: str = Field(
        default="",
        validation_alias=AliasChoices("category", "subject"),
        description="Grouping label (subject) / 出題カテゴリ",
    )
    due_date: datetime = Field(
        default_factory=_utcnow,
        validation_alias=AliasChoices("due_date", "dueDate"),
    )
    interval: int = Field(
        default=INITIAL_INTERVAL_DAYS,
        description="Days until the next review / 次回復習までの日数",
    )
    ease_factor: float = Field(
        default=INITIAL_EASE_FACTOR,
        validation_alias=AliasChoices("ease_factor", "easeFactor"),
        description="Interval growth multiplier / 間隔の伸び率",
    )
    review_count: int = Field(
        default=0,
        validation_alias=AliasChoices("review_count", "reviewCount"),
        description="Number of graded reviews so far / 採点済み回数",
    )

    @field_validator("due_date", mode="before")
    @classmethod
    def _backfill_due_date(cls, value: object) -> object:
        if value is None or value == "":
            return _utcnow()
        return value

    @field_validator("interval", mode="before")
    @classmethod
    def _backfill_interval(cls, value: object) -> object:
        # 0 や欠損は「未設定」とみなす
        if not value:
            return INITIAL_INTERVAL_DAYS
        return value

    @field_validator("interval", mode="after")
    @classmethod
    def _clamp_interval(cls, value: int) -> int:
        return min(MAX_INTERVAL_DAYS, max(MIN_INTERVAL_DAYS, value))

    @field_validator("ease_factor", mode="before")
    @classmethod
    def _backfill_ease_factor(cls, value: object) -> object:
        if not value:
            return INITIAL_EASE_FACTOR
        return value

    @field_validator("ease_factor", mode="after")
    @classmethod
    def _clamp_ease_factor(cls, value: float) -> float:
        return max(MIN_EASE_FACTOR, value)

    @field_validator("review_count", mode="after")
    @classmethod
    def _clamp_review_count(cls, value: int) -> int:
        return value if value >= 0 else 0


class CardCreateRequest(BaseModel):
    """Request model for creating a flashcard.

    表・裏・カテゴリはいずれも空白のみを許可しない。
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    front: str = Field(min_length=1, max_length=2000, description="問題・概念（表面）")
    back: str = Field(min_length=1, max_length=4000, description="解答・解説（裏面）")
    category: str = Field(
        min_length=1,
        max_length=128,
        validation_alias=AliasChoices("category", "subject"),
        description="カテゴリ（科目）",
    )


class CardBulkCreateRequest(BaseModel):
    cards: list[CardCreateRequest] = Field(min_length=1, max_length=500)


class CardListResponse(BaseModel):
    items: list[ReviewItem]


class CategoryListResponse(BaseModel):
    categories: list[str]


class ProfileImportResponse(BaseModel):
    imported: int


class ReviewTodayResponse(BaseModel):
    """Response model for today's review items.

    今日の復習対象（due_date が本日以前のカード）と、上限適用前の総件数。
    """

    items: list[ReviewItem]
    total_due: int


class ReviewGradeRequest(BaseModel):
    """Request model for submitting a review rating.

    is_first_review を省略した場合は、カードの採点履歴（review_count）から判定する。
    """

    item_id: str = Field(min_length=1)
    rating: Rating
    is_first_review: bool | None = None


class ReviewGradeResponse(BaseModel):
    ok: bool
    next_due: datetime
    interval: int
    ease_factor: float


class ReviewStatsResponse(BaseModel):
    """進捗の見える化用の統計レスポンス。

    - due_now: 本日中に出題すべき件数（残数）
    - reviewed_today: 今日レビュー済み件数
    - recent: 直近レビューした最大5件
    """

    due_now: int
    reviewed_today: int
    recent: list[ReviewItem] = []


class SmartReviewRequest(BaseModel):
    """Categories recommended for a focused review session."""

    categories: list[str] = Field(min_length=1)


class SmartReviewResponse(BaseModel):
    """Smart Review のデッキ。due 判定とは無関係にカテゴリで抽出したカード。

    - deck_size: シャッフル・上限適用後のデッキ枚数
    - categories: 抽出に使ったカテゴリ
    """

    items: list[ReviewItem]
    deck_size: int
    categories: list[str]
