from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.types import NoDecode


DEFAULT_DB_PATH = ".data/examito.sqlite3"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - timezone: 「今日」（期限判定・本日の採点数）を区切るタイムゾーン
    - srs_db_path: フラッシュカード（SRS）の SQLite 保存先
    - srs_max_today: 本日の復習で一度に返す最大件数
    - smart_review_*: カテゴリ絞り込み復習（Smart Review）の件数制約
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level / ルートロガーのログレベル",
    )

    timezone: str = Field(
        default="UTC",
        description=(
            "IANA timezone that defines the learner's day / "
            "「今日」の境界に使う IANA タイムゾーン"
        ),
    )

    # --- SRS（復習）の永続化設定 ---
    srs_db_path: str = Field(
        default=DEFAULT_DB_PATH,
        description="Path to SRS SQLite database / SRS用SQLite DBパス",
    )
    srs_max_today: int = Field(
        default=50,
        ge=1,
        description="Max items to return for today's review / 本日の最大出題数",
    )

    # --- Smart Review ---
    smart_review_min_cards: int = Field(
        default=5,
        ge=1,
        description=(
            "Minimum cards required to build a smart review deck / "
            "Smart Review を組むのに必要な最小カード数"
        ),
    )
    smart_review_max_cards: int = Field(
        default=15,
        ge=1,
        description="Max cards in a smart review deck / Smart Review の最大出題数",
    )

    allowed_cors_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(),
        description=(
            "Comma separated list of allowed CORS origins / "
            "CORS で許可するオリジン（カンマ区切り）"
        ),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        name = value.strip() or "UTC"
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise ValueError(f"unknown timezone: {value!r}") from exc
        return name

    @field_validator("allowed_cors_origins", mode="before")
    @classmethod
    def _normalise_allowed_cors_origins(cls, raw: object) -> tuple[str, ...] | object:
        """Split, trim and deduplicate configured origins.

        末尾スラッシュの有無で同一オリジンが重複登録されないよう正規化する。
        """

        if raw is None:
            candidates: list[str] = []
        elif isinstance(raw, str):
            candidates = raw.split(",")
        else:
            try:
                candidates = list(raw)
            except TypeError:
                return raw

        normalised: list[str] = []
        seen: set[str] = set()
        for candidate in candidates:
            if not isinstance(candidate, str):
                continue
            trimmed = candidate.strip().rstrip("/")
            if not trimmed or trimmed in seen:
                continue
            seen.add(trimmed)
            normalised.append(trimmed)
        return tuple(normalised)


settings = Settings()
