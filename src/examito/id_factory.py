"""ID 生成ユーティリティ。

フラッシュカードの ID は prefix "fc:" + UUID で構成し、
インポートされた既存 ID（任意文字列）とも衝突しにくくする。
"""

from __future__ import annotations

import uuid


def generate_card_id() -> str:
    """Return a new opaque flashcard id."""

    return f"fc:{uuid.uuid4().hex}"
