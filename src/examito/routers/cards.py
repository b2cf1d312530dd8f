from typing import Any

from fastapi import APIRouter, Body, HTTPException, Response

from ..models.review import (
    CardBulkCreateRequest,
    CardCreateRequest,
    CardListResponse,
    CategoryListResponse,
    ProfileImportResponse,
    ReviewItem,
)
from ..store import store

router = APIRouter(tags=["cards"])


@router.get("", response_model=CardListResponse, summary="カード一覧（新しい順）")
async def list_cards(category: str | None = None) -> CardListResponse:
    return CardListResponse(items=store.list_cards(category=category))


@router.post("", response_model=ReviewItem, status_code=201, summary="カードを作成（即日出題）")
async def create_card(req: CardCreateRequest) -> ReviewItem:
    return store.add_card(req.front, req.back, req.category)


@router.post("/bulk", response_model=CardListResponse, status_code=201, summary="カードを一括作成")
async def create_cards(req: CardBulkCreateRequest) -> CardListResponse:
    items = store.add_cards([card.model_dump() for card in req.cards])
    return CardListResponse(items=items)


@router.get("/categories", response_model=CategoryListResponse, summary="カテゴリ一覧")
async def list_categories() -> CategoryListResponse:
    return CategoryListResponse(categories=store.list_categories())


@router.get("/export", summary="プロファイル（全カード）をエクスポート")
async def export_profile() -> dict[str, Any]:
    return store.export_profile()


@router.post("/import", response_model=ProfileImportResponse, summary="プロファイルからカードを取り込み")
async def import_profile(payload: dict[str, Any] = Body(...)) -> ProfileImportResponse:
    """Import the flashcards of a saved profile.

    既存 ID は上書き、SRS 値の欠損は既定値で補完する。
    """
    return ProfileImportResponse(imported=store.import_profile(payload))


@router.delete("/{card_id}", status_code=204, summary="カードを削除")
async def delete_card(card_id: str) -> Response:
    if not store.delete_card(card_id):
        raise HTTPException(status_code=404, detail="card not found")
    return Response(status_code=204)
