# app/api/favorites.py
from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.database import get_db
from app.core.errors import BadRequestError, NotFoundError
from app.core.security import authenticate
from app.models import catalog as dbm
from app.models.schemas import FavoriteIn, FavoritesOut, JobOut, MessageOut, UniversityOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/favorite", tags=["Favorites"])

_MODELS = {"university": dbm.University, "job": dbm.Job}


def _already_favorite(item_type: str) -> BadRequestError:
    if item_type == "university":
        return BadRequestError(
            "این دانشگاه قبلاً به علاقه‌مندی‌ها اضافه شده است",
            "This university is already in favorites",
        )
    return BadRequestError(
        "این شغل قبلاً به علاقه‌مندی‌ها اضافه شده است",
        "This job is already in favorites",
    )


@router.get("", response_model=FavoritesOut)
async def list_favorites(
    identity: dict = Depends(authenticate),
    db: AsyncSession = Depends(get_db),
):
    favs = (
        await db.execute(select(dbm.Favorite).where(dbm.Favorite.user_id == identity["sub"]))
    ).scalars().all()
    ids = {kind: [f.item_id for f in favs if f.item_type == kind] for kind in _MODELS}

    out = {}
    for kind, model in _MODELS.items():
        if not ids[kind]:
            out[kind] = []
            continue
        rows = await db.execute(select(model).where(model.id.in_(ids[kind])))
        out[kind] = rows.scalars().all()

    return FavoritesOut(
        universities=[UniversityOut.model_validate(u) for u in out["university"]],
        jobs=[JobOut.model_validate(j) for j in out["job"]],
    )


@router.post("/add", response_model=MessageOut)
async def add_favorite(
    payload: FavoriteIn,
    identity: dict = Depends(authenticate),
    db: AsyncSession = Depends(get_db),
):
    if await db.get(_MODELS[payload.type], payload.id) is None:
        raise NotFoundError("مورد مورد نظر یافت نشد", "Item not found")

    existing = await db.execute(
        select(dbm.Favorite).where(
            dbm.Favorite.user_id == identity["sub"],
            dbm.Favorite.item_type == payload.type,
            dbm.Favorite.item_id == payload.id,
        )
    )
    if existing.scalars().first():
        raise _already_favorite(payload.type)

    db.add(dbm.Favorite(user_id=identity["sub"], item_type=payload.type, item_id=payload.id))
    try:
        await db.commit()
    except IntegrityError as e:
        # a concurrent add of the same item won the unique constraint
        await db.rollback()
        raise _already_favorite(payload.type) from e
    logger.info("Favorite added", extra={"user_id": identity["sub"], "type": payload.type, "id": payload.id})
    return MessageOut(
        message="با موفقیت به علاقه‌مندی‌ها اضافه شد",
        message_en="Added to favorites successfully",
    )


@router.delete("/{item_type}/{item_id}", response_model=MessageOut)
async def remove_favorite(
    item_type: Literal["university", "job"],
    item_id: int,
    identity: dict = Depends(authenticate),
    db: AsyncSession = Depends(get_db),
):
    fav = (
        await db.execute(
            select(dbm.Favorite).where(
                dbm.Favorite.user_id == identity["sub"],
                dbm.Favorite.item_type == item_type,
                dbm.Favorite.item_id == item_id,
            )
        )
    ).scalars().first()
    if fav is None:
        raise NotFoundError(
            "این مورد در علاقه‌مندی‌های شما یافت نشد",
            "Item not found in your favorites",
        )

    await db.delete(fav)
    await db.commit()
    logger.info("Favorite removed", extra={"user_id": identity["sub"], "type": item_type, "id": item_id})
    return MessageOut(
        message="با موفقیت از علاقه‌مندی‌ها حذف شد",
        message_en="Removed from favorites successfully",
    )
