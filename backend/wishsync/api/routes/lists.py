import logging

from fastapi import APIRouter, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from wishsync.api.deps import ItemStoreDep, ListStoreDep, http_error
from wishsync.core.errors import SyncError
from wishsync.schemas.wishlist import (
    CreatedId,
    ItemView,
    WishItemCreate,
    WishList,
    WishListCreate,
    WishListUpdate,
)
from wishsync.visibility import serialize_item, view_mode

router = APIRouter(prefix="/lists", tags=["lists"])
logger = logging.getLogger("wishsync.api.lists")

ACCEPTED = {"status": "accepted"}


@router.post("", response_model=CreatedId, status_code=status.HTTP_202_ACCEPTED)
async def create_list(payload: WishListCreate, lists: ListStoreDep) -> CreatedId:
    # Accepted, not created: the write may still fail and nobody is told.
    try:
        list_id = lists.create(payload.owner_id, payload.title)
    except SyncError as exc:
        raise http_error(exc) from None
    return CreatedId(id=list_id)


@router.get("", response_model=list[WishList])
async def list_by_owner(owner_id: str, lists: ListStoreDep) -> list[WishList]:
    if not owner_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="owner_id is required")
    try:
        return await lists.list_by_owner(owner_id)
    except SQLAlchemyError:
        logger.exception("list_by_owner: query failed owner_id=%s", owner_id)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Store unavailable") from None


@router.get("/{list_id}", response_model=WishList)
async def get_list(list_id: str, lists: ListStoreDep) -> WishList:
    try:
        return await lists.get_by_id(list_id)
    except SyncError as exc:
        raise http_error(exc) from None


@router.patch("/{list_id}", status_code=status.HTTP_202_ACCEPTED)
async def rename_list(list_id: str, payload: WishListUpdate, lists: ListStoreDep) -> dict[str, str]:
    try:
        lists.rename(list_id, payload.title)
    except SyncError as exc:
        raise http_error(exc) from None
    return ACCEPTED


@router.delete("/{list_id}", status_code=status.HTTP_202_ACCEPTED)
async def delete_list(list_id: str, lists: ListStoreDep) -> dict[str, str]:
    try:
        lists.delete(list_id)
    except SyncError as exc:
        raise http_error(exc) from None
    return ACCEPTED


@router.post("/{list_id}/items", response_model=CreatedId, status_code=status.HTTP_202_ACCEPTED)
async def add_item(list_id: str, payload: WishItemCreate, items: ItemStoreDep) -> CreatedId:
    try:
        item_id = items.add(list_id, payload.name, payload.link)
    except SyncError as exc:
        raise http_error(exc) from None
    return CreatedId(id=item_id)


@router.get("/{list_id}/items", response_model=list[ItemView])
async def list_items(
    list_id: str,
    user_id: str,
    lists: ListStoreDep,
    items: ItemStoreDep,
) -> list[ItemView]:
    """Items of the list as ``user_id`` may see them."""
    try:
        wishlist = await lists.get_by_id(list_id)
        snapshot = await items.list_by_list(wishlist.id)
    except SyncError as exc:
        raise http_error(exc) from None
    except SQLAlchemyError:
        logger.exception("list_items: query failed list_id=%s", list_id)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Store unavailable") from None
    mode = view_mode(wishlist, user_id)
    return [serialize_item(item, user_id, mode) for item in snapshot]
