import logging

from fastapi import APIRouter, status

from wishsync.api.deps import ItemStoreDep, ListStoreDep, ReservationsDep, http_error
from wishsync.core.errors import SyncError
from wishsync.schemas.wishlist import ItemView, ReservationToggle, ViewMode, WishItemUpdate
from wishsync.visibility import serialize_item

router = APIRouter(prefix="/items", tags=["items"])
logger = logging.getLogger("wishsync.api.items")


@router.patch("/{item_id}", status_code=status.HTTP_202_ACCEPTED)
async def edit_item(item_id: str, payload: WishItemUpdate, items: ItemStoreDep) -> dict[str, str]:
    try:
        items.edit(item_id, name=payload.name, link=payload.link)
    except SyncError as exc:
        raise http_error(exc) from None
    return {"status": "accepted"}


@router.delete("/{item_id}", status_code=status.HTTP_202_ACCEPTED)
async def delete_item(item_id: str, items: ItemStoreDep) -> dict[str, str]:
    try:
        items.delete(item_id)
    except SyncError as exc:
        raise http_error(exc) from None
    return {"status": "accepted"}


@router.post("/{item_id}/reservation", response_model=ItemView)
async def toggle_reservation(
    item_id: str,
    payload: ReservationToggle,
    items: ItemStoreDep,
    lists: ListStoreDep,
    reservations: ReservationsDep,
) -> ItemView:
    # Rules: guests only, reserve when free, release only your own reservation.
    try:
        item = await items.get_by_id(item_id)
        wishlist = await lists.get_by_id(item.list_id)
        updated = reservations.toggle(item, payload.user_id, owner_id=wishlist.owner_id)
    except SyncError as exc:
        logger.info("toggle_reservation rejected item_id=%s error=%s", item_id, exc)
        raise http_error(exc) from None
    return serialize_item(updated, payload.user_id, ViewMode.GUEST)
