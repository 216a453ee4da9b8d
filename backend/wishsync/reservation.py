"""Who may flip an item's reservation, and what the flip writes.

A guest may reserve an unreserved item or release their own reservation,
never someone else's. The write touches ``is_reserved`` and ``reserved_by``
only, so an owner renaming the item at the same moment keeps the new name.

Two guests can read the same unreserved item and both decide to reserve it.
With conditional writes the second write finds the state changed and does
nothing; with last-write-wins the later write decides ``reserved_by``.
Either way the caller gets the optimistic state back, and subscriptions
re-emit whatever was actually stored.
"""

import logging

from wishsync.core.errors import InvalidReference, ReservationDenied
from wishsync.schemas.wishlist import WishItem
from wishsync.stores.items import ItemStore


logger = logging.getLogger("wishsync.reservation")


def can_toggle(item: WishItem, user_id: str) -> bool:
    return not item.is_reserved or item.reserved_by == user_id


def toggled(item: WishItem, user_id: str) -> WishItem:
    reserved = not item.is_reserved
    return item.model_copy(
        update={
            "is_reserved": reserved,
            "reserved_by": user_id if reserved else None,
        }
    )


class ReservationProtocol:
    def __init__(self, items: ItemStore, *, conditional: bool = True) -> None:
        self._items = items
        self._conditional = conditional

    @property
    def conditional(self) -> bool:
        return self._conditional

    def toggle(self, item: WishItem, acting_user_id: str, *, owner_id: str | None = None) -> WishItem:
        if not item.id or not item.id.strip():
            raise InvalidReference("item.id", item.id)
        if not acting_user_id or not acting_user_id.strip():
            raise InvalidReference("acting_user_id", acting_user_id)
        if owner_id is not None and owner_id == acting_user_id:
            raise ReservationDenied(item.id, "owners do not reserve their own items")
        if not can_toggle(item, acting_user_id):
            raise ReservationDenied(item.id, "item is reserved by someone else")

        updated = toggled(item, acting_user_id)
        expected = (item.is_reserved, item.reserved_by) if self._conditional else None
        self._items.set_reservation(
            item.id,
            updated.is_reserved,
            updated.reserved_by,
            expected=expected,
        )
        logger.info(
            "Reservation toggle scheduled item_id=%s reserved=%s conditional=%s",
            item.id,
            updated.is_reserved,
            self._conditional,
        )
        return updated
