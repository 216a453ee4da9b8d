from wishsync.reservation import can_toggle
from wishsync.schemas.wishlist import Affordances, ItemStatus, ItemView, ViewMode, WishItem, WishList


def view_mode(wishlist: WishList, viewer_id: str) -> ViewMode:
    return ViewMode.OWNER if wishlist.owner_id == viewer_id else ViewMode.GUEST


def affordances(mode: ViewMode) -> Affordances:
    if mode == ViewMode.OWNER:
        return Affordances(
            can_add_items=True,
            can_delete_items=True,
            can_delete_list=True,
            can_share=True,
        )
    if mode == ViewMode.GUEST:
        return Affordances(can_toggle_reservations=True, can_unfollow=True)
    return Affordances()


def serialize_item(item: WishItem, viewer_id: str, mode: ViewMode) -> ItemView:
    """Strip ``reserved_by`` for everyone; guests only learn whether it is them."""
    if mode == ViewMode.OWNER:
        return ItemView(
            id=item.id,
            list_id=item.list_id,
            name=item.name,
            link=item.link,
            is_reserved=item.is_reserved,
            status=ItemStatus.RESERVED if item.is_reserved else ItemStatus.AVAILABLE,
        )

    reserved_by_me = item.is_reserved and item.reserved_by == viewer_id
    if not item.is_reserved:
        status = ItemStatus.AVAILABLE
    elif reserved_by_me:
        status = ItemStatus.RESERVED_BY_YOU
    else:
        status = ItemStatus.RESERVED
    return ItemView(
        id=item.id,
        list_id=item.list_id,
        name=item.name,
        link=item.link,
        is_reserved=item.is_reserved,
        status=status,
        reserved_by_me=reserved_by_me,
        can_toggle=mode == ViewMode.GUEST and can_toggle(item, viewer_id),
    )
