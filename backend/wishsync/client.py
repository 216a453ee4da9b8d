
from wishsync.core.config import Settings, settings as default_settings
from wishsync.core.prefs import LocalPreferences
from wishsync.db.session import DocumentStore
from wishsync.following import FollowedLists
from wishsync.identity import IdentityProvider
from wishsync.reservation import ReservationProtocol
from wishsync.schemas.wishlist import WishItem
from wishsync.sharing import SharingResolver, build_share_link
from wishsync.stores.items import ItemStore
from wishsync.stores.lists import ListStore, require_id


class WishlistClient:
    """Everything one device needs, wired around a shared DocumentStore.

    The store is passed in so several devices (or tests) can share it.
    """

    def __init__(
        self,
        store: DocumentStore,
        prefs: LocalPreferences,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.store = store
        self.identity = IdentityProvider(prefs)
        self.followed = FollowedLists(prefs)
        self.lists = ListStore(store)
        self.items = ItemStore(store)
        self.reservations = ReservationProtocol(
            self.items,
            conditional=self.settings.conditional_reservations,
        )
        self.resolver = SharingResolver(
            self.lists,
            self.items,
            self.followed,
            self.identity,
            settings=self.settings,
        )

    @property
    def user_id(self) -> str:
        return self.identity.get_or_create_identity()

    def create_list(self, title: str) -> str:
        return self.lists.create(self.user_id, title)

    def add_item(self, list_id: str, name: str, link: str = "") -> str:
        return self.items.add(list_id, name, link)

    def share_link(self, list_id: str) -> str:
        return build_share_link(list_id, self.settings)

    async def toggle_reservation(self, item: WishItem) -> WishItem:
        """Toggle as this device's user, refusing it on the user's own lists."""
        require_id("item.id", item.id)
        wishlist = await self.lists.get_by_id(item.list_id)
        return self.reservations.toggle(item, self.user_id, owner_id=wishlist.owner_id)
