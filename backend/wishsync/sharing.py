import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qs, quote, urlparse

from wishsync.core.config import Settings, settings as default_settings
from wishsync.core.errors import NotFound, TransientSyncFailure
from wishsync.following import FollowedLists
from wishsync.identity import IdentityProvider
from wishsync.realtime.feed import Stream, Subscription
from wishsync.schemas.wishlist import Affordances, HomeView, ItemView, ViewMode, WishList
from wishsync.stores.items import ItemStore
from wishsync.stores.lists import ListStore
from wishsync.visibility import affordances, serialize_item, view_mode


logger = logging.getLogger("wishsync.sharing")

NOT_FOUND_MESSAGE = "List not found"
FETCH_FAILED_MESSAGE = "Could not load the list, check your connection and try again"
FOLLOWED_MESSAGE = "List added to your followed lists"


def build_share_link(list_id: str, settings: Settings | None = None) -> str:
    settings = settings or default_settings
    return f"https://{settings.share_host}/{settings.share_path}?id={quote(list_id, safe='')}"


def build_app_link(list_id: str, settings: Settings | None = None) -> str:
    settings = settings or default_settings
    return f"{settings.app_scheme}://{settings.share_host}?id={quote(list_id, safe='')}"


def parse_share_link(raw: str | None, settings: Settings | None = None) -> str | None:
    """Extract the list id from a share link, or None when there is no usable link."""
    settings = settings or default_settings
    if not raw or not raw.strip():
        return None
    try:
        parsed = urlparse(raw.strip())
    except ValueError:
        return None
    if parsed.scheme.lower() not in ("https", settings.app_scheme.lower()):
        return None
    for value in parse_qs(parsed.query).get("id", []):
        if value.strip():
            return value.strip()
    return None


class ResolveStatus(str, Enum):
    NO_DEEP_LINK = "no_deep_link"
    NOT_FOUND = "not_found"
    FETCH_FAILED = "fetch_failed"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Resolution:
    status: ResolveStatus
    mode: ViewMode = ViewMode.NONE
    wishlist: WishList | None = None
    followed: bool = False
    message: str | None = None

    @property
    def affordances(self) -> Affordances:
        return affordances(self.mode)


class ItemViewSubscription:
    """Item snapshots of one list, already filtered for one viewer."""

    def __init__(self, subscription: Subscription, viewer_id: str, mode: ViewMode) -> None:
        self._subscription = subscription
        self.viewer_id = viewer_id
        self.mode = mode

    @property
    def cancelled(self) -> bool:
        return self._subscription.cancelled

    def cancel(self) -> None:
        self._subscription.cancel()

    def __aiter__(self) -> "ItemViewSubscription":
        return self

    async def __anext__(self) -> list[ItemView]:
        items = await self._subscription.__anext__()
        return [serialize_item(item, self.viewer_id, self.mode) for item in items]

    async def next(self, timeout: float | None = None) -> list[ItemView]:
        return await asyncio.wait_for(self.__anext__(), timeout)

    async def __aenter__(self) -> "ItemViewSubscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.cancel()


class HomeSubscription(Stream):
    """Own lists and followed lists, each side live on its own.

    Emits a HomeView whenever either side emits. Following or unfollowing a
    list swaps the followed side for a subscription over the new id set.
    """

    def __init__(self, lists: ListStore, owner_id: str, followed: FollowedLists) -> None:
        super().__init__()
        self._lists = lists
        self._owner_id = owner_id
        self._followed = followed
        self._own: list[WishList] = []
        self._followed_lists: list[WishList] = []
        self._subscriptions: dict[str, Subscription] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._unsubscribe_followed = None

    async def start(self) -> "HomeSubscription":
        own = await self._lists.subscribe_by_owner(self._owner_id)
        ids = self._followed.ids()
        try:
            followed = await self._lists.subscribe_by_ids(ids)
        except BaseException:
            own.cancel()
            raise
        self._spawn("own", self._pump("own", own))
        self._subscriptions["own"] = own
        self._spawn("followed", self._pump("followed", followed))
        self._subscriptions["followed"] = followed
        self._unsubscribe_followed = self._followed.subscribe(self._retarget)
        # Follows that landed while the followed side was opening.
        current = self._followed.ids()
        if current != ids:
            self._retarget(current)
        return self

    def _spawn(self, side: str, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        task.add_done_callback(self._side_done)
        self._tasks[side] = task

    def _side_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.exception(
                "Home view side stopped owner_id=%s error=%s",
                self._owner_id,
                exc,
                exc_info=exc,
            )

    async def _pump(self, side: str, subscription: Subscription) -> None:
        try:
            async for snapshot in subscription:
                if self._cancelled:
                    return
                if side == "own":
                    self._own = snapshot
                else:
                    self._followed_lists = snapshot
                self._emit(HomeView(own=list(self._own), followed=list(self._followed_lists)))
        finally:
            subscription.cancel()

    async def _follow(self, ids: frozenset[str]) -> None:
        subscription = await self._lists.subscribe_by_ids(ids)
        if self._cancelled:
            subscription.cancel()
            return
        self._subscriptions["followed"] = subscription
        await self._pump("followed", subscription)

    def _retarget(self, ids: frozenset[str]) -> None:
        if self._cancelled:
            return
        previous = self._subscriptions.pop("followed", None)
        if previous is not None:
            previous.cancel()
        task = self._tasks.pop("followed", None)
        if task is not None:
            task.cancel()
        logger.debug("Home followed side retargeted owner_id=%s total=%s", self._owner_id, len(ids))
        self._spawn("followed", self._follow(ids))

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._unsubscribe_followed is not None:
            self._unsubscribe_followed()
        for subscription in self._subscriptions.values():
            subscription.cancel()
        for task in self._tasks.values():
            task.cancel()
        self._close()


class SharingResolver:
    def __init__(
        self,
        lists: ListStore,
        items: ItemStore,
        followed: FollowedLists,
        identity: IdentityProvider,
        settings: Settings | None = None,
    ) -> None:
        self._lists = lists
        self._items = items
        self._followed = followed
        self._identity = identity
        self._settings = settings or default_settings

    @property
    def my_id(self) -> str:
        return self._identity.get_or_create_identity()

    def view_mode(self, wishlist: WishList) -> ViewMode:
        return view_mode(wishlist, self.my_id)

    async def resolve_link(self, raw_link: str | None) -> Resolution:
        return await self.resolve(parse_share_link(raw_link, self._settings))

    async def resolve(self, list_id: str | None) -> Resolution:
        if list_id is None or not list_id.strip():
            return Resolution(ResolveStatus.NO_DEEP_LINK)
        list_id = list_id.strip()
        my_id = self.my_id

        try:
            wishlist = await self._lists.get_by_id(list_id)
        except TransientSyncFailure:
            logger.warning("Shared list fetch failed list_id=%s", list_id)
            return Resolution(ResolveStatus.FETCH_FAILED, message=FETCH_FAILED_MESSAGE)
        except NotFound:
            logger.info("Shared list not found list_id=%s", list_id)
            return Resolution(ResolveStatus.NOT_FOUND, message=NOT_FOUND_MESSAGE)

        if wishlist.owner_id == my_id:
            return Resolution(ResolveStatus.RESOLVED, ViewMode.OWNER, wishlist)

        newly_followed = self._followed.add(wishlist.id)
        return Resolution(
            ResolveStatus.RESOLVED,
            ViewMode.GUEST,
            wishlist,
            followed=newly_followed,
            message=FOLLOWED_MESSAGE if newly_followed else None,
        )

    def unfollow(self, list_id: str) -> bool:
        """Drop a list from this device's home view; the list itself is untouched."""
        return self._followed.remove(list_id)

    async def watch_home(self) -> HomeSubscription:
        return await HomeSubscription(self._lists, self.my_id, self._followed).start()

    async def watch_items(self, wishlist: WishList) -> ItemViewSubscription:
        my_id = self.my_id
        subscription = await self._items.subscribe_by_list(wishlist.id)
        return ItemViewSubscription(subscription, my_id, view_mode(wishlist, my_id))
