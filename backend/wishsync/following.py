import logging
from collections.abc import Callable

from wishsync.core.prefs import LocalPreferences
from wishsync.stores.lists import require_id


logger = logging.getLogger("wishsync.following")

FOLLOWED_LISTS_KEY = "followed_lists"


class FollowedLists:
    """The device-local set of list ids a guest keeps on their home view.

    Ids may point at lists that no longer exist. Every mutation reads the
    stored set, builds a new one and writes it back.
    """

    def __init__(self, prefs: LocalPreferences) -> None:
        self._prefs = prefs
        self._observers: list[Callable[[frozenset[str]], None]] = []

    def ids(self) -> frozenset[str]:
        return self._prefs.get_string_set(FOLLOWED_LISTS_KEY)

    def contains(self, list_id: str) -> bool:
        return list_id in self.ids()

    def add(self, list_id: str) -> bool:
        require_id("list_id", list_id)
        current = self.ids()
        if list_id in current:
            return False
        updated = current | {list_id}
        self._prefs.put_string_set(FOLLOWED_LISTS_KEY, updated)
        logger.info("Followed list id=%s total=%s", list_id, len(updated))
        self._notify(updated)
        return True

    def remove(self, list_id: str) -> bool:
        current = self.ids()
        if list_id not in current:
            return False
        updated = current - {list_id}
        self._prefs.put_string_set(FOLLOWED_LISTS_KEY, updated)
        logger.info("Unfollowed list id=%s total=%s", list_id, len(updated))
        self._notify(updated)
        return True

    def subscribe(self, callback: Callable[[frozenset[str]], None]) -> Callable[[], None]:
        """Call ``callback`` with the new set after each change; returns an unsubscribe function."""
        self._observers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return _unsubscribe

    def _notify(self, ids: frozenset[str]) -> None:
        for callback in list(self._observers):
            callback(ids)
