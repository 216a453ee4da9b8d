"""
Share links, deep-link resolution, following and the live home view.
"""
import asyncio
import logging

import pytest

from wishsync.client import WishlistClient
from wishsync.core.config import Settings
from wishsync.core.prefs import LocalPreferences
from wishsync.schemas.wishlist import ItemStatus, ViewMode
from wishsync.sharing import (
    FETCH_FAILED_MESSAGE,
    NOT_FOUND_MESSAGE,
    ResolveStatus,
    build_app_link,
    build_share_link,
    parse_share_link,
)


async def until(stream, predicate, timeout: float = 2.0):
    """Read snapshots until one satisfies ``predicate``; return it."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise AssertionError("stream never produced the expected snapshot")
        snapshot = await stream.next(remaining)
        if predicate(snapshot):
            return snapshot


# ── Links ─────────────────────────────────────────────────────────────────────

class TestLinks:
    def test_share_link_format(self):
        assert build_share_link("abc123") == "https://wishproject-27a8b.web.app/partage?id=abc123"

    def test_parse_web_and_app_links(self):
        assert parse_share_link(build_share_link("abc123")) == "abc123"
        assert parse_share_link(build_app_link("abc123")) == "abc123"
        assert parse_share_link("https://wishproject-27a8b.web.app/partage?x=1&id=  abc  ") == "abc"

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "",
            "   ",
            "https://wishproject-27a8b.web.app/partage",
            "https://wishproject-27a8b.web.app/partage?id=",
            "https://wishproject-27a8b.web.app/partage?id=%20%20",
            "ftp://wishproject-27a8b.web.app/partage?id=abc",
        ],
    )
    def test_unusable_links(self, raw):
        assert parse_share_link(raw) is None

    def test_custom_share_host(self):
        settings = Settings(share_host="lists.example.org", share_path="share")
        link = build_share_link("abc", settings)
        assert link == "https://lists.example.org/share?id=abc"
        assert parse_share_link(link, settings) == "abc"


# ── Resolution ────────────────────────────────────────────────────────────────

class TestResolve:
    @pytest.mark.anyio
    async def test_link_without_id_is_no_deep_link(self, make_client):
        guest = make_client("guest")

        for raw in ("https://wishproject-27a8b.web.app/partage", "https://wishproject-27a8b.web.app/partage?id="):
            resolution = await guest.resolver.resolve_link(raw)
            assert resolution.status is ResolveStatus.NO_DEEP_LINK
            assert resolution.mode is ViewMode.NONE
        assert guest.followed.ids() == frozenset()

    @pytest.mark.anyio
    async def test_guest_follows_shared_list_once(self, store, make_client):
        owner, guest = make_client("owner"), make_client("guest")
        list_id = owner.create_list("Noel")
        await store.flush()

        first = await guest.resolver.resolve_link(owner.share_link(list_id))
        assert first.status is ResolveStatus.RESOLVED
        assert first.mode is ViewMode.GUEST
        assert first.wishlist.id == list_id
        assert first.followed is True
        assert first.affordances.can_toggle_reservations
        assert not first.affordances.can_add_items

        again = await guest.resolver.resolve(list_id)
        assert again.mode is ViewMode.GUEST
        assert again.followed is False
        assert guest.followed.ids() == frozenset({list_id})

    @pytest.mark.anyio
    async def test_owner_opening_own_link(self, store, make_client):
        owner = make_client("owner")
        list_id = owner.create_list("Noel")
        await store.flush()

        resolution = await owner.resolver.resolve_link(owner.share_link(list_id))
        assert resolution.mode is ViewMode.OWNER
        assert resolution.affordances.can_share
        assert resolution.affordances.can_delete_list
        assert owner.followed.ids() == frozenset()

    @pytest.mark.anyio
    async def test_unknown_list_is_not_found(self, make_client):
        guest = make_client("guest")

        resolution = await guest.resolver.resolve("deleted-list")
        assert resolution.status is ResolveStatus.NOT_FOUND
        assert resolution.message == NOT_FOUND_MESSAGE
        assert resolution.mode is ViewMode.NONE
        assert guest.followed.ids() == frozenset()

    @pytest.mark.anyio
    async def test_store_failure_is_reported_apart_from_not_found(self, broken_store, tmp_path):
        guest = WishlistClient(broken_store, LocalPreferences(tmp_path / "offline.json"))

        resolution = await guest.resolver.resolve("some-list")
        assert resolution.status is ResolveStatus.FETCH_FAILED
        assert resolution.message == FETCH_FAILED_MESSAGE
        assert guest.followed.ids() == frozenset()

    @pytest.mark.anyio
    async def test_unfollow_keeps_the_list(self, store, make_client):
        owner, guest = make_client("owner"), make_client("guest")
        list_id = owner.create_list("Noel")
        await store.flush()
        await guest.resolver.resolve(list_id)

        assert guest.resolver.unfollow(list_id) is True
        assert guest.resolver.unfollow(list_id) is False
        assert guest.followed.ids() == frozenset()
        assert (await owner.lists.get_by_id(list_id)).id == list_id


# ── Live views ────────────────────────────────────────────────────────────────

class TestWatch:
    @pytest.mark.anyio
    async def test_home_view_tracks_both_sides(self, store, make_client):
        owner, guest = make_client("owner"), make_client("guest")
        shared = owner.create_list("Noel")
        own = guest.create_list("Mes idees")
        await store.flush()
        await guest.resolver.resolve(shared)

        home = await guest.resolver.watch_home()
        view = await until(home, lambda v: v.own and v.followed)
        assert [wishlist.id for wishlist in view.own] == [own]
        assert [wishlist.id for wishlist in view.followed] == [shared]

        owner.lists.rename(shared, "Noel 2026")
        await store.flush()
        view = await until(home, lambda v: v.followed and v.followed[0].title == "Noel 2026")
        assert [wishlist.id for wishlist in view.own] == [own]

        guest.resolver.unfollow(shared)
        view = await until(home, lambda v: not v.followed)
        assert [wishlist.id for wishlist in view.own] == [own]

        home.cancel()
        for _ in range(50):
            if store.feed.listener_count() == 0:
                break
            await asyncio.sleep(0.01)
        assert store.feed.listener_count() == 0

    @pytest.mark.anyio
    async def test_home_view_picks_up_newly_followed_list(self, store, make_client):
        owner, guest = make_client("owner"), make_client("guest")
        shared = owner.create_list("Noel")
        await store.flush()

        home = await guest.resolver.watch_home()
        await until(home, lambda v: not v.followed)

        await guest.resolver.resolve(shared)
        view = await until(home, lambda v: v.followed)
        assert [wishlist.id for wishlist in view.followed] == [shared]
        home.cancel()

    @pytest.mark.anyio
    @pytest.mark.parametrize("yields", [0, 1, 2, 3, 5, 8, 13, 20])
    async def test_follow_while_home_view_starts(self, store, make_client, yields):
        owner, guest = make_client("owner"), make_client("guest")
        already = owner.create_list("Anniversaire")
        shared = owner.create_list("Noel")
        await store.flush()
        await guest.resolver.resolve(already)

        async def resolve_soon():
            for _ in range(yields):
                await asyncio.sleep(0)
            return await guest.resolver.resolve(shared)

        home, resolution = await asyncio.gather(guest.resolver.watch_home(), resolve_soon())
        assert resolution.followed is True
        assert guest.followed.ids() == frozenset({already, shared})

        view = await until(home, lambda v: len(v.followed) == 2)
        assert {wishlist.id for wishlist in view.followed} == {already, shared}
        home.cancel()

    @pytest.mark.anyio
    async def test_failed_followed_side_is_logged(self, store, make_client, caplog):
        guest = make_client("guest")
        home = await guest.resolver.watch_home()
        await until(home, lambda v: not v.followed)
        await store.close()

        with caplog.at_level(logging.ERROR, logger="wishsync.sharing"):
            # Re-opening the followed side now fails: the store is closed.
            guest.followed.add("some-list")
            for _ in range(50):
                if any(record.exc_info for record in caplog.records):
                    break
                await asyncio.sleep(0.01)

        [record] = [record for record in caplog.records if record.exc_info]
        assert record.name == "wishsync.sharing"
        assert "DocumentStore is closed" in record.getMessage()
        home.cancel()

    @pytest.mark.anyio
    async def test_item_views_per_viewer(self, store, make_client):
        owner, guest = make_client("owner"), make_client("guest")
        list_id = owner.create_list("Noel")
        item_id = owner.add_item(list_id, "Velo")
        await store.flush()
        wishlist = await owner.lists.get_by_id(list_id)

        await guest.toggle_reservation(await guest.items.get_by_id(item_id))
        await store.flush()

        async with await owner.resolver.watch_items(wishlist) as owner_view:
            [seen_by_owner] = await owner_view.next(1)
        async with await guest.resolver.watch_items(wishlist) as guest_view:
            [seen_by_guest] = await guest_view.next(1)

        assert seen_by_owner.status is ItemStatus.RESERVED
        assert "reserved_by" not in seen_by_owner.model_dump()
        assert guest.user_id not in seen_by_owner.model_dump_json()
        assert seen_by_owner.can_toggle is False

        assert seen_by_guest.status is ItemStatus.RESERVED_BY_YOU
        assert seen_by_guest.reserved_by_me is True
        assert seen_by_guest.can_toggle is True
