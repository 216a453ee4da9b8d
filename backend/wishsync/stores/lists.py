import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from wishsync.core.errors import InvalidReference, ListNotFound, LookupFailed
from wishsync.db.session import DocumentStore
from wishsync.models.models import WishListRecord
from wishsync.realtime.feed import Change, Subscription
from wishsync.schemas.wishlist import WishList, WishListCreate, WishListUpdate


logger = logging.getLogger("wishsync.lists")

LISTS = "lists"
ITEMS = "items"


def require_id(field: str, value: str | None) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidReference(field, value)
    return value


def _list_change(list_id: str, owner_id: str) -> list[Change]:
    # Item subscriptions of the list re-check that it still exists.
    return [
        Change(LISTS, {"id": list_id, "owner_id": owner_id}),
        Change(ITEMS, {"list_id": list_id}),
    ]


class ListStore:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def create(self, owner_id: str, title: str) -> str:
        """Allocate an id, schedule the insert and return the id right away."""
        require_id("owner_id", owner_id)
        payload = WishListCreate(owner_id=owner_id, title=title)
        list_id = str(uuid4())
        created_at = datetime.now(timezone.utc)

        async def _write(session: AsyncSession) -> list[Change]:
            session.add(
                WishListRecord(
                    id=list_id,
                    owner_id=payload.owner_id,
                    title=payload.title,
                    created_at=created_at,
                )
            )
            return _list_change(list_id, payload.owner_id)

        self._store.submit(f"create_list id={list_id}", _write)
        logger.info("List create scheduled id=%s owner_id=%s", list_id, owner_id)
        return list_id

    def rename(self, list_id: str, title: str) -> None:
        require_id("list_id", list_id)
        payload = WishListUpdate(title=title)

        async def _write(session: AsyncSession) -> list[Change]:
            record = await session.get(WishListRecord, list_id)
            if record is None:
                raise ListNotFound(list_id)
            await session.execute(
                update(WishListRecord)
                .where(WishListRecord.id == list_id)
                .values(title=payload.title)
                .execution_options(synchronize_session=False)
            )
            return _list_change(list_id, record.owner_id)

        self._store.submit(f"rename_list id={list_id}", _write)

    def delete(self, list_id: str) -> None:
        """Schedule the delete. Items of the list are left in place."""
        require_id("list_id", list_id)

        async def _write(session: AsyncSession) -> list[Change]:
            record = await session.get(WishListRecord, list_id)
            if record is None:
                logger.info("List delete skipped, already gone id=%s", list_id)
                return []
            owner_id = record.owner_id
            await session.execute(delete(WishListRecord).where(WishListRecord.id == list_id))
            return _list_change(list_id, owner_id)

        self._store.submit(f"delete_list id={list_id}", _write)
        logger.info("List delete scheduled id=%s", list_id)

    async def get_by_id(self, list_id: str) -> WishList:
        require_id("list_id", list_id)
        try:
            async with self._store.session() as session:
                record = await session.get(WishListRecord, list_id)
        except SQLAlchemyError as exc:
            logger.warning("List lookup failed id=%s error=%s", list_id, exc)
            raise LookupFailed(list_id, kind="list") from exc
        if record is None:
            raise ListNotFound(list_id)
        return WishList.model_validate(record)

    async def list_by_owner(self, owner_id: str) -> list[WishList]:
        async with self._store.session() as session:
            result = await session.execute(
                select(WishListRecord)
                .where(WishListRecord.owner_id == owner_id)
                .order_by(WishListRecord.created_at.desc(), WishListRecord.id)
            )
            return [WishList.model_validate(record) for record in result.scalars()]

    async def list_by_ids(self, list_ids: Iterable[str]) -> list[WishList]:
        ids = sorted(set(list_ids))
        if not ids:
            return []
        async with self._store.session() as session:
            result = await session.execute(
                select(WishListRecord)
                .where(WishListRecord.id.in_(ids))
                .order_by(WishListRecord.created_at.desc(), WishListRecord.id)
            )
            return [WishList.model_validate(record) for record in result.scalars()]

    async def subscribe_by_owner(self, owner_id: str) -> Subscription:
        require_id("owner_id", owner_id)
        return await self._store.open_subscription(
            LISTS,
            lambda: self.list_by_owner(owner_id),
            lambda doc: doc.get("owner_id") == owner_id,
            name=f"lists:owner={owner_id}",
        )

    async def subscribe_by_ids(self, list_ids: Iterable[str]) -> Subscription:
        ids = frozenset(list_ids)
        if not ids:
            return Subscription.single([], name="lists:ids=[]")
        return await self._store.open_subscription(
            LISTS,
            lambda: self.list_by_ids(ids),
            lambda doc: doc.get("id") in ids,
            name=f"lists:ids={len(ids)}",
        )
