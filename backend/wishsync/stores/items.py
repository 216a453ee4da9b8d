import logging
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from wishsync.core.errors import ItemNotFound, ListNotFound, LookupFailed
from wishsync.db.session import DocumentStore
from wishsync.models.models import WishItemRecord, WishListRecord
from wishsync.realtime.feed import Change, Subscription
from wishsync.schemas.wishlist import WishItem, WishItemCreate, WishItemUpdate
from wishsync.stores.lists import ITEMS, require_id


logger = logging.getLogger("wishsync.items")


class ItemStore:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def add(self, list_id: str, name: str, link: str = "") -> str:
        require_id("list_id", list_id)
        payload = WishItemCreate(name=name, link=link)
        item_id = str(uuid4())
        created_at = datetime.now(timezone.utc)

        async def _write(session: AsyncSession) -> list[Change]:
            if await session.get(WishListRecord, list_id) is None:
                raise ListNotFound(list_id)
            session.add(
                WishItemRecord(
                    id=item_id,
                    list_id=list_id,
                    name=payload.name,
                    link=payload.link,
                    is_reserved=False,
                    reserved_by=None,
                    created_at=created_at,
                )
            )
            return [Change(ITEMS, {"id": item_id, "list_id": list_id})]

        self._store.submit(f"add_item id={item_id} list_id={list_id}", _write)
        logger.info("Item add scheduled id=%s list_id=%s", item_id, list_id)
        return item_id

    def edit(self, item_id: str, *, name: str | None = None, link: str | None = None) -> None:
        """Owner-side edit; only the given fields are written."""
        require_id("item_id", item_id)
        values = WishItemUpdate(name=name, link=link).model_dump(exclude_none=True)
        if not values:
            return

        async def _write(session: AsyncSession) -> list[Change]:
            list_id = await self._list_id_of(session, item_id)
            await session.execute(
                update(WishItemRecord)
                .where(WishItemRecord.id == item_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return [Change(ITEMS, {"id": item_id, "list_id": list_id})]

        self._store.submit(f"edit_item id={item_id} fields={sorted(values)}", _write)

    def set_reservation(
        self,
        item_id: str,
        is_reserved: bool,
        reserved_by: str | None,
        *,
        expected: tuple[bool, str | None] | None = None,
    ) -> None:
        """Write ``is_reserved`` and ``reserved_by`` and nothing else.

        With ``expected`` set to the ``(is_reserved, reserved_by)`` pair the
        caller last saw, the write only applies if the stored pair still
        matches; otherwise it changes nothing and counts as a conflict.
        """
        require_id("item_id", item_id)
        if is_reserved:
            require_id("reserved_by", reserved_by)
        else:
            reserved_by = None

        async def _write(session: AsyncSession) -> list[Change]:
            list_id = await self._list_id_of(session, item_id)
            stmt = (
                update(WishItemRecord)
                .where(WishItemRecord.id == item_id)
                .values(is_reserved=is_reserved, reserved_by=reserved_by)
                .execution_options(synchronize_session=False)
            )
            if expected is not None:
                was_reserved, was_reserved_by = expected
                stmt = stmt.where(WishItemRecord.is_reserved == was_reserved)
                if was_reserved_by is None:
                    stmt = stmt.where(WishItemRecord.reserved_by.is_(None))
                else:
                    stmt = stmt.where(WishItemRecord.reserved_by == was_reserved_by)
            result = await session.execute(stmt)
            if expected is not None and result.rowcount == 0:
                self._store.metrics.record_conflict()
                logger.warning(
                    "Reservation write lost a race item_id=%s list_id=%s",
                    item_id,
                    list_id,
                )
            return [Change(ITEMS, {"id": item_id, "list_id": list_id})]

        self._store.submit(f"set_reservation id={item_id} reserved={is_reserved}", _write)

    def delete(self, item_id: str) -> None:
        require_id("item_id", item_id)

        async def _write(session: AsyncSession) -> list[Change]:
            record = await session.get(WishItemRecord, item_id)
            if record is None:
                logger.info("Item delete skipped, already gone id=%s", item_id)
                return []
            list_id = record.list_id
            await session.execute(delete(WishItemRecord).where(WishItemRecord.id == item_id))
            return [Change(ITEMS, {"id": item_id, "list_id": list_id})]

        self._store.submit(f"delete_item id={item_id}", _write)
        logger.info("Item delete scheduled id=%s", item_id)

    async def get_by_id(self, item_id: str) -> WishItem:
        require_id("item_id", item_id)
        try:
            async with self._store.session() as session:
                record = await session.get(WishItemRecord, item_id)
        except SQLAlchemyError as exc:
            logger.warning("Item lookup failed id=%s error=%s", item_id, exc)
            raise LookupFailed(item_id, kind="item") from exc
        if record is None:
            raise ItemNotFound(item_id)
        return WishItem.model_validate(record)

    async def list_by_list(self, list_id: str) -> list[WishItem]:
        """Items of a list, oldest first; empty once the list is deleted."""
        async with self._store.session() as session:
            if await session.get(WishListRecord, list_id) is None:
                return []
            result = await session.execute(
                select(WishItemRecord)
                .where(WishItemRecord.list_id == list_id)
                .order_by(WishItemRecord.created_at.asc(), WishItemRecord.id)
            )
            return [WishItem.model_validate(record) for record in result.scalars()]

    async def subscribe_by_list(self, list_id: str) -> Subscription:
        require_id("list_id", list_id)
        return await self._store.open_subscription(
            ITEMS,
            lambda: self.list_by_list(list_id),
            lambda doc: doc.get("list_id") == list_id,
            name=f"items:list={list_id}",
        )

    @staticmethod
    async def _list_id_of(session: AsyncSession, item_id: str) -> str:
        result = await session.execute(
            select(WishItemRecord.list_id).where(WishItemRecord.id == item_id)
        )
        list_id = result.scalar_one_or_none()
        if list_id is None:
            raise ItemNotFound(item_id)
        return list_id
