from typing import Annotated
import logging

from fastapi import Depends, HTTPException, status
from fastapi.requests import HTTPConnection

from wishsync.core.config import Settings
from wishsync.core.errors import (
    InvalidReference,
    NotFound,
    ReservationDenied,
    SyncError,
    TransientSyncFailure,
)
from wishsync.db.session import DocumentStore
from wishsync.reservation import ReservationProtocol
from wishsync.stores.items import ItemStore
from wishsync.stores.lists import ListStore


logger = logging.getLogger("wishsync.api")


def get_store(connection: HTTPConnection) -> DocumentStore:
    return connection.app.state.store


def get_settings(connection: HTTPConnection) -> Settings:
    return connection.app.state.settings


StoreDep = Annotated[DocumentStore, Depends(get_store)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_list_store(store: StoreDep) -> ListStore:
    return ListStore(store)


def get_item_store(store: StoreDep) -> ItemStore:
    return ItemStore(store)


ListStoreDep = Annotated[ListStore, Depends(get_list_store)]
ItemStoreDep = Annotated[ItemStore, Depends(get_item_store)]


def get_reservations(items: ItemStoreDep, settings: SettingsDep) -> ReservationProtocol:
    return ReservationProtocol(items, conditional=settings.conditional_reservations)


ReservationsDep = Annotated[ReservationProtocol, Depends(get_reservations)]


def http_error(exc: SyncError) -> HTTPException:
    """Map a sync error onto the HTTP status the routes answer with."""
    if isinstance(exc, TransientSyncFailure):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, NotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidReference):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, ReservationDenied):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.reason)
    logger.error("Unmapped sync error: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
