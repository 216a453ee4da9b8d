import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from wishsync.api.deps import ItemStoreDep, ListStoreDep
from wishsync.core.errors import NotFound, SyncError
from wishsync.visibility import serialize_item, view_mode

router = APIRouter(tags=["ws"])
logger = logging.getLogger("wishsync.ws")


@router.websocket("/ws/lists/{list_id}")
async def list_items_ws(
    websocket: WebSocket,
    list_id: str,
    lists: ListStoreDep,
    items: ItemStoreDep,
    user_id: str = "",
) -> None:
    await websocket.accept()
    logger.info("WS accepted list_id=%s", list_id)

    # ── Wishlist lookup & role ───────────────────────────────────────────
    try:
        wishlist = await lists.get_by_id(list_id)
    except NotFound:
        logger.warning("WS list not found list_id=%s", list_id)
        await websocket.close(code=1008)
        return
    except SyncError:
        logger.warning("WS invalid list reference list_id=%s", list_id)
        await websocket.close(code=1008)
        return

    if not user_id.strip():
        logger.warning("WS user_id missing list_id=%s", list_id)
        await websocket.close(code=1008)
        return

    mode = view_mode(wishlist, user_id)
    subscription = await items.subscribe_by_list(wishlist.id)
    logger.info("WS subscribed list_id=%s role=%s", list_id, mode.value)

    async def _watch_client() -> None:
        # Ends the subscription as soon as the client goes away.
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("WS disconnected list_id=%s", list_id)
        finally:
            subscription.cancel()

    watcher = asyncio.get_running_loop().create_task(_watch_client())

    # ── Snapshot loop ───────────────────────────────────────────────────
    try:
        async for snapshot in subscription:
            await websocket.send_json(
                {
                    "type": "items",
                    "list_id": wishlist.id,
                    "role": mode.value,
                    "items": [
                        serialize_item(item, user_id, mode).model_dump(mode="json")
                        for item in snapshot
                    ],
                }
            )
    except (WebSocketDisconnect, RuntimeError):
        logger.info("WS send failed, closing list_id=%s", list_id)
    finally:
        subscription.cancel()
        watcher.cancel()
