"""
Collaborative editing relay.

POST   /{document_id}/updates   — append a base64 CRDT update (edit access)
GET    /{document_id}/updates   — updates after ?since= (view access)
POST   /{document_id}/presence  — heartbeat; returns the active set
GET    /{document_id}/presence  — active users and activity status
DELETE /{document_id}/presence  — leave the document
WS     /{document_id}/ws?token= — live relay of updates and awareness messages
"""
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.database import AsyncSessionLocal, get_db, session_scope
from lawmint.dependencies.auth import get_current_user, get_user_from_token
from lawmint.models.database_models import Presence, User
from lawmint.models.schemas import (
    PresenceHeartbeatRequest,
    PresenceResponse,
    PresenceUser,
    UpdateListResponse,
    UpdatePushRequest,
    UpdateResponse,
)
from lawmint.services import collaboration
from lawmint.services.collaboration import (
    InvalidUpdateError,
    UpdateTooLargeError,
    collaboration_hub,
)
from lawmint.services.documents import get_editable_document, get_viewable_document
from lawmint.services.permissions import can_edit_document

logger = logging.getLogger(__name__)

router = APIRouter()

# Close codes for rejected sockets (application range 4000-4999)
WS_UNAUTHORIZED = 4401
WS_FORBIDDEN = 4403
WS_NOT_FOUND = 4404


def _presence_response(document_id: str, active: List[Presence], user_id: str) -> PresenceResponse:
    return PresenceResponse(
        document_id=document_id,
        active_users=[PresenceUser.model_validate(p) for p in active],
        activity_status=collaboration.activity_status(active, user_id),
    )


# ---------------------------------------------------------------------------
# Update log
# ---------------------------------------------------------------------------

@router.post("/{document_id}/updates", response_model=UpdateResponse, status_code=status.HTTP_201_CREATED)
async def push_update(
    document_id: str,
    body: UpdatePushRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UpdateResponse:
    await get_editable_document(db, document_id, current_user)
    try:
        record = await collaboration.append_update(db, document_id, current_user.id, body.update)
    except UpdateTooLargeError as e:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e))
    except InvalidUpdateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    payload = collaboration.serialize_update(record)
    await collaboration_hub.broadcast(
        document_id,
        {"type": "update", **payload, "created_at": record.created_at.isoformat()},
    )
    return UpdateResponse(**payload)


@router.get("/{document_id}/updates", response_model=UpdateListResponse)
async def get_updates(
    document_id: str,
    since: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UpdateListResponse:
    """Updates with ``seq > since`` in ascending order; ``since=0`` is the initial load."""
    await get_viewable_document(db, document_id, current_user)
    updates = await collaboration.list_updates(db, document_id, since)
    latest = updates[-1].id if updates else await collaboration.latest_seq(db, document_id)
    return UpdateListResponse(
        document_id=document_id,
        latest_seq=latest,
        updates=[UpdateResponse(**collaboration.serialize_update(u)) for u in updates],
    )


# ---------------------------------------------------------------------------
# Presence
# ---------------------------------------------------------------------------

@router.post("/{document_id}/presence", response_model=PresenceResponse)
async def heartbeat(
    document_id: str,
    body: PresenceHeartbeatRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> PresenceResponse:
    await get_viewable_document(db, document_id, current_user)
    await collaboration.heartbeat(db, document_id, current_user, body.cursor_position)
    active = await collaboration.list_active(db, document_id)
    return _presence_response(document_id, active, current_user.id)


@router.get("/{document_id}/presence", response_model=PresenceResponse)
async def get_presence(
    document_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> PresenceResponse:
    await get_viewable_document(db, document_id, current_user)
    active = await collaboration.list_active(db, document_id)
    return _presence_response(document_id, active, current_user.id)


@router.delete("/{document_id}/presence", status_code=status.HTTP_204_NO_CONTENT)
async def leave_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    await get_viewable_document(db, document_id, current_user)
    await collaboration.leave(db, document_id, current_user.id)


# ---------------------------------------------------------------------------
# WebSocket relay
# ---------------------------------------------------------------------------

@router.websocket("/{document_id}/ws")
async def collaboration_socket(websocket: WebSocket, document_id: str, token: str = Query("")):
    """
    Live relay.

    The socket is accepted first and then authenticated, so rejections arrive
    as close codes the browser can read: 4401 bad token, 4404 unknown
    document, 4403 no view access.  The socket joins the room before history
    is read, then receives ``{"type": "sync", "updates": [...], "latest_seq": n}``;
    an update that lands in between may arrive twice and clients drop it by
    ``seq``.  ``update`` messages from editors are persisted, acknowledged
    and forwarded; ``awareness`` messages are forwarded only.
    """
    await websocket.accept()

    async with AsyncSessionLocal() as db:
        user = await get_user_from_token(token, db) if token else None
        if user is None:
            await websocket.close(code=WS_UNAUTHORIZED)
            return
        try:
            document = await get_viewable_document(db, document_id, user)
        except HTTPException as e:
            await websocket.close(code=WS_NOT_FOUND if e.status_code == 404 else WS_FORBIDDEN)
            return
        can_edit = can_edit_document(document, user.id, user.firm_id)

    collaboration_hub.connect(document_id, websocket)
    try:
        async with AsyncSessionLocal() as db:
            history = await collaboration.list_updates(db, document_id, 0)
        await websocket.send_json({
            "type": "sync",
            "updates": [
                {**collaboration.serialize_update(u), "created_at": u.created_at.isoformat()}
                for u in history
            ],
            "latest_seq": history[-1].id if history else 0,
        })

        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"type": "error", "detail": "Message must be JSON"})
                continue
            kind = message.get("type") if isinstance(message, dict) else None

            if kind == "awareness":
                await collaboration_hub.broadcast(
                    document_id,
                    {"type": "awareness", "user_id": user.id, "state": message.get("state")},
                    exclude=websocket,
                )
            elif kind == "update":
                if not can_edit:
                    await websocket.send_json({"type": "error", "detail": "Read-only access"})
                    continue
                try:
                    async with session_scope() as db:
                        record = await collaboration.append_update(
                            db, document_id, user.id, message.get("update")
                        )
                except (InvalidUpdateError, UpdateTooLargeError) as e:
                    await websocket.send_json({"type": "error", "detail": str(e)})
                    continue
                payload = {
                    "type": "update",
                    **collaboration.serialize_update(record),
                    "created_at": record.created_at.isoformat(),
                }
                await websocket.send_json({"type": "ack", "seq": record.id})
                await collaboration_hub.broadcast(document_id, payload, exclude=websocket)
            else:
                await websocket.send_json({"type": "error", "detail": "Unknown message type"})
    except WebSocketDisconnect:
        pass
    finally:
        collaboration_hub.disconnect(document_id, websocket)
        logger.info("Collaboration socket for user %s left document %s", user.id, document_id)
