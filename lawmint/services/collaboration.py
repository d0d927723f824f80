"""
Server side of collaborative editing.

CRDT updates are opaque base64 blobs produced by the editor's client library;
the server only orders, stores and relays them.  Merging happens on clients.
Presence is a heartbeat table: users idle longer than
``PRESENCE_TIMEOUT_SECONDS`` drop out of the active set.
"""
from __future__ import annotations

import base64
import binascii
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.config import settings
from lawmint.models.database_models import CollaborationUpdate, Presence, User
from lawmint.utils.helpers import utcnow

logger = logging.getLogger(__name__)

PRESENCE_COLORS: List[str] = [
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#FFA07A",
    "#98D8C8",
    "#F7DC6F",
    "#BB8FCE",
    "#85C1E2",
]


class InvalidUpdateError(ValueError):
    """Update payload is not valid base64."""


class UpdateTooLargeError(ValueError):
    """Decoded update exceeds MAX_UPDATE_SIZE."""


# ---------------------------------------------------------------------------
# Presence helpers
# ---------------------------------------------------------------------------

def color_for_user(user_id: str) -> str:
    """Deterministic cursor color: sum of code points modulo the palette size."""
    return PRESENCE_COLORS[sum(ord(c) for c in user_id) % len(PRESENCE_COLORS)]


def activity_status(active: List[Presence], current_user_id: str) -> str:
    others = [p for p in active if p.user_id != current_user_id]
    if not others:
        return "You are editing alone"
    if len(others) == 1:
        return f"{others[0].name} is editing"
    return f"{len(others)} people are editing"


async def heartbeat(
    db: AsyncSession,
    document_id: str,
    user: User,
    cursor_position: Optional[int] = None,
) -> Presence:
    """Insert or refresh the caller's presence row."""
    result = await db.execute(
        select(Presence).where(
            Presence.document_id == document_id,
            Presence.user_id == user.id,
        )
    )
    presence = result.scalar_one_or_none()
    if presence is None:
        presence = Presence(
            document_id=document_id,
            user_id=user.id,
            name=user.name,
            email=user.email,
            color=color_for_user(user.id),
        )
        db.add(presence)
    presence.name = user.name
    presence.cursor_position = cursor_position
    presence.last_active = utcnow()
    await db.flush()
    return presence


async def list_active(db: AsyncSession, document_id: str) -> List[Presence]:
    """Users with a heartbeat inside the presence timeout, oldest first."""
    cutoff = utcnow() - timedelta(seconds=settings.PRESENCE_TIMEOUT_SECONDS)
    result = await db.execute(
        select(Presence)
        .where(Presence.document_id == document_id, Presence.last_active >= cutoff)
        .order_by(Presence.last_active, Presence.user_id)
    )
    return list(result.scalars().all())


async def leave(db: AsyncSession, document_id: str, user_id: str) -> None:
    await db.execute(
        delete(Presence).where(
            Presence.document_id == document_id,
            Presence.user_id == user_id,
        )
    )


# ---------------------------------------------------------------------------
# Update log
# ---------------------------------------------------------------------------

def decode_update(update: str) -> bytes:
    """
    Validate a base64 update and return its bytes.

    Raises:
        InvalidUpdateError: not a base64 string, or empty
        UpdateTooLargeError: decoded payload is over MAX_UPDATE_SIZE
    """
    if not isinstance(update, str):
        raise InvalidUpdateError("Update must be a base64 string")
    try:
        raw = base64.b64decode(update, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidUpdateError("Update must be base64 encoded") from e
    if not raw:
        raise InvalidUpdateError("Update is empty")
    if len(raw) > settings.MAX_UPDATE_SIZE:
        raise UpdateTooLargeError(
            f"Update is {len(raw)} bytes; limit is {settings.MAX_UPDATE_SIZE}"
        )
    return raw


async def append_update(
    db: AsyncSession,
    document_id: str,
    user_id: str,
    update: str,
) -> CollaborationUpdate:
    """Validate and persist one update; its ``id`` is the new sequence number."""
    decode_update(update)
    record = CollaborationUpdate(document_id=document_id, user_id=user_id, update=update)
    db.add(record)
    await db.flush()
    return record


async def list_updates(
    db: AsyncSession,
    document_id: str,
    since: int = 0,
) -> List[CollaborationUpdate]:
    """Updates with sequence number greater than *since*, ascending."""
    result = await db.execute(
        select(CollaborationUpdate)
        .where(
            CollaborationUpdate.document_id == document_id,
            CollaborationUpdate.id > since,
        )
        .order_by(CollaborationUpdate.id)
    )
    return list(result.scalars().all())


async def latest_seq(db: AsyncSession, document_id: str) -> int:
    result = await db.execute(
        select(func.max(CollaborationUpdate.id)).where(
            CollaborationUpdate.document_id == document_id
        )
    )
    return result.scalar() or 0


async def purge_document(db: AsyncSession, document_id: str) -> None:
    """Drop the update log and presence rows of a deleted document."""
    await db.execute(
        delete(CollaborationUpdate).where(CollaborationUpdate.document_id == document_id)
    )
    await db.execute(delete(Presence).where(Presence.document_id == document_id))


def serialize_update(record: CollaborationUpdate) -> Dict[str, Any]:
    return {
        "seq": record.id,
        "user_id": record.user_id,
        "update": record.update,
        "created_at": record.created_at,
    }


# ---------------------------------------------------------------------------
# WebSocket relay
# ---------------------------------------------------------------------------

class CollaborationHub:
    """In-process registry of WebSocket connections per document."""

    _rooms: Dict[str, Set[WebSocket]] = {}

    @classmethod
    def connect(cls, document_id: str, websocket: WebSocket) -> None:
        cls._rooms.setdefault(document_id, set()).add(websocket)
        logger.info(
            "Collaboration socket joined document %s (%d connected)",
            document_id,
            len(cls._rooms[document_id]),
        )

    @classmethod
    def disconnect(cls, document_id: str, websocket: WebSocket) -> None:
        sockets = cls._rooms.get(document_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            cls._rooms.pop(document_id, None)

    @classmethod
    def connection_count(cls, document_id: str) -> int:
        return len(cls._rooms.get(document_id, ()))

    @classmethod
    async def broadcast(
        cls,
        document_id: str,
        message: Dict[str, Any],
        exclude: Optional[WebSocket] = None,
    ) -> int:
        """
        Send *message* to every socket on *document_id* except *exclude*.

        Sockets that fail to receive are dropped.  Returns the number of
        sockets the message reached.
        """
        delivered = 0
        for ws in list(cls._rooms.get(document_id, ())):
            if ws is exclude:
                continue
            try:
                await ws.send_json(message)
                delivered += 1
            except Exception as exc:
                logger.warning("Dropping collaboration socket on %s: %s", document_id, exc)
                cls.disconnect(document_id, ws)
        return delivered

    @classmethod
    def reset(cls) -> None:
        cls._rooms.clear()


# Module-level singleton instance
collaboration_hub = CollaborationHub
