"""Tests for the collaboration update log, presence tracking and socket relay."""
import base64
from datetime import timedelta

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from httpx import AsyncClient
from sqlalchemy import select

from lawmint.config import settings
from lawmint.main import app
from lawmint.models.database_models import Presence
from lawmint.services.collaboration import (
    PRESENCE_COLORS,
    CollaborationHub,
    InvalidUpdateError,
    UpdateTooLargeError,
    color_for_user,
    decode_update,
)
from lawmint.utils.helpers import utcnow


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


async def _firm_wide_doc(client: AsyncClient, firm) -> str:
    resp = await client.post(
        "/api/documents/",
        json={"title": "Shared letter", "firm_id": firm.id, "visibility": "firm-wide"},
        headers=firm.lawyer.headers,
    )
    return resp.json()["document_id"]


class FakeSocket:
    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


# ---------------------------------------------------------------------------
# Update validation
# ---------------------------------------------------------------------------

def test_decode_update_rejects_bad_payloads(monkeypatch):
    assert decode_update(_b64(b"\x01\x02")) == b"\x01\x02"
    with pytest.raises(InvalidUpdateError):
        decode_update("not base64!")
    with pytest.raises(InvalidUpdateError):
        decode_update("")
    for not_a_string in (123, None, ["AQI="]):
        with pytest.raises(InvalidUpdateError):
            decode_update(not_a_string)

    monkeypatch.setattr(settings, "MAX_UPDATE_SIZE", 4)
    with pytest.raises(UpdateTooLargeError):
        decode_update(_b64(b"12345"))


def test_color_for_user_is_deterministic():
    assert color_for_user("abc") == color_for_user("abc")
    assert color_for_user("abc") == PRESENCE_COLORS[(97 + 98 + 99) % 8]


# ---------------------------------------------------------------------------
# Update log endpoints
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_push_and_fetch_updates(client: AsyncClient, firm):
    doc_id = await _firm_wide_doc(client, firm)
    url = f"/api/collaboration/{doc_id}/updates"

    first = await client.post(url, json={"update": _b64(b"first")}, headers=firm.lawyer.headers)
    second = await client.post(url, json={"update": _b64(b"second")}, headers=firm.paralegal.headers)
    assert first.status_code == 201
    assert second.status_code == 201
    assert second.json()["seq"] > first.json()["seq"]
    assert second.json()["user_id"] == firm.paralegal.id

    resp = await client.get(url, headers=firm.admin.headers)
    data = resp.json()
    assert [u["update"] for u in data["updates"]] == [_b64(b"first"), _b64(b"second")]
    assert data["latest_seq"] == second.json()["seq"]

    resp = await client.get(url, params={"since": first.json()["seq"]}, headers=firm.admin.headers)
    assert [u["seq"] for u in resp.json()["updates"]] == [second.json()["seq"]]

    resp = await client.get(url, params={"since": second.json()["seq"]}, headers=firm.admin.headers)
    assert resp.json()["updates"] == []
    assert resp.json()["latest_seq"] == second.json()["seq"]


@pytest.mark.asyncio
async def test_push_update_validation(client: AsyncClient, firm, monkeypatch):
    doc_id = await _firm_wide_doc(client, firm)
    url = f"/api/collaboration/{doc_id}/updates"

    resp = await client.post(url, json={"update": "%%%"}, headers=firm.lawyer.headers)
    assert resp.status_code == 400

    monkeypatch.setattr(settings, "MAX_UPDATE_SIZE", 4)
    resp = await client.post(url, json={"update": _b64(b"too large")}, headers=firm.lawyer.headers)
    assert resp.status_code == 413


@pytest.mark.asyncio
async def test_read_only_user_cannot_push(client: AsyncClient, firm, outsider):
    resp = await client.post(
        "/api/documents/",
        json={"title": "Private", "firm_id": firm.id},
        headers=firm.lawyer.headers,
    )
    doc_id = resp.json()["document_id"]
    await client.post(
        f"/api/documents/{doc_id}/share",
        json={"visibility": "shared", "shared_with": [firm.paralegal.id], "can_edit": False},
        headers=firm.lawyer.headers,
    )
    url = f"/api/collaboration/{doc_id}/updates"

    resp = await client.post(url, json={"update": _b64(b"x")}, headers=firm.paralegal.headers)
    assert resp.status_code == 403
    assert (await client.get(url, headers=firm.paralegal.headers)).status_code == 200
    assert (await client.get(url, headers=outsider.headers)).status_code == 403


@pytest.mark.asyncio
async def test_push_broadcasts_to_connected_sockets(client: AsyncClient, firm):
    doc_id = await _firm_wide_doc(client, firm)
    socket = FakeSocket()
    CollaborationHub.connect(doc_id, socket)

    await client.post(
        f"/api/collaboration/{doc_id}/updates",
        json={"update": _b64(b"live")},
        headers=firm.lawyer.headers,
    )
    assert socket.sent[0]["type"] == "update"
    assert socket.sent[0]["update"] == _b64(b"live")


# ---------------------------------------------------------------------------
# Presence
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_presence_heartbeat_and_status(client: AsyncClient, firm):
    doc_id = await _firm_wide_doc(client, firm)
    url = f"/api/collaboration/{doc_id}/presence"

    resp = await client.post(url, json={"cursor_position": 12}, headers=firm.lawyer.headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["activity_status"] == "You are editing alone"
    assert data["active_users"][0]["cursor_position"] == 12
    assert data["active_users"][0]["color"] == color_for_user(firm.lawyer.id)

    resp = await client.post(url, json={}, headers=firm.admin.headers)
    assert resp.json()["activity_status"] == "Larry Lawyer is editing"

    resp = await client.post(url, json={}, headers=firm.paralegal.headers)
    assert resp.json()["activity_status"] == "2 people are editing"
    assert len(resp.json()["active_users"]) == 3


@pytest.mark.asyncio
async def test_stale_presence_drops_out(client: AsyncClient, firm, db_session):
    doc_id = await _firm_wide_doc(client, firm)
    url = f"/api/collaboration/{doc_id}/presence"
    await client.post(url, json={}, headers=firm.lawyer.headers)
    await client.post(url, json={}, headers=firm.admin.headers)

    result = await db_session.execute(
        select(Presence).where(Presence.document_id == doc_id, Presence.user_id == firm.lawyer.id)
    )
    presence = result.scalar_one()
    presence.last_active = utcnow() - timedelta(seconds=settings.PRESENCE_TIMEOUT_SECONDS + 60)
    await db_session.flush()

    resp = await client.get(url, headers=firm.admin.headers)
    assert [u["user_id"] for u in resp.json()["active_users"]] == [firm.admin.id]


@pytest.mark.asyncio
async def test_leave_removes_presence(client: AsyncClient, firm, outsider):
    doc_id = await _firm_wide_doc(client, firm)
    url = f"/api/collaboration/{doc_id}/presence"
    await client.post(url, json={}, headers=firm.lawyer.headers)

    resp = await client.delete(url, headers=firm.lawyer.headers)
    assert resp.status_code == 204
    assert (await client.get(url, headers=firm.lawyer.headers)).json()["active_users"] == []

    assert (await client.post(url, json={}, headers=outsider.headers)).status_code == 403


# ---------------------------------------------------------------------------
# Hub
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_hub_broadcast_excludes_sender_and_drops_dead_sockets():
    sender, peer, dead = FakeSocket(), FakeSocket(), FakeSocket(fail=True)
    for ws in (sender, peer, dead):
        CollaborationHub.connect("doc", ws)
    assert CollaborationHub.connection_count("doc") == 3

    delivered = await CollaborationHub.broadcast("doc", {"type": "awareness"}, exclude=sender)
    assert delivered == 1
    assert peer.sent == [{"type": "awareness"}]
    assert sender.sent == []
    assert CollaborationHub.connection_count("doc") == 2

    CollaborationHub.disconnect("doc", sender)
    CollaborationHub.disconnect("doc", peer)
    assert CollaborationHub.connection_count("doc") == 0


# ---------------------------------------------------------------------------
# Socket relay
# ---------------------------------------------------------------------------

def _ws_url(document_id: str, account) -> str:
    return f"/api/collaboration/{document_id}/ws?token={account.token}"


@pytest.mark.asyncio
async def test_socket_sync_ack_and_relay(client: AsyncClient, db_session, firm):
    doc_id = await _firm_wide_doc(client, firm)
    pushed = await client.post(
        f"/api/collaboration/{doc_id}/updates",
        json={"update": _b64(b"stored")},
        headers=firm.lawyer.headers,
    )
    # the socket handler uses its own sessions
    await db_session.commit()

    with TestClient(app) as tc:
        with tc.websocket_connect(_ws_url(doc_id, firm.lawyer)) as lawyer_ws:
            sync = lawyer_ws.receive_json()
            assert sync["type"] == "sync"
            assert [u["update"] for u in sync["updates"]] == [_b64(b"stored")]
            assert sync["latest_seq"] == pushed.json()["seq"]

            with tc.websocket_connect(_ws_url(doc_id, firm.admin)) as admin_ws:
                assert admin_ws.receive_json()["type"] == "sync"
                assert CollaborationHub.connection_count(doc_id) == 2

                lawyer_ws.send_json({"type": "update", "update": _b64(b"live")})
                ack = lawyer_ws.receive_json()
                assert ack["type"] == "ack"
                assert ack["seq"] > pushed.json()["seq"]

                relayed = admin_ws.receive_json()
                assert relayed["type"] == "update"
                assert relayed["update"] == _b64(b"live")
                assert relayed["seq"] == ack["seq"]
                assert relayed["user_id"] == firm.lawyer.id

                admin_ws.send_json({"type": "awareness", "state": {"cursor": 3}})
                assert lawyer_ws.receive_json() == {
                    "type": "awareness",
                    "user_id": firm.admin.id,
                    "state": {"cursor": 3},
                }

    assert CollaborationHub.connection_count(doc_id) == 0
    resp = await client.get(f"/api/collaboration/{doc_id}/updates", headers=firm.admin.headers)
    assert [u["update"] for u in resp.json()["updates"]] == [_b64(b"stored"), _b64(b"live")]


@pytest.mark.asyncio
async def test_socket_survives_malformed_messages(client: AsyncClient, db_session, firm):
    doc_id = await _firm_wide_doc(client, firm)
    await db_session.commit()

    with TestClient(app) as tc:
        with tc.websocket_connect(_ws_url(doc_id, firm.lawyer)) as ws:
            assert ws.receive_json() == {"type": "sync", "updates": [], "latest_seq": 0}

            ws.send_text("not json")
            assert ws.receive_json() == {"type": "error", "detail": "Message must be JSON"}

            ws.send_json({"type": "update", "update": 123})
            assert ws.receive_json() == {"type": "error", "detail": "Update must be a base64 string"}

            ws.send_json({"type": "update"})
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "cursor"})
            assert ws.receive_json() == {"type": "error", "detail": "Unknown message type"}

            ws.send_json({"type": "update", "update": _b64(b"still here")})
            assert ws.receive_json()["type"] == "ack"


@pytest.mark.asyncio
async def test_socket_read_only_user_cannot_update(client: AsyncClient, db_session, firm):
    resp = await client.post(
        "/api/documents/",
        json={"title": "Private", "firm_id": firm.id},
        headers=firm.lawyer.headers,
    )
    doc_id = resp.json()["document_id"]
    await client.post(
        f"/api/documents/{doc_id}/share",
        json={"visibility": "shared", "shared_with": [firm.paralegal.id], "can_edit": False},
        headers=firm.lawyer.headers,
    )
    await db_session.commit()

    with TestClient(app) as tc:
        with tc.websocket_connect(_ws_url(doc_id, firm.paralegal)) as ws:
            assert ws.receive_json()["type"] == "sync"
            ws.send_json({"type": "update", "update": _b64(b"sneaky")})
            assert ws.receive_json() == {"type": "error", "detail": "Read-only access"}

    resp = await client.get(f"/api/collaboration/{doc_id}/updates", headers=firm.lawyer.headers)
    assert resp.json()["updates"] == []


@pytest.mark.asyncio
async def test_socket_rejections_use_close_codes(client: AsyncClient, db_session, firm, outsider):
    doc_id = await _firm_wide_doc(client, firm)
    await db_session.commit()

    cases = [
        (f"/api/collaboration/{doc_id}/ws?token=not-a-token", 4401),
        (f"/api/collaboration/{doc_id}/ws", 4401),
        (_ws_url(doc_id, outsider), 4403),
        (_ws_url("missing", firm.lawyer), 4404),
    ]
    with TestClient(app) as tc:
        for url, code in cases:
            with tc.websocket_connect(url) as ws:
                with pytest.raises(WebSocketDisconnect) as exc:
                    ws.receive_json()
                assert exc.value.code == code, url
    assert CollaborationHub.connection_count(doc_id) == 0
