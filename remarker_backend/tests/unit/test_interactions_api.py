import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from nacl.signing import SigningKey

from remarker_backend import interactions_api
from remarker_backend.errors import TransportFailure
from remarker_backend.schemas import EventType
from remarker_backend.services.discourse_views import UNKNOWN_INTERACTION
from remarker_backend.tests.conftest import make_event

pytestmark = pytest.mark.api

THREAD = {"id": "555", "type": 11, "parent_id": "444"}


@pytest.fixture
def signing_key():
    return SigningKey.generate()


@pytest.fixture
def discord():
    client = MagicMock()
    client.edit_original_response = AsyncMock(return_value={})
    return client


@pytest.fixture
def client(signing_key, discord, router, store):
    app = FastAPI()
    app.include_router(interactions_api.router)
    app.state.store = store
    app.state.discord = discord
    app.state.interaction_router = router
    app.state.discord_public_key = signing_key.verify_key.encode().hex()
    return TestClient(app)


def _post(client, signing_key, payload, timestamp="1700000000"):
    body = json.dumps(payload).encode()
    signature = signing_key.sign(timestamp.encode() + body).signature.hex()
    return client.post(
        "/interactions",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Signature-Ed25519": signature,
            "X-Signature-Timestamp": timestamp,
        },
    )


def test_ping_is_answered_with_pong(client, signing_key):
    resp = _post(client, signing_key, {"type": 1})

    assert resp.status_code == 200
    assert resp.json() == {"type": 1}


def test_bad_signature_is_rejected(client):
    resp = client.post(
        "/interactions",
        content=b'{"type":1}',
        headers={"X-Signature-Ed25519": "00" * 64, "X-Signature-Timestamp": "1700000000"},
    )

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Bad request signature"


def test_missing_signature_headers_are_rejected(client):
    assert client.post("/interactions", content=b'{"type":1}').status_code == 401


def test_signed_invalid_json_is_rejected(client, signing_key):
    timestamp = "1700000000"
    body = b"not json"
    signature = signing_key.sign(timestamp.encode() + body).signature.hex()

    resp = client.post(
        "/interactions",
        content=body,
        headers={"X-Signature-Ed25519": signature, "X-Signature-Timestamp": timestamp},
    )

    assert resp.status_code == 400


def test_propose_opens_thread_and_answers_privately(client, signing_key, platform, store):
    resp = _post(client, signing_key, {
        "type": 2,
        "token": "tok",
        "channel_id": "444",
        "channel": {"id": "444", "type": 0},
        "member": {"user": {"username": "alice"}},
        "data": {"name": "propose", "options": [{"name": "text", "type": 3, "value": "Cats are great"}]},
    })

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["type"] == 4
    assert payload["data"]["flags"] == 64
    opened = platform.opened[0]
    assert payload["data"]["content"] == f"Thread created: <#{opened['thread_id']}>"
    assert store.get_root_for_thread(opened["thread_id"]) == opened["message_id"]


def test_draft_is_deferred_then_completed(client, signing_key, discord, generator_oracle):
    generator_oracle.responses = ["1. Remote work saves time\n2. Offices build culture\n3. Hybrid is a compromise"]

    resp = _post(client, signing_key, {
        "type": 2,
        "token": "interaction-token",
        "channel_id": "444",
        "channel": {"id": "444", "type": 0},
        "data": {"name": "draft", "options": [{"name": "topic", "type": 3, "value": "remote work"}]},
    })

    assert resp.json() == {"type": 5, "data": {}}
    discord.edit_original_response.assert_awaited_once()
    token, data = discord.edit_original_response.await_args.args
    assert token == "interaction-token"
    assert "Remote work saves time" in data["embeds"][0]["description"]
    assert "flags" not in data


def test_stanza_is_deferred_privately(client, signing_key, discord):
    resp = _post(client, signing_key, {
        "type": 2,
        "token": "tok",
        "channel_id": "444",
        "channel": {"id": "444", "type": 0},
        "data": {"name": "stanza", "options": [{"name": "topic", "type": 3, "value": "remote work"}]},
    })

    assert resp.json() == {"type": 5, "data": {"flags": 64}}
    discord.edit_original_response.assert_awaited_once()


def test_delete_button_updates_message(client, signing_key, platform, store):
    _post(client, signing_key, {
        "type": 2,
        "channel_id": "444",
        "channel": {"id": "444", "type": 0},
        "data": {"name": "propose", "options": [{"name": "text", "type": 3, "value": "Cats are great"}]},
    })
    opened = platform.opened[0]

    resp = _post(client, signing_key, {
        "type": 3,
        "token": "tok",
        "channel_id": opened["thread_id"],
        "channel": {"id": opened["thread_id"], "type": 11, "parent_id": "444"},
        "message": {"id": opened["message_id"]},
        "data": {"custom_id": "delete_claim", "component_type": 2},
    })

    payload = resp.json()
    assert payload["type"] == 7
    assert payload["data"]["components"] == []
    assert not store.has_node(opened["message_id"])


def test_unknown_component_answers_privately(client, signing_key):
    resp = _post(client, signing_key, {
        "type": 3,
        "channel": THREAD,
        "message": {"id": "999"},
        "data": {"custom_id": "edit_claim", "component_type": 2},
    })

    assert resp.json() == {"type": 4, "data": {"content": UNKNOWN_INTERACTION, "flags": 64}}


@pytest.mark.asyncio
async def test_deferred_completion_logs_transport_failure(router, discord, generator_oracle, caplog):
    generator_oracle.responses = ["1. A claim"]
    discord.edit_original_response.side_effect = TransportFailure("webhook expired", status_code=404)
    event = make_event(EventType.COMMAND, "draft", options={"topic": "cats"}, channel_id="444")

    await interactions_api.complete_deferred_interaction(router, discord, event, "tok")

    assert "Could not complete deferred /draft" in caplog.text
