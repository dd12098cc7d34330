import pytest
from nacl.signing import SigningKey

from remarker_backend.schemas import (
    ControlStyle,
    EventType,
    InteractiveControl,
    ResponseBody,
    ResponseDescriptor,
    ResponseField,
    ResponseKind,
    TextInputSpec,
    Visibility,
)
from remarker_backend.services import discord_wire


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

def _sign(signing_key: SigningKey, timestamp: str, body: bytes) -> str:
    return signing_key.sign(timestamp.encode() + body).signature.hex()


def test_verify_signature_accepts_valid_request():
    signing_key = SigningKey.generate()
    public_key = signing_key.verify_key.encode().hex()
    body = b'{"type":1}'

    assert discord_wire.verify_signature(public_key, _sign(signing_key, "1700000000", body), "1700000000", body)


def test_verify_signature_rejects_tampering():
    signing_key = SigningKey.generate()
    public_key = signing_key.verify_key.encode().hex()
    signature = _sign(signing_key, "1700000000", b'{"type":1}')

    assert not discord_wire.verify_signature(public_key, signature, "1700000000", b'{"type":2}')
    assert not discord_wire.verify_signature(public_key, signature, "1700000001", b'{"type":1}')
    assert not discord_wire.verify_signature(public_key, "zz-not-hex", "1700000000", b'{"type":1}')
    assert not discord_wire.verify_signature(public_key, None, "1700000000", b'{"type":1}')
    assert not discord_wire.verify_signature(None, signature, "1700000000", b'{"type":1}')


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def test_parse_ping():
    assert discord_wire.parse_interaction({"type": 1}).type is EventType.HANDSHAKE


def test_parse_command_in_thread():
    event = discord_wire.parse_interaction({
        "type": 2,
        "token": "tok",
        "channel_id": "555",
        "channel": {"id": "555", "type": 11, "parent_id": "444"},
        "member": {"user": {"id": "1", "username": "alice"}},
        "data": {"name": "draft", "options": [
            {"name": "topic", "type": 3, "value": "remote work"},
            {"name": "style", "type": 3, "value": "stanza"},
        ]},
    })

    assert event.type is EventType.COMMAND
    assert event.name == "draft"
    assert event.options == {"topic": "remote work", "style": "stanza"}
    assert event.thread_id == "555"
    assert event.parent_channel_id == "444"
    assert event.author == "alice"


def test_parse_command_in_text_channel_from_dm_user():
    event = discord_wire.parse_interaction({
        "type": 2,
        "channel_id": "444",
        "channel": {"id": "444", "type": 0},
        "user": {"username": "bob"},
        "data": {"name": "map"},
    })

    assert event.thread_id is None
    assert event.parent_channel_id is None
    assert event.channel_id == "444"
    assert event.author == "bob"


def test_parse_component_uses_message_and_custom_id():
    event = discord_wire.parse_interaction({
        "type": 3,
        "channel": {"id": "555", "type": 11, "parent_id": "444"},
        "message": {"id": "777"},
        "data": {"custom_id": "edit_claim", "component_type": 2},
    })

    assert event.type is EventType.COMPONENT
    assert event.name == "edit_claim"
    assert event.target_id is None
    assert event.message_id == "777"


def test_parse_modal_collects_nested_values():
    event = discord_wire.parse_interaction({
        "type": 5,
        "channel": {"id": "555", "type": 11},
        "data": {
            "custom_id": "response_modal:777",
            "components": [
                {"type": 1, "components": [{"type": 4, "custom_id": "stance", "value": "support"}]},
                {"type": 18, "component": {"type": 4, "custom_id": "content", "value": "Agreed"}},
            ],
        },
    })

    assert event.type is EventType.MODAL
    assert event.name == "response_modal"
    assert event.target_id == "777"
    assert event.options == {"stance": "support", "content": "Agreed"}


def test_split_custom_id():
    assert discord_wire.split_custom_id("fork_modal:123") == ("fork_modal", "123")
    assert discord_wire.split_custom_id("edit_claim") == ("edit_claim", None)
    assert discord_wire.split_custom_id(None) == (None, None)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def test_private_text_message():
    payload = discord_wire.render_interaction_response(
        ResponseDescriptor(kind=ResponseKind.IMMEDIATE_MESSAGE, body=ResponseBody(text="hi"))
    )

    assert payload == {"type": 4, "data": {"content": "hi", "flags": 64}}


def test_public_embed_with_buttons():
    body = ResponseBody(
        title="t" * 300,
        description="Claim",
        footer="Reply below",
        fields=[ResponseField(name="Claim", value="v" * 2000)],
        controls=[
            InteractiveControl(custom_id=f"b{i}", label=f"B{i}", emoji="✅", style=ControlStyle.DANGER)
            for i in range(7)
        ],
    )

    payload = discord_wire.render_interaction_response(
        ResponseDescriptor(kind=ResponseKind.IMMEDIATE_MESSAGE, visibility=Visibility.PUBLIC, body=body)
    )

    data = payload["data"]
    assert "flags" not in data
    embed = data["embeds"][0]
    assert len(embed["title"]) == 256
    assert embed["title"].endswith("...")
    assert len(embed["fields"][0]["value"]) == 1024
    assert embed["footer"] == {"text": "Reply below"}
    assert embed["color"] == 0x00AE86
    assert [len(row["components"]) for row in data["components"]] == [5, 2]
    button = data["components"][0]["components"][0]
    assert button == {"type": 2, "style": 4, "label": "B0", "custom_id": "b0", "emoji": {"name": "✅"}}


def test_deferred_response_keeps_visibility():
    private = discord_wire.render_interaction_response(ResponseDescriptor(kind=ResponseKind.DEFERRED_MESSAGE))
    public = discord_wire.render_interaction_response(
        ResponseDescriptor(kind=ResponseKind.DEFERRED_MESSAGE, visibility=Visibility.PUBLIC)
    )

    assert private == {"type": 5, "data": {"flags": 64}}
    assert public == {"type": 5, "data": {}}


def test_modal_request():
    body = ResponseBody(
        custom_id="edit_modal:777",
        title="A very long modal title that goes past the limit",
        inputs=[
            TextInputSpec(custom_id="new_wording", label="New wording:", paragraph=True, value="old"),
            TextInputSpec(custom_id="stance", label="Stance", required=False),
        ],
    )

    payload = discord_wire.render_interaction_response(
        ResponseDescriptor(kind=ResponseKind.MODAL_REQUEST, body=body)
    )

    assert payload["type"] == 9
    assert payload["data"]["custom_id"] == "edit_modal:777"
    assert len(payload["data"]["title"]) <= 45
    first, second = (row["components"][0] for row in payload["data"]["components"])
    assert first == {
        "type": 4, "custom_id": "new_wording", "label": "New wording:", "style": 2, "required": True, "value": "old",
    }
    assert second["style"] == 1
    assert second["required"] is False


def test_update_clears_stale_components():
    payload = discord_wire.render_interaction_response(
        ResponseDescriptor(
            kind=ResponseKind.UPDATE_EXISTING_MESSAGE,
            visibility=Visibility.PUBLIC,
            body=ResponseBody(text="Claim deleted"),
        )
    )

    assert payload == {"type": 7, "data": {"content": "Claim deleted", "embeds": [], "components": []}}


def test_acknowledge_is_pong():
    assert discord_wire.render_interaction_response(ResponseDescriptor(kind=ResponseKind.ACKNOWLEDGE)) == {"type": 1}


@pytest.mark.parametrize("kind", [ResponseKind.REACTION, ResponseKind.NONE])
def test_message_only_kinds_cannot_answer_interactions(kind):
    with pytest.raises(ValueError):
        discord_wire.render_interaction_response(ResponseDescriptor(kind=kind))


def test_followup_has_no_flags():
    data = discord_wire.render_followup_data(
        ResponseDescriptor(kind=ResponseKind.IMMEDIATE_MESSAGE, body=ResponseBody(text="done"))
    )

    assert data == {"content": "done", "embeds": [], "components": []}


def test_application_commands():
    commands = {command["name"]: command for command in discord_wire.build_application_commands()}

    assert set(commands) == {"propose", "draft", "stanza", "map"}
    assert commands["propose"]["options"][0]["required"] is True
    style = commands["draft"]["options"][1]
    assert [choice["value"] for choice in style["choices"]] == ["claims", "stanza"]
