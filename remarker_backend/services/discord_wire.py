"""
Discord wire format.

Translates raw interaction payloads into InboundEvent envelopes and
ResponseDescriptors back into interaction responses / message payloads.
Also verifies the Ed25519 request signature and defines the slash commands.
"""

from typing import Any, Dict, Iterator, List, Optional, Tuple

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from remarker_backend.schemas import (
    ControlStyle,
    EventType,
    InboundEvent,
    ResponseBody,
    ResponseDescriptor,
    ResponseKind,
    Visibility,
)

# Interaction types
PING = 1
APPLICATION_COMMAND = 2
MESSAGE_COMPONENT = 3
MODAL_SUBMIT = 5

# Interaction callback types
PONG = 1
CHANNEL_MESSAGE_WITH_SOURCE = 4
DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE = 5
UPDATE_MESSAGE = 7
MODAL = 9

# Channel types
PUBLIC_THREAD = 11
THREAD_CHANNEL_TYPES = {10, 11, 12}

# Component types
ACTION_ROW = 1
BUTTON = 2
TEXT_INPUT = 4

EPHEMERAL_FLAG = 64
EMBED_COLOR = 0x00AE86

EMBED_TITLE_LIMIT = 256
EMBED_DESCRIPTION_LIMIT = 4096
EMBED_FIELD_LIMIT = 1024
MODAL_TITLE_LIMIT = 45
BUTTONS_PER_ROW = 5

_BUTTON_STYLES = {
    ControlStyle.PRIMARY: 1,
    ControlStyle.SECONDARY: 2,
    ControlStyle.DANGER: 4,
}

CUSTOM_ID_SEPARATOR = ":"


def verify_signature(public_key: Optional[str], signature: Optional[str], timestamp: Optional[str], body: bytes) -> bool:
    if not public_key or not signature or not timestamp:
        return False
    try:
        verify_key = VerifyKey(bytes.fromhex(public_key))
        verify_key.verify(timestamp.encode() + body, bytes.fromhex(signature))
    except (BadSignatureError, ValueError):
        return False
    return True


def split_custom_id(custom_id: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """``"edit_modal:123"`` -> ``("edit_modal", "123")``."""
    if not custom_id:
        return None, None
    name, _, target = custom_id.partition(CUSTOM_ID_SEPARATOR)
    return name, target or None


def _truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text is None or len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _iter_submitted_values(components: Any) -> Iterator[Tuple[str, Any]]:
    # Modal submissions nest inputs in action rows (or label components); walk them all.
    if isinstance(components, list):
        for component in components:
            yield from _iter_submitted_values(component)
    elif isinstance(components, dict):
        if "custom_id" in components and "value" in components:
            yield str(components["custom_id"]), components["value"]
        for key in ("components", "component"):
            if key in components:
                yield from _iter_submitted_values(components[key])


def _author_of(payload: Dict[str, Any]) -> Tuple[str, bool]:
    user = (payload.get("member") or {}).get("user") or payload.get("user") or {}
    return str(user.get("username") or "unknown"), bool(user.get("bot", False))


def parse_interaction(payload: Dict[str, Any]) -> InboundEvent:
    interaction_type = payload.get("type")
    data = payload.get("data") or {}
    channel = payload.get("channel") or {}
    channel_id = payload.get("channel_id") or channel.get("id")
    channel_id = str(channel_id) if channel_id is not None else None

    is_thread = channel.get("type") in THREAD_CHANNEL_TYPES
    parent_channel_id = channel.get("parent_id") if is_thread else None
    author, is_bot = _author_of(payload)
    message_id = (payload.get("message") or {}).get("id")

    common = {
        "channel_id": channel_id,
        "thread_id": channel_id if is_thread else None,
        "parent_channel_id": str(parent_channel_id) if parent_channel_id else None,
        "message_id": str(message_id) if message_id else None,
        "author": author,
        "author_is_bot": is_bot,
    }

    if interaction_type == PING:
        return InboundEvent(type=EventType.HANDSHAKE, **common)

    if interaction_type == APPLICATION_COMMAND:
        options = {opt.get("name"): opt.get("value") for opt in data.get("options") or [] if opt.get("name")}
        return InboundEvent(type=EventType.COMMAND, name=data.get("name"), options=options, **common)

    if interaction_type in (MESSAGE_COMPONENT, MODAL_SUBMIT):
        name, target = split_custom_id(data.get("custom_id"))
        if interaction_type == MESSAGE_COMPONENT:
            return InboundEvent(type=EventType.COMPONENT, name=name, target_id=target, **common)
        options = dict(_iter_submitted_values(data.get("components") or []))
        return InboundEvent(type=EventType.MODAL, name=name, target_id=target, options=options, **common)

    # Unknown interaction types still flow through the router's fallback.
    return InboundEvent(type=EventType.COMMAND, name=f"unsupported:{interaction_type}", **common)


def _render_controls(body: ResponseBody) -> List[Dict[str, Any]]:
    rows = []
    for start in range(0, len(body.controls), BUTTONS_PER_ROW):
        buttons = []
        for control in body.controls[start:start + BUTTONS_PER_ROW]:
            button: Dict[str, Any] = {
                "type": BUTTON,
                "style": _BUTTON_STYLES[control.style],
                "label": control.label,
                "custom_id": control.custom_id,
            }
            if control.emoji:
                button["emoji"] = {"name": control.emoji}
            buttons.append(button)
        rows.append({"type": ACTION_ROW, "components": buttons})
    return rows


def _render_embed(body: ResponseBody) -> Dict[str, Any]:
    embed: Dict[str, Any] = {"color": EMBED_COLOR}
    if body.title:
        embed["title"] = _truncate(body.title, EMBED_TITLE_LIMIT)
    if body.description:
        embed["description"] = _truncate(body.description, EMBED_DESCRIPTION_LIMIT)
    if body.footer:
        embed["footer"] = {"text": body.footer}
    if body.fields:
        embed["fields"] = [
            {
                "name": _truncate(field.name, EMBED_TITLE_LIMIT),
                "value": _truncate(field.value, EMBED_FIELD_LIMIT),
                "inline": field.inline,
            }
            for field in body.fields
        ]
    return embed


def render_message_data(body: ResponseBody, visibility: Visibility, update: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if body.text:
        data["content"] = body.text
    if body.has_embed:
        data["embeds"] = [_render_embed(body)]
    elif update:
        data["embeds"] = []
    rows = _render_controls(body)
    if rows or update:
        # Updates always send components so stale buttons get cleared.
        data["components"] = rows
    if visibility is Visibility.PRIVATE and not update:
        data["flags"] = EPHEMERAL_FLAG
    return data


def render_followup_data(descriptor: ResponseDescriptor) -> Dict[str, Any]:
    """Payload for editing a deferred response; its visibility was fixed when it was deferred."""
    return render_message_data(descriptor.body, descriptor.visibility, update=True)


def _render_modal(body: ResponseBody) -> Dict[str, Any]:
    rows = []
    for field_spec in body.inputs:
        text_input: Dict[str, Any] = {
            "type": TEXT_INPUT,
            "custom_id": field_spec.custom_id,
            "label": field_spec.label,
            "style": 2 if field_spec.paragraph else 1,
            "required": field_spec.required,
        }
        if field_spec.value:
            text_input["value"] = field_spec.value
        if field_spec.placeholder:
            text_input["placeholder"] = field_spec.placeholder
        if field_spec.max_length:
            text_input["max_length"] = field_spec.max_length
        rows.append({"type": ACTION_ROW, "components": [text_input]})
    return {
        "custom_id": body.custom_id,
        "title": _truncate(body.title or "", MODAL_TITLE_LIMIT),
        "components": rows,
    }


def render_interaction_response(descriptor: ResponseDescriptor) -> Dict[str, Any]:
    kind = descriptor.kind
    if kind is ResponseKind.ACKNOWLEDGE:
        return {"type": PONG}
    if kind is ResponseKind.IMMEDIATE_MESSAGE:
        return {
            "type": CHANNEL_MESSAGE_WITH_SOURCE,
            "data": render_message_data(descriptor.body, descriptor.visibility),
        }
    if kind is ResponseKind.DEFERRED_MESSAGE:
        flags = {"flags": EPHEMERAL_FLAG} if descriptor.visibility is Visibility.PRIVATE else {}
        return {"type": DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE, "data": flags}
    if kind is ResponseKind.MODAL_REQUEST:
        return {"type": MODAL, "data": _render_modal(descriptor.body)}
    if kind is ResponseKind.UPDATE_EXISTING_MESSAGE:
        return {
            "type": UPDATE_MESSAGE,
            "data": render_message_data(descriptor.body, descriptor.visibility, update=True),
        }
    raise ValueError(f"Descriptor kind {kind.value!r} cannot answer an interaction")


def build_application_commands() -> List[Dict[str, Any]]:
    string_option = 3
    return [
        {
            "name": "propose",
            "description": "Start a new AI-originated claim thread",
            "options": [
                {"name": "text", "description": "Claim text", "type": string_option, "required": True},
            ],
        },
        {
            "name": "draft",
            "description": "Generate AI claims or a structured stanza about a topic",
            "options": [
                {
                    "name": "topic",
                    "description": "Topic to generate claims about",
                    "type": string_option,
                    "required": True,
                },
                {
                    "name": "style",
                    "description": "Preview format",
                    "type": string_option,
                    "required": False,
                    "choices": [
                        {"name": "claims", "value": "claims"},
                        {"name": "stanza", "value": "stanza"},
                    ],
                },
            ],
        },
        {
            "name": "stanza",
            "description": "Create a structured discourse thread about a topic",
            "options": [
                {"name": "topic", "description": "Topic for the stanza", "type": string_option, "required": True},
            ],
        },
        {
            "name": "map",
            "description": "Show discourse graph for current thread",
        },
    ]
