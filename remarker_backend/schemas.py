"""Pydantic models for the inbound event envelope and the outbound response descriptor."""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    HANDSHAKE = "handshake"
    COMMAND = "command"
    COMPONENT = "component"
    MODAL = "modal"
    MESSAGE = "message"


class InboundEvent(BaseModel):
    """Transport-neutral interaction event, already verified and parsed by the transport."""

    type: EventType
    name: Optional[str] = None  # command name or component/modal custom id (without target suffix)
    options: Dict[str, Any] = Field(default_factory=dict)
    channel_id: Optional[str] = None
    parent_channel_id: Optional[str] = None  # channel hosting the thread, when channel_id is a thread
    thread_id: Optional[str] = None
    message_id: Optional[str] = None  # message the component sits on, or the organic message itself
    target_id: Optional[str] = None  # node id encoded in a component/modal custom id
    reply_to_id: Optional[str] = None
    author: str = "unknown"
    author_is_bot: bool = False
    content: Optional[str] = None

    def option(self, name: str, default: str = "") -> str:
        value = self.options.get(name)
        if value is None:
            return default
        return str(value).strip()


class ResponseKind(str, Enum):
    IMMEDIATE_MESSAGE = "immediate_message"
    DEFERRED_MESSAGE = "deferred_message"
    MODAL_REQUEST = "modal_request"
    UPDATE_EXISTING_MESSAGE = "update_existing_message"
    ACKNOWLEDGE = "acknowledge"
    REACTION = "reaction"
    NONE = "none"


class Visibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class ControlStyle(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    DANGER = "danger"


class ResponseField(BaseModel):
    name: str
    value: str
    inline: bool = False


class InteractiveControl(BaseModel):
    custom_id: str
    label: str
    emoji: Optional[str] = None
    style: ControlStyle = ControlStyle.SECONDARY


class TextInputSpec(BaseModel):
    custom_id: str
    label: str
    paragraph: bool = False
    required: bool = True
    value: Optional[str] = None
    placeholder: Optional[str] = None
    max_length: Optional[int] = None


class ResponseBody(BaseModel):
    text: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    footer: Optional[str] = None
    fields: List[ResponseField] = Field(default_factory=list)
    controls: List[InteractiveControl] = Field(default_factory=list)
    inputs: List[TextInputSpec] = Field(default_factory=list)
    custom_id: Optional[str] = None  # modal id for modal requests
    reaction: Optional[str] = None

    @property
    def has_embed(self) -> bool:
        return bool(self.title or self.description or self.fields)


class ResponseDescriptor(BaseModel):
    kind: ResponseKind
    visibility: Visibility = Visibility.PRIVATE
    body: ResponseBody = Field(default_factory=ResponseBody)


class OrganicMessageEvent(BaseModel):
    """Organic thread message forwarded by the gateway relay."""

    message_id: str
    channel_id: str
    thread_id: Optional[str] = None
    author: str
    author_is_bot: bool = False
    content: str
    reply_to_id: Optional[str] = None


class NodeResponse(BaseModel):
    id: str
    parent_id: Optional[str]
    thread_id: str
    author_tag: str
    content: str
    stance: str
    kind: str
    child_ids: List[str]
    created_at: str
    forked_from: Optional[str] = None


class ThreadGraphResponse(BaseModel):
    thread_id: str
    root_id: Optional[str]
    nodes: List[NodeResponse]
    node_count: int
