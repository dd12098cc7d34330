"""
Relay endpoint for organic thread messages.

A gateway listener forwards every message posted in a thread; replies to a
tracked claim are classified, stored and answered with a stance reaction.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Request
from pydantic import BaseModel

from remarker_backend.errors import TransportFailure
from remarker_backend.schemas import EventType, InboundEvent, OrganicMessageEvent, ResponseKind
from remarker_backend.services.discord_client import DiscordClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/events", tags=["events"])


class MessageEventResponse(BaseModel):
    """Outcome of a relayed message."""

    status: str  # recorded | ignored | rejected
    node_id: Optional[str] = None
    reaction: Optional[str] = None
    detail: Optional[str] = None


async def apply_reaction(discord: DiscordClient, channel_id: str, message_id: str, emoji: str) -> None:
    try:
        await discord.add_reaction(channel_id, message_id, emoji)
    except TransportFailure as exc:
        logger.warning("[DISCORD] Could not react to message %s: %s", message_id, exc)


@router.post("/messages", response_model=MessageEventResponse)
async def relay_message(message: OrganicMessageEvent, request: Request, background_tasks: BackgroundTasks):
    event = InboundEvent(
        type=EventType.MESSAGE,
        channel_id=message.channel_id,
        thread_id=message.thread_id,
        message_id=message.message_id,
        reply_to_id=message.reply_to_id,
        author=message.author,
        author_is_bot=message.author_is_bot,
        content=message.content,
    )
    descriptor = await request.app.state.interaction_router.dispatch(event)

    if descriptor.kind is ResponseKind.REACTION:
        emoji = descriptor.body.reaction
        if emoji:
            background_tasks.add_task(
                apply_reaction,
                request.app.state.discord,
                message.thread_id or message.channel_id,
                message.message_id,
                emoji,
            )
        return MessageEventResponse(status="recorded", node_id=message.message_id, reaction=emoji)

    if descriptor.kind is ResponseKind.NONE:
        return MessageEventResponse(status="ignored")

    logger.info("[ROUTER] Relayed message %s rejected: %s", message.message_id, descriptor.body.text)
    return MessageEventResponse(status="rejected", detail=descriptor.body.text)
