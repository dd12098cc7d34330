"""Discord HTTP interactions webhook."""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request

from remarker_backend.config import DISCORD_PUBLIC_KEY
from remarker_backend.errors import TransportFailure
from remarker_backend.schemas import InboundEvent, ResponseKind
from remarker_backend.services.discord_client import DiscordClient
from remarker_backend.services.discord_wire import (
    parse_interaction,
    render_followup_data,
    render_interaction_response,
    verify_signature,
)
from remarker_backend.services.discourse_views import UNKNOWN_INTERACTION
from remarker_backend.services.interaction_router import InteractionRouter, private_text

logger = logging.getLogger(__name__)
router = APIRouter(tags=["interactions"])

# Descriptors that only make sense for organic messages
NON_INTERACTION_KINDS = {ResponseKind.REACTION, ResponseKind.NONE}


async def complete_deferred_interaction(
    interaction_router: InteractionRouter,
    discord: DiscordClient,
    event: InboundEvent,
    interaction_token: str,
) -> None:
    """Run a deferred command and replace the "thinking..." placeholder with its result."""
    descriptor = await interaction_router.dispatch(event)
    try:
        await discord.edit_original_response(interaction_token, render_followup_data(descriptor))
    except TransportFailure as exc:
        logger.error("[DISCORD] Could not complete deferred /%s: %s", event.name, exc)


@router.post("/interactions")
async def handle_interaction(request: Request, background_tasks: BackgroundTasks):
    body = await request.body()
    public_key = getattr(request.app.state, "discord_public_key", None) or DISCORD_PUBLIC_KEY
    if not verify_signature(
        public_key,
        request.headers.get("x-signature-ed25519"),
        request.headers.get("x-signature-timestamp"),
        body,
    ):
        logger.warning("[AUTH] Rejected interaction with invalid signature")
        raise HTTPException(status_code=401, detail="Bad request signature")

    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from exc

    event = parse_interaction(payload)
    interaction_router: InteractionRouter = request.app.state.interaction_router

    if interaction_router.needs_deferral(event):
        background_tasks.add_task(
            complete_deferred_interaction,
            interaction_router,
            request.app.state.discord,
            event,
            payload.get("token", ""),
        )
        logger.info("[DISCORD] Deferred /%s", event.name)
        return render_interaction_response(interaction_router.deferred_descriptor(event))

    descriptor = await interaction_router.dispatch(event)
    if descriptor.kind in NON_INTERACTION_KINDS:
        logger.warning("[DISCORD] %s/%s produced a %s descriptor", event.type.value, event.name, descriptor.kind.value)
        descriptor = private_text(UNKNOWN_INTERACTION)
    return render_interaction_response(descriptor)
