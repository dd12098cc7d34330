"""
Interaction Router

Turns transport-neutral InboundEvents into graph mutations and exactly one
ResponseDescriptor. ``dispatch`` never raises: graph, oracle and platform
failures become private error messages.

External calls (oracle, platform) always run before the store is mutated,
so a failed call leaves the graph untouched.
"""

import logging
from typing import Optional, Protocol

from remarker_backend.errors import DiscourseGraphError, OracleFailure, TransportFailure
from remarker_backend.models import DiscourseNode, NodeKind
from remarker_backend.schemas import (
    EventType,
    InboundEvent,
    ResponseBody,
    ResponseDescriptor,
    ResponseKind,
    Visibility,
)
from remarker_backend.services import discourse_views as views
from remarker_backend.services.content_generator import ContentGenerator, parse_stanza
from remarker_backend.services.discord_client import PublishedThread
from remarker_backend.services.graph_store import DiscourseGraphStore
from remarker_backend.services.stance_classifier import resolve_stance_hint

logger = logging.getLogger("remarker_backend")

DEFERRED_COMMANDS = {
    "draft": Visibility.PUBLIC,
    "stanza": Visibility.PRIVATE,
}

UNEXPECTED_ERROR = "Something went wrong handling that interaction."


class ThreadPlatform(Protocol):
    async def open_claim_thread(self, channel_id: str, name: str, starter: ResponseBody) -> PublishedThread:
        ...


def private_text(text: str) -> ResponseDescriptor:
    return ResponseDescriptor(kind=ResponseKind.IMMEDIATE_MESSAGE, body=ResponseBody(text=text))


def no_response() -> ResponseDescriptor:
    return ResponseDescriptor(kind=ResponseKind.NONE)


class InteractionRouter:
    """Single entry point shared by the interactions webhook and the message relay."""

    def __init__(self, store: DiscourseGraphStore, generator: ContentGenerator, platform: ThreadPlatform):
        self.store = store
        self.generator = generator
        self.platform = platform

    # ------------------------------------------------------------------
    # Deferral
    # ------------------------------------------------------------------

    def needs_deferral(self, event: InboundEvent) -> bool:
        """Oracle-backed commands cannot answer inside the platform's response window."""
        return event.type is EventType.COMMAND and event.name in DEFERRED_COMMANDS

    def deferred_descriptor(self, event: InboundEvent) -> ResponseDescriptor:
        visibility = DEFERRED_COMMANDS.get(event.name or "", Visibility.PRIVATE)
        return ResponseDescriptor(kind=ResponseKind.DEFERRED_MESSAGE, visibility=visibility)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, event: InboundEvent) -> ResponseDescriptor:
        try:
            return await self._route(event)
        except DiscourseGraphError as exc:
            logger.info("[ROUTER] %s/%s rejected by graph: %s", event.type.value, event.name, exc)
            return private_text(exc.user_message)
        except OracleFailure as exc:
            logger.warning("[ROUTER] %s/%s oracle failure: %s", event.type.value, event.name, exc)
            return private_text(exc.user_message)
        except TransportFailure as exc:
            logger.warning("[ROUTER] %s/%s platform failure: %s", event.type.value, event.name, exc)
            return private_text(exc.user_message)
        except Exception as exc:
            logger.exception("[ROUTER] Unhandled error for %s/%s: %s", event.type.value, event.name, exc)
            return private_text(UNEXPECTED_ERROR)

    async def _route(self, event: InboundEvent) -> ResponseDescriptor:
        if event.type is EventType.HANDSHAKE:
            return ResponseDescriptor(kind=ResponseKind.ACKNOWLEDGE)
        if event.type is EventType.COMMAND:
            handler = {
                "propose": self._propose,
                "draft": self._draft,
                "stanza": self._stanza,
                "map": self._map,
            }.get(event.name or "")
        elif event.type is EventType.COMPONENT:
            handler = {
                "edit_claim": self._open_edit_modal,
                "add_response": self._open_response_modal,
                "fork_claim": self._open_fork_modal,
                "delete_claim": self._delete_claim,
            }.get(event.name or "")
        elif event.type is EventType.MODAL:
            handler = {
                "edit_modal": self._submit_edit,
                "response_modal": self._submit_response,
                "fork_modal": self._submit_fork,
            }.get(event.name or "")
        else:
            handler = self._organic_message

        if handler is None:
            logger.info("[ROUTER] Unknown interaction %s/%s", event.type.value, event.name)
            return private_text(views.UNKNOWN_INTERACTION)
        return await handler(event)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _hosting_channel(event: InboundEvent) -> Optional[str]:
        # Threads cannot host threads; open new ones next to the current thread.
        return event.parent_channel_id or event.channel_id

    def _target_node(self, event: InboundEvent) -> Optional[DiscourseNode]:
        node_id = event.target_id or event.message_id
        if not node_id:
            return None
        return self.store.get_node(node_id)

    async def _open_thread(
        self,
        channel_id: Optional[str],
        content: str,
        starter: ResponseBody,
        kind: NodeKind = NodeKind.FLAT,
        forked_from: Optional[str] = None,
    ) -> ResponseDescriptor:
        if not channel_id:
            return private_text(views.UNKNOWN_INTERACTION)
        published = await self.platform.open_claim_thread(channel_id, views.thread_name_for(content), starter)
        await self.store.create_root(
            published.thread_id,
            content,
            kind=kind,
            node_id=published.message_id,
            forked_from=forked_from,
        )
        return private_text(views.thread_created_text(published.thread_id))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _propose(self, event: InboundEvent) -> ResponseDescriptor:
        claim = event.option("text")
        if not claim:
            return private_text("Please provide the claim text.")
        return await self._open_thread(self._hosting_channel(event), claim, views.claim_view(claim))

    async def _draft(self, event: InboundEvent) -> ResponseDescriptor:
        topic = event.option("topic")
        if not topic:
            return private_text("Please provide a topic.")

        if event.option("style", "claims").lower() == "stanza":
            stanza = await self.generator.draft_stanza(topic)
            return ResponseDescriptor(
                kind=ResponseKind.IMMEDIATE_MESSAGE,
                visibility=Visibility.PUBLIC,
                body=views.stanza_preview_view(stanza, topic),
            )

        claims = await self.generator.draft_claims(topic)
        if not claims:
            return private_text(views.NO_CLAIMS_GENERATED)
        return ResponseDescriptor(
            kind=ResponseKind.IMMEDIATE_MESSAGE,
            visibility=Visibility.PUBLIC,
            body=views.drafts_view(claims),
        )

    async def _stanza(self, event: InboundEvent) -> ResponseDescriptor:
        topic = event.option("topic")
        if not topic:
            return private_text("Please provide a topic.")
        stanza = await self.generator.draft_stanza(topic)
        return await self._open_thread(
            self._hosting_channel(event),
            stanza.render(),
            views.stanza_view(stanza, topic),
            kind=NodeKind.STANZA,
        )

    async def _map(self, event: InboundEvent) -> ResponseDescriptor:
        if not event.thread_id:
            return private_text(views.THREAD_ONLY)
        nodes = self.store.get_nodes_for_thread(event.thread_id)
        if not nodes:
            return private_text(views.NO_DISCOURSE_DATA)
        return ResponseDescriptor(kind=ResponseKind.IMMEDIATE_MESSAGE, body=views.map_view(nodes))

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def _modal_for(self, event: InboundEvent, build) -> ResponseDescriptor:
        node = self._target_node(event)
        if node is None:
            return private_text(views.UNKNOWN_INTERACTION)
        return ResponseDescriptor(kind=ResponseKind.MODAL_REQUEST, body=build(node))

    async def _open_edit_modal(self, event: InboundEvent) -> ResponseDescriptor:
        return self._modal_for(event, views.edit_modal)

    async def _open_response_modal(self, event: InboundEvent) -> ResponseDescriptor:
        return self._modal_for(event, views.response_modal)

    async def _open_fork_modal(self, event: InboundEvent) -> ResponseDescriptor:
        return self._modal_for(event, views.fork_modal)

    async def _delete_claim(self, event: InboundEvent) -> ResponseDescriptor:
        node = self._target_node(event)
        if node is None:
            return private_text(views.UNKNOWN_INTERACTION)
        removed = await self.store.delete_node(node.id)
        logger.info("[ROUTER] %s deleted %s (%d node(s))", event.author, node.id, len(removed))
        return ResponseDescriptor(
            kind=ResponseKind.UPDATE_EXISTING_MESSAGE,
            visibility=Visibility.PUBLIC,
            body=views.deleted_view(len(removed)),
        )

    # ------------------------------------------------------------------
    # Modals
    # ------------------------------------------------------------------

    async def _submit_edit(self, event: InboundEvent) -> ResponseDescriptor:
        node = self._target_node(event)
        if node is None:
            return private_text(views.UNKNOWN_INTERACTION)
        wording = event.option("new_wording")
        if not wording:
            return private_text("The new wording cannot be empty.")

        if node.kind is NodeKind.STANZA:
            # Stanza roots keep the labeled-line form so the message can be re-rendered as fields.
            stanza = parse_stanza(wording)
            await self.store.edit_content(node.id, stanza.render())
            body = views.stanza_view(stanza, edited=True)
        else:
            await self.store.edit_content(node.id, wording)
            body = views.claim_view(wording, edited=True)
        return ResponseDescriptor(
            kind=ResponseKind.UPDATE_EXISTING_MESSAGE,
            visibility=Visibility.PUBLIC,
            body=body,
        )

    async def _submit_response(self, event: InboundEvent) -> ResponseDescriptor:
        node = self._target_node(event)
        if node is None:
            return private_text(views.UNKNOWN_INTERACTION)
        content = event.option("content")
        if not content:
            return private_text("Your response cannot be empty.")

        stance = resolve_stance_hint(event.option("stance"))
        await self.store.create_reply(
            node.id,
            event.thread_id or node.thread_id,
            event.author,
            content,
            stance=stance,
        )
        return ResponseDescriptor(
            kind=ResponseKind.IMMEDIATE_MESSAGE,
            visibility=Visibility.PUBLIC,
            body=ResponseBody(text=f"{views.reply_recorded_text(stance)} ({event.author})\n>>> {content}"),
        )

    async def _submit_fork(self, event: InboundEvent) -> ResponseDescriptor:
        source = self._target_node(event)
        if source is None:
            return private_text(views.UNKNOWN_INTERACTION)
        claim = event.option("text") or source.content
        return await self._open_thread(
            self._hosting_channel(event),
            claim,
            views.claim_view(claim),
            forked_from=source.id,
        )

    # ------------------------------------------------------------------
    # Organic messages
    # ------------------------------------------------------------------

    async def _organic_message(self, event: InboundEvent) -> ResponseDescriptor:
        if event.author_is_bot or not event.thread_id:
            return no_response()
        root_id = self.store.get_root_for_thread(event.thread_id)
        if root_id is None:
            return no_response()
        content = (event.content or "").strip()
        if not content:
            return no_response()

        parent_id = root_id
        if event.reply_to_id and self.store.has_node(event.reply_to_id):
            replied_to = self.store.get_node(event.reply_to_id)
            if replied_to.thread_id == event.thread_id:
                parent_id = replied_to.id

        node_id = await self.store.create_reply(
            parent_id,
            event.thread_id,
            event.author,
            content,
            node_id=event.message_id,
        )
        stance = self.store.get_node(node_id).stance
        return ResponseDescriptor(
            kind=ResponseKind.REACTION,
            visibility=Visibility.PUBLIC,
            body=ResponseBody(reaction=views.STANCE_EMOJIS.get(stance)),
        )
