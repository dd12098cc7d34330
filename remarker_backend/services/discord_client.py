"""Discord REST client used to open claim threads, react to messages and finish deferred replies."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from remarker_backend.config import (
    DISCORD_API_BASE,
    DISCORD_APPLICATION_ID,
    DISCORD_TIMEOUT_SECONDS,
    DISCORD_TOKEN,
)
from remarker_backend.errors import TransportFailure
from remarker_backend.schemas import ResponseBody, Visibility
from remarker_backend.services.discord_wire import PUBLIC_THREAD, render_message_data

logger = logging.getLogger("remarker_backend")

USER_AGENT = "RemarkAI Bot (https://github.com/jonas-kgomo/remarker-bot, 1.0)"
THREAD_NAME_LIMIT = 100


@dataclass
class PublishedThread:
    thread_id: str
    message_id: str


class DiscordClient:
    def __init__(
        self,
        token: Optional[str] = None,
        application_id: Optional[str] = None,
        base_url: str = DISCORD_API_BASE,
        timeout_seconds: float = DISCORD_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token = token or DISCORD_TOKEN
        self.application_id = application_id or DISCORD_APPLICATION_ID
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self._transport,
                headers={
                    "Authorization": f"Bot {self.token}",
                    "Content-Type": "application/json; charset=UTF-8",
                    "User-Agent": USER_AGENT,
                },
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, endpoint: str, json: Any = None) -> Any:
        if not self.token:
            raise TransportFailure("DISCORD_TOKEN is not configured")
        client = self._get_client()
        try:
            response = await client.request(method, f"/{endpoint.lstrip('/')}", json=json)
        except httpx.HTTPError as exc:
            raise TransportFailure(f"{method} {endpoint} failed: {exc}") from exc

        if response.is_error:
            logger.warning("[DISCORD] %s %s -> %s %s", method, endpoint, response.status_code, response.text[:280])
            raise TransportFailure(
                f"{method} {endpoint} returned {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def create_thread(self, channel_id: str, name: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"channels/{channel_id}/threads",
            json={"name": name[:THREAD_NAME_LIMIT], "type": PUBLIC_THREAD},
        )

    async def send_message(self, channel_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", f"channels/{channel_id}/messages", json=payload)

    async def pin_message(self, channel_id: str, message_id: str) -> None:
        await self._request("PUT", f"channels/{channel_id}/pins/{message_id}")

    async def add_reaction(self, channel_id: str, message_id: str, emoji: str) -> None:
        await self._request(
            "PUT",
            f"channels/{channel_id}/messages/{message_id}/reactions/{quote(emoji)}/@me",
        )

    async def edit_original_response(self, interaction_token: str, payload: Dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            f"webhooks/{self.application_id}/{interaction_token}/messages/@original",
            json=payload,
        )

    async def register_commands(self, commands: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not self.application_id:
            raise TransportFailure("DISCORD_APPLICATION_ID is not configured")
        return await self._request("PUT", f"applications/{self.application_id}/commands", json=commands)

    async def open_claim_thread(self, channel_id: str, name: str, starter: ResponseBody) -> PublishedThread:
        """
        Create a public thread and post the pinned starter message for a claim.

        Raises TransportFailure when the thread or the starter message cannot be
        created; a failed pin is only logged.
        """
        thread = await self.create_thread(channel_id, name)
        thread_id = str(thread["id"])
        message = await self.send_message(thread_id, render_message_data(starter, Visibility.PUBLIC))
        message_id = str(message["id"])

        try:
            await self.pin_message(thread_id, message_id)
        except TransportFailure as exc:
            logger.warning("[DISCORD] Could not pin starter message %s: %s", message_id, exc)

        logger.info("[DISCORD] Opened thread %s with starter message %s", thread_id, message_id)
        return PublishedThread(thread_id=thread_id, message_id=message_id)
