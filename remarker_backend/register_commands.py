"""
Register the slash commands with Discord.

Usage: python -m remarker_backend.register_commands
"""

import asyncio
import logging

from remarker_backend.config import LOG_LEVEL
from remarker_backend.errors import TransportFailure
from remarker_backend.services.discord_client import DiscordClient
from remarker_backend.services.discord_wire import build_application_commands

logger = logging.getLogger("remarker_backend")


async def register_commands(client: DiscordClient) -> int:
    commands = build_application_commands()
    logger.info("[DISCORD] Registering %d slash command(s)...", len(commands))
    registered = await client.register_commands(commands)
    names = ", ".join(f"/{command.get('name')}" for command in registered or [])
    logger.info("[DISCORD] Registered: %s", names)
    return len(registered or [])


async def main() -> int:
    client = DiscordClient()
    try:
        await register_commands(client)
    except TransportFailure as exc:
        logger.error("[DISCORD] Command registration failed: %s", exc)
        return 1
    finally:
        await client.aclose()
    return 0


if __name__ == "__main__":
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    raise SystemExit(asyncio.run(main()))
