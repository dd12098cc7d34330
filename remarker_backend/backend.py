import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from remarker_backend.config import DISCORD_PUBLIC_KEY, LOG_LEVEL, PORT, SNAPSHOT_BACKEND
from remarker_backend.graph_api import router as graph_router
from remarker_backend.interactions_api import router as interactions_router
from remarker_backend.messages_api import router as messages_router
from remarker_backend.middleware import configure_security
from remarker_backend.services.content_generator import ContentGenerator
from remarker_backend.services.discord_client import DiscordClient
from remarker_backend.services.graph_snapshots import GraphSnapshotter
from remarker_backend.services.graph_store import DiscourseGraphStore
from remarker_backend.services.interaction_router import InteractionRouter
from remarker_backend.services.oracle_clients import get_oracle
from remarker_backend.services.prompt_manager import get_prompt_manager
from remarker_backend.services.stance_classifier import StanceClassifier

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("remarker_backend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    oracle = get_oracle()
    prompt_manager = get_prompt_manager()
    classifier = StanceClassifier(oracle, prompt_manager)
    generator = ContentGenerator(oracle, prompt_manager)

    store = DiscourseGraphStore(classifier, GraphSnapshotter(SNAPSHOT_BACKEND))
    node_count = store.load()
    discord = DiscordClient()

    app.state.store = store
    app.state.discord = discord
    app.state.discord_public_key = DISCORD_PUBLIC_KEY
    app.state.interaction_router = InteractionRouter(store, generator, discord)
    logger.info("[GRAPH] Ready with %d node(s) (snapshot backend: %s, oracle: %s)",
                node_count, SNAPSHOT_BACKEND, oracle.provider)
    yield
    logger.info("[GRAPH] Shutting down, flushing snapshot...")
    await store.close()
    await discord.aclose()


def create_app() -> FastAPI:
    app = FastAPI(title="Remarker discourse backend", lifespan=lifespan)
    configure_security(app)

    app.include_router(interactions_router)
    app.include_router(messages_router)
    app.include_router(graph_router)

    @app.get("/")
    async def root():
        return {"status": "Remarker discourse backend is running"}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


remarker_app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(remarker_app, host="0.0.0.0", port=PORT)
