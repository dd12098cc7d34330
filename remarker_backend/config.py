"""Shared environment configuration constants for the Remarker backend."""
import os

from dotenv import load_dotenv

load_dotenv()

# --- Discord ---
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
DISCORD_APPLICATION_ID = os.getenv("DISCORD_APPLICATION_ID")
DISCORD_PUBLIC_KEY = os.getenv("DISCORD_PUBLIC_KEY")
DISCORD_API_BASE = os.getenv("DISCORD_API_BASE", "https://discord.com/api/v10")
DISCORD_TIMEOUT_SECONDS = float(os.getenv("DISCORD_TIMEOUT_SECONDS", "10"))

# --- Oracle API keys ---
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")

# --- Graph snapshots ---
GRAPH_SNAPSHOT_PATH = os.getenv("GRAPH_SNAPSHOT_PATH", "discourse_graph.json")
SNAPSHOT_BACKEND = os.getenv("SNAPSHOT_BACKEND", "local")
GCS_BUCKET_NAME = os.getenv("GCS_BUCKET_NAME")
GCS_FOLDER = os.getenv("GCS_FOLDER")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Server ---
PORT = int(os.getenv("PORT", "8000"))
