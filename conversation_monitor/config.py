"""Shared environment configuration constants for the conversation monitor."""
import os

# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./conversation_monitor.db")
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Mention detection ---
# Optional JSON file overriding the built-in lexicons, cue phrases and topic taxonomy
ANALYSIS_CONFIG_PATH = os.getenv("ANALYSIS_CONFIG_PATH")
MENTION_CONTEXT_RADIUS = int(os.getenv("MENTION_CONTEXT_RADIUS", "50"))
MAX_MATCHES_PER_TERM = int(os.getenv("MAX_MATCHES_PER_TERM", "100"))
DEFAULT_MENTION_CONFIDENCE = float(os.getenv("DEFAULT_MENTION_CONFIDENCE", "0.8"))

# --- Relationship linking ---
RELATIONSHIP_SIMILARITY_THRESHOLD = float(os.getenv("RELATIONSHIP_SIMILARITY_THRESHOLD", "0.7"))
RELATIONSHIP_CANDIDATE_LIMIT = int(os.getenv("RELATIONSHIP_CANDIDATE_LIMIT", "5"))

# --- Conversation lifecycle ---
# 'allow' keeps accepting turns after deactivation, 'reject' refuses them
INACTIVE_TURN_POLICY = os.getenv("INACTIVE_TURN_POLICY", "allow").strip().lower()
TURN_WRITE_RETRIES = int(os.getenv("TURN_WRITE_RETRIES", "2"))

# --- API ---
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
