# voting_portal/config.py
# Central place for settings and constants
import os
from dotenv import load_dotenv

load_dotenv()

# --- Database Config ---
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "voting_portal")
# Reads fail over to the static dataset once the driver gives up selecting a server
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

VOTERS_COLLECTION_NAME = "voter_profiles"
AUTH_USERS_COLLECTION_NAME = "auth_users"
POSITIONS_COLLECTION_NAME = "positions"
CANDIDATES_COLLECTION_NAME = "candidates"
VOTES_COLLECTION_NAME = "election_votes"
SETTINGS_COLLECTION_NAME = "election_settings"

SETTINGS_DOCUMENT_ID = "election_settings"

# --- Security & JWT Config ---
# In production, use secure, environment-variable-based secrets
SECRET_KEY = os.getenv("SECRET_KEY", "a_very_secret_key_for_dev_only")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
MIN_PASSWORD_LENGTH = 6

# --- Read cache ---
CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", "5"))

# --- Election defaults ---
DEFAULT_ELECTION_TITLE = os.getenv("DEFAULT_ELECTION_TITLE", "Chapter Officers Election")

# Static dataset served when the database cannot be read
FALLBACK_DATA_PATH = os.getenv(
    "FALLBACK_DATA_PATH",
    os.path.join(os.path.dirname(__file__), "data", "fallback_election.json"),
)

# Health probe thresholds (milliseconds)
HEALTH_EXCELLENT_MS = 200
HEALTH_GOOD_MS = 500

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]
