import os
from pathlib import Path

from dotenv import load_dotenv

from models.common import parse_bool

# Load environment variables from .env file in the backend folder
backend_dir = Path(__file__).parent
env_path = backend_dir / ".env"
load_dotenv(env_path)

SESSION_SECRET_KEY = os.getenv("SESSION_SECRET_KEY")
if not SESSION_SECRET_KEY:  # pragma: no cover
    raise ValueError("SESSION_SECRET_KEY must be set")

API_PREFIX = os.getenv("API_PREFIX", "")
BACKEND_DIR = Path(__file__).parent
DATABASE_PATH = BACKEND_DIR / "questlog.sqlite"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATABASE_PATH}")
PROJECT_PATH = BACKEND_DIR.parent

TESTING_MODE = parse_bool(os.getenv("TESTING_MODE", False))
CACHE_ENABLED = parse_bool(os.getenv("CACHE_ENABLED", True))
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "600"))

BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:3000")

# Community channel mirroring challenge activity
SLACK_TOKEN = os.getenv("SLACK_TOKEN") or None
SLACK_CHANNEL = os.getenv("SLACK_CHANNEL", "#questlog")
