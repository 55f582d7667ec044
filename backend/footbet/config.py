"""
backend/footbet/config.py

Purpose:
    Central settings loading for the prediction backend.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGO_DB: str = "footbet"
    JWT_SECRET: str = ""  # Required at startup; checked in lifespan
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    COOKIE_SECURE: bool = False  # Set True in production (HTTPS)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Comma-separated admin allow-list (in addition to users.is_admin)
    ADMIN_EMAILS: str = ""

    # API-Football (fixtures + head-to-head + results)
    FOOTBALL_API_KEY: str = ""
    FOOTBALL_API_BASE_URL: str = "https://v3.football.api-sports.io"
    FOOTBALL_API_HOST: str = "api-football.p.rapidapi.com"
    FOOTBALL_API_RATE_LIMIT_RPM: int = 30

    # Outbound HTTP behaviour
    HTTP_TIMEOUT_SECONDS: float = 15.0
    HTTP_MAX_RETRIES: int = 3
    HTTP_BASE_DELAY_SECONDS: float = 2.0

    # Generative service (Gemini)
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_TEMPERATURE: float = 0.4

    # Official ruleset
    OFFICIAL_TARGET_TOTAL: int = 50
    OFFICIAL_TOLERANCE: int = 5
    MAX_FIXTURES_PER_PROMPT: int = 100  # keeps prompt size reasonable

    # Special (elite) ruleset
    SPECIAL_MAX_PICKS: int = 10
    SPECIAL_MIN_H2H: int = 4
    SPECIAL_H2H_YEARS: int = 2

    # Per-(date, ruleset) advisory lock
    GENERATION_LOCK_TTL_SECONDS: int = 900

    # Results checker
    RESULTS_CHECK_ENABLED: bool = False
    RESULTS_CHECK_INTERVAL_MINUTES: int = 60

    # WebSocket realtime stream
    WS_EVENTS_ENABLED: bool = True
    WS_HEARTBEAT_SECONDS: int = 30
    WS_MAX_CONNECTIONS: int = 500

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    @property
    def admin_emails(self) -> set[str]:
        return {e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()}


settings = Settings()
