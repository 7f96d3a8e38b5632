import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Admin endpoints
    ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN", "")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Game
    LISTEN_DURATION_MS = int(os.environ.get("LISTEN_DURATION_MS", "45000"))
    REVEAL_DURATION_MS = int(os.environ.get("REVEAL_DURATION_MS", "8000"))
    INTERMISSION_DURATION_MS = int(os.environ.get("INTERMISSION_DURATION_MS", "5000"))
    DEFAULT_SONG_COUNT = int(os.environ.get("DEFAULT_SONG_COUNT", "20"))

    # Ticker
    START_TICKER = os.environ.get("START_TICKER", "1") == "1"
    TICK_INTERVAL_SEC = float(os.environ.get("TICK_INTERVAL_SEC", "0.25"))
    EMPTY_ROOM_TTL_SEC = int(os.environ.get("EMPTY_ROOM_TTL_SEC", "600"))
