import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Draft persistence
    # - "redis": durable, survives restarts (default)
    # - "memory": process-local, for embedded use and local runs
    DRAFT_STORE: str = os.getenv("DRAFT_STORE", "redis").lower()
    DRAFT_KEY_PREFIX: str = os.getenv("DRAFT_KEY_PREFIX", "draft:")
    DEPOSIT_DRAFT_KEY: str = os.getenv("DEPOSIT_DRAFT_KEY", "odraft")
    LOAN_DRAFT_KEY: str = os.getenv("LOAN_DRAFT_KEY", "loanDraft")
    DRAFT_TTL_SEC: int = int(os.getenv("DRAFT_TTL_SEC", "0"))  # 0 = keep until submitted/cleared

    # Live controllers kept in memory by the HTTP layer (rebuilt from the draft when dropped)
    MAX_LIVE_SESSIONS: int = int(os.getenv("MAX_LIVE_SESSIONS", "1000"))
    SESSION_IDLE_SEC: int = int(os.getenv("SESSION_IDLE_SEC", "1800"))  # 0 = no idle expiry

    # Validation limits
    MAX_FILE_SIZE_BYTES: int = int(os.getenv("MAX_FILE_SIZE_BYTES", str(5 * 1024 * 1024)))
    NOMINEE_PERCENT_TOLERANCE: float = float(os.getenv("NOMINEE_PERCENT_TOLERANCE", "0.01"))

    # Remote service
    # - "mock": in-process mock API (default, mirrors the mobile app's mock backend)
    # - "http": real backend at REMOTE_BASE_URL
    REMOTE_MODE: str = os.getenv("REMOTE_MODE", "mock").lower()
    REMOTE_BASE_URL: str = os.getenv("REMOTE_BASE_URL", "").rstrip("/")
    REMOTE_API_KEY: str = os.getenv("REMOTE_API_KEY", "")
    REMOTE_TIMEOUT_SEC: float = float(os.getenv("REMOTE_TIMEOUT_SEC", "10"))
    # Applies to read-only lookups only; submissions are never retried by the client.
    REMOTE_MAX_RETRIES: int = int(os.getenv("REMOTE_MAX_RETRIES", "2"))

    # Observability
    METRICS_ENABLED: bool = os.getenv("METRICS_ENABLED", "true").lower() == "true"
    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"

settings = Settings()
