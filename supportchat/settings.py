import os

try:
    # Load .env from project root if present
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True), override=False)
except Exception:
    pass

APP_ENV = os.getenv("APP_ENV", "local")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dev.db")

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_SECONDS = int(os.getenv("JWT_EXPIRES_SECONDS", str(7 * 24 * 3600)))

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")
UPLOADS_DIR = os.getenv("UPLOADS_DIR", os.path.join(DATA_DIR, "uploads"))
UPLOADS_ENABLED = os.getenv("UPLOADS_ENABLED", "1") in ("1", "true", "True")

# Retention: user messages disappear from the user's view after this many seconds
RETENTION_SECONDS = int(os.getenv("RETENTION_SECONDS", "3600"))
CLEANUP_INTERVAL_SECONDS = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "300"))
CLEANUP_ENABLED = os.getenv("CLEANUP_ENABLED", "1") == "1"

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "50"))
THREADS_PAGE_SIZE = int(os.getenv("THREADS_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = 200

os.makedirs(UPLOADS_DIR, exist_ok=True)
