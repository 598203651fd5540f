import os
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

def _get_env(key: str, default: str | None = None) -> str:
    val = os.getenv(key, default)
    if val is None:
        raise RuntimeError(f"Missing required env var: {key}")
    return val

def _get_flag(key: str, default: str = "false") -> bool:
    return _get_env(key, default).lower() in ("1", "true", "yes")

APP_ENV = _get_env("APP_ENV", "local")
DATABASE_URL = _get_env("DATABASE_URL", "sqlite:///./craftguide.db")
LOG_LEVEL = _get_env("LOG_LEVEL", "DEBUG")
LOG_FILE = _get_env("LOG_FILE", "logs/craftguide.log")
SQL_DEBUG = _get_flag("SQL_DEBUG")

# "header" trusts X-User-Id (behind a gateway), "hs256" verifies a bearer token
AUTH_MODE = _get_env("AUTH_MODE", "header").lower()
AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET")

ANALYTICS_READ_TIMEOUT_SECONDS = float(_get_env("ANALYTICS_READ_TIMEOUT_SECONDS", "10"))

# JSON file replacing the built-in template catalog when set
TEMPLATE_CATALOG_PATH = os.getenv("TEMPLATE_CATALOG_PATH")

logger.debug(
    f"Config loaded: APP_ENV={APP_ENV}, DATABASE_URL={DATABASE_URL}, "
    f"LOG_LEVEL={LOG_LEVEL}, AUTH_MODE={AUTH_MODE}"
)
