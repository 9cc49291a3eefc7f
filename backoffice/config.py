import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_READ_URL = os.environ.get("DATABASE_READ_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "backoffice_imobiliario.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-backoffice-imobiliario")
    AUTH_ENABLED = _bool_env("AUTH_ENABLED", True)
    # Formato: token:profile_id[,token:profile_id]
    AUTH_TOKENS = os.environ.get("AUTH_TOKENS", "")

    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)
    SECURITY_HEADERS_ENABLED = _bool_env("SECURITY_HEADERS_ENABLED", True)

    HOMIO_MODE = os.environ.get("HOMIO_MODE", "mock")
    HOMIO_WEBHOOK_BASE_URL = os.environ.get("HOMIO_WEBHOOK_BASE_URL", "https://api.homio.com.br/webhook")
    HOMIO_UNIT_WEBHOOK_PATH = os.environ.get("HOMIO_UNIT_WEBHOOK_PATH", "unit/update-status")
    HOMIO_FINANCE_WEBHOOK_PATH = os.environ.get("HOMIO_FINANCE_WEBHOOK_PATH", "mivita/finance-part")
    HOMIO_OPERATIONS_URL = os.environ.get("HOMIO_OPERATIONS_URL")
    HOMIO_OPERATIONS_API_KEY = os.environ.get("HOMIO_OPERATIONS_API_KEY")
    HOMIO_TIMEOUT_SECONDS = _int_env("HOMIO_TIMEOUT_SECONDS", 15)
    HOMIO_VERIFY_SSL = _bool_env("HOMIO_VERIFY_SSL", True)

    CACHE_LIST_TTL_SECONDS = _int_env("CACHE_LIST_TTL_SECONDS", 300)
    CACHE_CONFIG_TTL_SECONDS = _int_env("CACHE_CONFIG_TTL_SECONDS", 600)

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL nao definida para ambiente de producao.")
        if env == "production" and self.SECRET_KEY == "dev-secret-backoffice-imobiliario":
            raise RuntimeError("SECRET_KEY insegura para producao.")
        if env == "production" and self.HOMIO_MODE == "live" and not self.HOMIO_OPERATIONS_URL:
            raise RuntimeError("HOMIO_OPERATIONS_URL nao definida para HOMIO_MODE=live.")
