import os
from functools import lru_cache
from pathlib import Path

from sqlalchemy.engine import URL

from errors import ConflictError


class Settings:
    def __init__(
        self,
        database_url: str,
        host: str,
        port: int,
        cors_origins: list[str],
        timezone: str,
        auto_create_schema: bool,
        seed_default_budgets: bool,
    ) -> None:
        self.database_url = database_url
        self.host = host
        self.port = port
        self.cors_origins = cors_origins
        self.timezone = timezone
        self.auto_create_schema = auto_create_schema
        self.seed_default_budgets = seed_default_budgets

    def origin_allowed(self, origin: str) -> bool:
        return "*" in self.cors_origins or origin.rstrip("/") in self.cors_origins

    def require_origin(self, origin: str) -> None:
        if not self.origin_allowed(origin):
            raise ConflictError(f"CORS blocked for origin: {origin}")


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _split_origins(raw: str) -> list[str]:
    return [o.strip().rstrip("/") for o in raw.split(",") if o.strip()]


def _database_url() -> str:
    explicit = os.getenv("BUDGET_DATABASE_URL")
    if explicit:
        return explicit
    db_host = os.getenv("BUDGET_DB_HOST")
    if db_host:
        url = URL.create(
            drivername=os.getenv("BUDGET_DB_DRIVER", "mysql+pymysql"),
            username=os.getenv("BUDGET_DB_USER", "root"),
            password=os.getenv("BUDGET_DB_PASSWORD") or None,
            host=db_host,
            port=int(os.getenv("BUDGET_DB_PORT", "3306")),
            database=os.getenv("BUDGET_DB_NAME", "budget"),
        )
        return url.render_as_string(hide_password=False)
    default_db = _ensure_data_dir() / "budget.db"
    return f"sqlite:///{default_db}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        database_url=_database_url(),
        host=os.getenv("BUDGET_HOST", "0.0.0.0"),
        port=int(os.getenv("BUDGET_PORT", "3001")),
        cors_origins=_split_origins(
            os.getenv("BUDGET_CORS_ORIGINS", "http://localhost:3000")
        ),
        timezone=os.getenv("BUDGET_TIMEZONE", "America/Sao_Paulo"),
        auto_create_schema=_env_flag("BUDGET_AUTO_CREATE_SCHEMA", "true"),
        seed_default_budgets=_env_flag("BUDGET_SEED_DEFAULT_BUDGETS", "false"),
    )
