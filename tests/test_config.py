import pytest

from config import Settings
from errors import ConflictError


def _settings(origins: list[str]) -> Settings:
    return Settings(
        database_url="sqlite:///:memory:",
        host="127.0.0.1",
        port=3001,
        cors_origins=origins,
        timezone="UTC",
        auto_create_schema=True,
        seed_default_budgets=False,
    )


def test_require_origin_rejects_unlisted_origins() -> None:
    settings = _settings(["http://localhost:3000"])

    settings.require_origin("http://localhost:3000/")
    with pytest.raises(ConflictError):
        settings.require_origin("http://localhost:3000.evil.example")
    with pytest.raises(ConflictError):
        settings.require_origin("http://evil.example")


def test_wildcard_allows_any_origin() -> None:
    _settings(["*"]).require_origin("http://anything.example")
