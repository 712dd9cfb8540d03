"""Tests for database URL resolution."""

import pytest

from dependencies.db import DEFAULT_DATABASE_URL, get_database_url, normalize_asyncpg_url


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgres://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("postgresql://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        ("postgresql+psycopg2://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
        (
            "postgresql://u:p@h/db?sslmode=require",
            "postgresql+asyncpg://u:p@h/db?ssl=require",
        ),
        ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
    ],
)
def test_normalize_asyncpg_url(raw: str, expected: str) -> None:
    assert normalize_asyncpg_url(raw) == expected


def test_database_url_from_parts(monkeypatch) -> None:
    monkeypatch.setattr("dependencies.db._load_env_files", lambda: None)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("POSTGRES_USER", "grader")
    monkeypatch.setenv("POSTGRES_PASSWORD", "pw")
    monkeypatch.setenv("POSTGRES_DB", "lapgrade")
    monkeypatch.setenv("POSTGRES_HOST", "db")

    assert get_database_url() == "postgresql+asyncpg://grader:pw@db:5432/lapgrade"


def test_database_url_default(monkeypatch) -> None:
    monkeypatch.setattr("dependencies.db._load_env_files", lambda: None)
    for name in ("DATABASE_URL", "POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_DB"):
        monkeypatch.delenv(name, raising=False)

    assert get_database_url() == DEFAULT_DATABASE_URL
