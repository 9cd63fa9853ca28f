"""Alembic migration tests.

Runs offline (``--sql``) so no database server is needed. File named
test_zzz_alembic.py to sort LAST in pytest collection order.
"""

import subprocess
import sys
from pathlib import Path

from lms.db import models  # noqa: F401
from lms.db.base import Base

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _alembic(*args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, "-m", "alembic", *args],
        capture_output=True,
        text=True,
        cwd=PROJECT_ROOT,
    )


def test_alembic_upgrade_head_sql() -> None:
    """alembic upgrade head renders SQL creating every mapped table."""
    result = _alembic("upgrade", "head", "--sql")
    assert result.returncode == 0, f"alembic upgrade failed: {result.stderr}"
    for table in Base.metadata.tables:
        assert f"CREATE TABLE IF NOT EXISTS {table}" in result.stdout


def test_alembic_heads_single() -> None:
    """Exactly one head: the progression tables revision."""
    result = _alembic("heads")
    assert result.returncode == 0
    assert "001_progression_tables (head)" in result.stdout
