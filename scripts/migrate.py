#!/usr/bin/env python
"""
Run alembic against the configured database.

    python scripts/migrate.py upgrade
    python scripts/migrate.py revision "add column"
"""
import logging
import os
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def build_command(argv: list[str]) -> list[str]:
    if not argv or argv[0] not in {"upgrade", "revision"}:
        raise ValueError('usage: migrate.py upgrade | revision "message"')
    if argv[0] == "upgrade":
        return [sys.executable, "-m", "alembic", "upgrade", argv[1] if len(argv) > 1 else "head"]
    if len(argv) < 2:
        raise ValueError("revision needs a message")
    return [sys.executable, "-m", "alembic", "revision", "--autogenerate", "-m", argv[1]]


def main():
    logging.basicConfig(level=logging.INFO)
    try:
        cmd = build_command(sys.argv[1:])
    except ValueError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    repo_root = Path(__file__).resolve().parents[1]
    env_path = repo_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    # Host-run migrations may need a different URL than the container
    migrations_url = os.getenv("MIGRATIONS_DATABASE_URL")
    if migrations_url:
        os.environ["DATABASE_URL"] = migrations_url

    result = subprocess.run(cmd, cwd=repo_root)
    sys.exit(result.returncode)


if __name__ == "__main__":
    main()
