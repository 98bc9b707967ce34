"""Root conftest — shared test configuration."""

import os

# Tests never reach real collaborators or the docker-compose database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("IDENTITY_PROVIDER", "header")
os.environ.setdefault("SESSION_SWEEP_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")
