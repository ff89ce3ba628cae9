"""Global pytest configuration."""

import os

# Settings are read at import time; tests run against SQLite unless told otherwise
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
