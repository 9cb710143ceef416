#!/usr/bin/env python3
"""
Run migrations (same process, same DATABASE_URL), then seed, then uvicorn.
Ensures tables exist before seed and app start.
"""
import os
import sys

from transportapp.core.config import settings
from transportapp.core.logging import setup_logging
from wait_for_db import wait_for_db

setup_logging()

# 1) Wait for DB (Postgres only; SQLite needs no wait)
if not settings.DATABASE_URL.startswith("sqlite"):
    wait_for_db(settings.DATABASE_URL, int(os.getenv("DB_WAIT_TIMEOUT", "60")))

# 2) Run migrations using the same settings as the app
from alembic.config import Config
from alembic import command

alembic_cfg = Config(os.path.join(os.path.dirname(__file__), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

# 3) Seed through its own session factory so the engine is created after migrations
from transportapp.db.session import make_engine
from sqlalchemy.orm import sessionmaker
seed_engine = make_engine(settings.DATABASE_URL)
SeedSession = sessionmaker(autocommit=False, autoflush=False, bind=seed_engine)
from transportapp.seed import run as run_seed
run_seed(SeedSession())
seed_engine.dispose()

# 4) Start uvicorn (replace current process)
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "transportapp.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8000")],
)
