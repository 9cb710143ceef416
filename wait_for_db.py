#!/usr/bin/env python3
"""Block until the Postgres behind DATABASE_URL accepts connections.

Used by start_api.py before migrating; also runnable on its own in a
container entrypoint.
"""
import logging
import os
import time

import psycopg2
from sqlalchemy.engine import make_url

log = logging.getLogger("wait_for_db")


def connect_kwargs(database_url: str) -> dict:
    url = make_url(database_url)
    return {
        "host": url.host or "db",
        "port": url.port or 5432,
        "user": url.username or "transportapp",
        "password": url.password or "transportapp",
        "dbname": url.database or "transportapp",
    }


def wait_for_db(database_url: str, timeout_s: int = 60, interval_s: float = 1.0) -> None:
    """Poll until a connection succeeds; re-raise the last error after `timeout_s`."""
    kwargs = connect_kwargs(database_url)
    deadline = time.monotonic() + timeout_s
    log.info("waiting for Postgres at %s:%s db=%s (timeout=%ss)", kwargs["host"], kwargs["port"], kwargs["dbname"], timeout_s)
    while True:
        try:
            psycopg2.connect(connect_timeout=5, **kwargs).close()
            log.info("Postgres is ready")
            return
        except psycopg2.OperationalError as e:
            if time.monotonic() >= deadline:
                log.error("timed out waiting for the database: %s", e)
                raise
            time.sleep(interval_s)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    url = os.getenv("DATABASE_URL")
    if not url:
        raise SystemExit("DATABASE_URL is not set")
    wait_for_db(url, int(os.getenv("DB_WAIT_TIMEOUT", "60")))
