"""
FamilySafe Proxy Gateway Entry Point.

Bootstraps the dependency graph via constructor injection, initialises the
local SQLite schema, and serves the proxy gateway with uvicorn.  Every
subsystem is wired here; there are no module-level globals.

Usage::

    python main.py
"""

from __future__ import annotations

import atexit
import sys
import traceback
from pathlib import Path

import uvicorn

from familysafe.config import get_config
from familysafe.database import DatabaseManager
from familysafe.gateway import create_gateway_app
from familysafe.logger import StructuredLogger, get_logger
from familysafe.schema import initialize_schema
from familysafe.services import create_services


def main() -> None:
    """Application entry point: wire dependencies and serve the gateway."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting FamilySafe...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (local SQLite document store)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        sqlite_path=Path(config.SQLITE_PATH),
        logger=StructuredLogger(name="database"),
    )

    # DatabaseManager.close() is safe to call more than once.
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. SQLite Schema Initialization (idempotent)
    # ------------------------------------------------------------------
    initialize_schema(db.sqlite, StructuredLogger(name="schema"))

    # ------------------------------------------------------------------
    # 4. Service Container (repositories + services, single composition root)
    # ------------------------------------------------------------------
    services = create_services(
        db=db,
        config=config,
        logger=get_logger("services"),
    )

    # ------------------------------------------------------------------
    # 5. Proxy Gateway
    # ------------------------------------------------------------------
    app = create_gateway_app(
        config=config,
        logger=get_logger("gateway"),
        profile_repo=services["profile_repo"],
    )

    # ------------------------------------------------------------------
    # 6. Serve (blocks until shutdown)
    # ------------------------------------------------------------------
    logger.info("Serving gateway on %s:%d", config.GATEWAY_HOST, config.GATEWAY_PORT)
    try:
        uvicorn.run(app, host=config.GATEWAY_HOST, port=config.GATEWAY_PORT)
    finally:
        db.close()
        logger.info("FamilySafe shut down.")


def _report_fatal_error(exc: BaseException) -> None:
    """Write the traceback to stderr so a failed startup is not silent."""
    detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        _report_fatal_error(exc)
        sys.exit(1)
