"""
Start the Roof Finder API.

    RUN_MIGRATIONS=true python run.py    # alembic upgrade head, then serve
"""
import logging
import os

import uvicorn

logger = logging.getLogger("roof_finder.run")


def run_migrations() -> bool:
    """Upgrade the schema to the latest alembic revision."""
    from alembic import command
    from alembic.config import Config
    from sqlalchemy.exc import SQLAlchemyError

    try:
        logger.info("[STARTUP] alembic upgrade head")
        command.upgrade(Config("alembic.ini"), "head")
    except SQLAlchemyError as e:
        logger.warning(f"[WARN] Migration failed: {e}")
        return False
    return True


def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    if os.getenv("RUN_MIGRATIONS") == "true" and not run_migrations():
        logger.warning("[WARN] Continuing; missing tables are created on app startup")

    uvicorn.run(
        "roof_finder.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=os.getenv("ENV") == "development",
        log_level="info",
    )


if __name__ == "__main__":
    main()
