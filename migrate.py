"""Schema setup helper.
Creates every marketplace table on the configured DATABASE_URL. Production
deployments run the alembic revision instead.
Run: python migrate.py
"""
import logging

import models  # noqa: F401  registers the tables
from config import configure_logging
from db import DATABASE_URL, init_db

logger = logging.getLogger("migrate")


def main():
    configure_logging()
    init_db()
    logger.info("schema ready on %s", DATABASE_URL)


if __name__ == "__main__":
    main()
