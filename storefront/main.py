"""
Bootstrap the store database and run housekeeping
"""

import sys

from storefront.core.config import config
from storefront.core.exceptions import StorefrontException
from storefront.core.logger import logger
from storefront.database.manager import DatabaseManager
from storefront.services.order_service import OrderService


def main():
    """Create or upgrade the schema, then expire stale pending orders"""
    try:
        db = DatabaseManager()
        objects = db.schema_objects()
        logger.info(
            f"Database ready at {db.db_path} ({config.environment}): "
            + ', '.join(f"{len(names)} {kind}s" for kind, names in sorted(objects.items()))
        )

        expired = OrderService(db).expire_stale_orders()
        if expired:
            logger.info(f"Cancelled {len(expired)} stale orders: {', '.join(expired)}")
    except StorefrontException as e:
        logger.critical(f"Startup failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
