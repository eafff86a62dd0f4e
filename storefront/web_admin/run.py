#!/usr/bin/env python3
"""
Start the admin web panel
"""

from storefront.core.config import config
from storefront.core.logger import logger
from storefront.web_admin.app import create_app


def main():
    app = create_app()
    logger.info("Starting admin panel on http://localhost:5000")
    if config.security.admin_email:
        logger.info(f"Admin login: {config.security.admin_email}")
    else:
        logger.warning("ADMIN_EMAIL and ADMIN_PASSWORD are not set; nobody can log in")

    app.run(
        debug=config.debug,
        host='0.0.0.0',
        port=5000
    )


if __name__ == '__main__':
    main()
