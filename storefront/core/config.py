"""
Centralized configuration
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class DatabaseConfig:
    """Database configuration"""
    path: str = "data/storefront.db"
    timeout: float = 5.0
    seed_demo_data: bool = False


@dataclass
class OrderConfig:
    """Checkout and order numbering"""
    number_prefix: str = "ORD-"
    number_attempts: int = 5
    reservation_ttl_minutes: int = 30
    currency: str = "USD"


@dataclass
class SecurityConfig:
    """Admin surface configuration"""
    secret_key: str = "change-in-production"
    admin_name: str = "Admin"
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None


@dataclass
class AppConfig:
    """Main application configuration"""
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    orders: OrderConfig = field(default_factory=OrderConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)


def load_config() -> AppConfig:
    """Load configuration from environment variables"""
    return AppConfig(
        environment=os.getenv('ENVIRONMENT', 'development'),
        debug=_env_bool('DEBUG', 'true'),
        log_level=os.getenv('LOG_LEVEL', 'INFO'),
        log_dir=os.getenv('LOG_DIR', 'logs'),
        database=DatabaseConfig(
            path=os.getenv('DATABASE_PATH', 'data/storefront.db'),
            timeout=float(os.getenv('DB_TIMEOUT', '5')),
            seed_demo_data=_env_bool('SEED_DEMO_DATA', 'false')
        ),
        orders=OrderConfig(
            number_prefix=os.getenv('ORDER_NUMBER_PREFIX', 'ORD-'),
            number_attempts=int(os.getenv('ORDER_NUMBER_ATTEMPTS', '5')),
            reservation_ttl_minutes=int(os.getenv('RESERVATION_TTL_MINUTES', '30')),
            currency=os.getenv('CURRENCY', 'USD')
        ),
        security=SecurityConfig(
            secret_key=os.getenv('FLASK_SECRET_KEY', 'change-in-production'),
            admin_name=os.getenv('ADMIN_NAME', 'Admin'),
            admin_email=os.getenv('ADMIN_EMAIL'),
            admin_password=os.getenv('ADMIN_PASSWORD')
        )
    )


# Global configuration
config = load_config()
