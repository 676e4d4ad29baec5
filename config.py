"""Application configuration and environment variables."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# Environment and debug settings
ENVIRONMENT = os.getenv("ENVIRONMENT", os.getenv("ENV", "development")).lower()
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Prevent DEBUG mode in production
if ENVIRONMENT == "production" and DEBUG:
    import logging as _logging
    _logging.basicConfig(level=_logging.INFO)
    _temp_logger = _logging.getLogger(__name__)
    _temp_logger.error("❌ DEBUG mode cannot be enabled in production environment")
    raise ValueError("DEBUG=true is forbidden in production. Set ENVIRONMENT=production and DEBUG=false")

# Logging configuration
LOG_VERBOSITY = os.getenv("LOG_VERBOSITY", "normal").lower()  # "minimal", "normal", "verbose"

# Persistence
PG_DSN = (os.getenv("WEATHERHIST_PG_DSN") or os.getenv("DATABASE_URL") or "").strip()
INSERT_BATCH_SIZE = int(os.getenv("INSERT_BATCH_SIZE", "50"))
PG_POOL_MIN_SIZE = int(os.getenv("PG_POOL_MIN_SIZE", "2"))
PG_POOL_MAX_SIZE = int(os.getenv("PG_POOL_MAX_SIZE", "10"))
PG_COMMAND_TIMEOUT = float(os.getenv("PG_COMMAND_TIMEOUT", "10.0"))

# Remote weather data provider
PROVIDER_BASE_URL = os.getenv("PROVIDER_BASE_URL", "http://localhost:8080/").strip()
PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "30.0"))
PROVIDER_MAX_CONCURRENCY = int(os.getenv("PROVIDER_MAX_CONCURRENCY", "2"))

# Reconciliation and query policy
STALENESS_THRESHOLD_MINUTES = int(os.getenv("STALENESS_THRESHOLD_MINUTES", "40"))
# Day-difference windows never reach back further than one year
DAY_DIFFERENCE_LIMIT = 365
MAX_DAY_DIFFERENCE = min(int(os.getenv("MAX_DAY_DIFFERENCE", "365")), DAY_DIFFERENCE_LIMIT)
AUTO_INIT_ON_STARTUP = os.getenv("AUTO_INIT_ON_STARTUP", "false").lower() == "true"



def configure_logging() -> None:
    """Configure root logging once, based on DEBUG and LOG_VERBOSITY."""
    if logging.getLogger().handlers:
        return
    if LOG_VERBOSITY == "minimal":
        log_level = logging.WARNING
    elif DEBUG or LOG_VERBOSITY == "verbose":
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# CORS configuration
def validate_cors_config():
    """Validate CORS configuration to prevent misconfiguration."""
    origins = os.getenv("CORS_ORIGINS", "").strip()
    env = ENVIRONMENT

    configure_logging()
    logger = logging.getLogger(__name__)

    if not origins:
        logger.warning("⚠️  No CORS origins configured - API may be inaccessible to web clients")

    if origins == "*":
        logger.error("❌ CORS_ORIGINS set to '*' - this is insecure!")
        if env == "production":
            raise ValueError("Wildcard CORS not allowed in production")
        else:
            logger.warning("⚠️  Wildcard CORS in non-production environment")

    return [origin.strip() for origin in origins.split(",") if origin.strip()]

CORS_ORIGINS = validate_cors_config()
