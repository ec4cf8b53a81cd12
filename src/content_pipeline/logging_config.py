import logging
import os

NOISY_LOGGERS = ('httpx', 'httpcore', 'openai', 'urllib3')


def setup_logging():
    """Configure logging with a level set by the LOG_LEVEL environment variable (default: INFO)."""
    log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Reduce noise from client libraries
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured with level: {log_level}")
