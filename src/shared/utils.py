import logging
import os

LOG_LEVEL = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),  # Output to console
    ],
)

# APScheduler logs every job submission at INFO
logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str):
    return logging.getLogger(name)
