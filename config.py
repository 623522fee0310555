import os
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file in project root
_project_root = Path(__file__).resolve().parent
load_dotenv(_project_root / ".env")


class Config:
    """Configuration management for the CarConnect API."""

    APP_ENV = os.getenv("APP_ENV", "development")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    PORT = int(os.getenv("PORT", 8000))

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL")
    DATABASE_NAME = os.getenv("DATABASE_NAME", "carconnect")

    # Booking rules
    ENFORCE_BOOKING_OVERLAP = os.getenv("ENFORCE_BOOKING_OVERLAP", "true").lower() == "true"
    NOTIFICATION_RETENTION_DAYS = int(os.getenv("NOTIFICATION_RETENTION_DAYS", 30))

    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    @classmethod
    def is_production(cls):
        return cls.APP_ENV.lower() == "production"

    @classmethod
    def validate(cls):
        """Check for missing critical settings."""
        logger = logging.getLogger(__name__)
        if not cls.DATABASE_URL:
            logger.warning("DATABASE_URL is not set; the API will answer 500 until a database is configured.")
            return False
        return True


# Extra attributes copied into the JSON line when a log call supplies them
_CONTEXT_FIELDS = ("request_id", "booking_id", "car_id", "ride_request_id")


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
        }
        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                log_record[field] = getattr(record, field)
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


def setup_logging(level=None):
    """Configure structured JSON logging."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level or Config.LOG_LEVEL)
    # Remove existing handlers to avoid duplication
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
