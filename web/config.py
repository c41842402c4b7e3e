"""Centralized configuration for the sales web service."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

# Flask app settings (allow env overrides; default debug off for safety)
# Hosting platforms set PORT dynamically; fall back to FLASK_PORT or 4000 for local.
FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
FLASK_PORT = int(os.getenv("FLASK_PORT", os.getenv("PORT", "4000")))
FLASK_DEBUG = os.getenv("FLASK_DEBUG", "False").lower() == "true"

# Rate limiting is disabled when REDIS_URL is unset
REDIS_URL: Optional[str] = os.getenv("REDIS_URL")
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "20"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# Retry-After sent with 503 responses while data is loading or a load failed
RETRY_AFTER_SECONDS = int(os.getenv("RETRY_AFTER_SECONDS", "30"))

# Start the periodic refresh thread alongside the web server
RUN_SCHEDULER = os.getenv("RUN_SCHEDULER", "True").lower() == "true"

# Response compression (Flask-Compress), applied to JSON bodies of at least COMPRESS_MIN_SIZE bytes
COMPRESS_ALGORITHM = os.getenv("COMPRESS_ALGORITHM", "gzip")
COMPRESS_MIN_SIZE = int(os.getenv("COMPRESS_MIN_SIZE", "500"))
