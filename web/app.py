"""Flask web app serving unlisted sales.

Provides the read-only JSON service in front of the refresh pipeline. The
periodic refresh runs on a background thread in the same process.
"""

import logging
from typing import Optional

from flask import Flask
from flask_compress import Compress

from unlisted.logging_config import get_logger, setup_logging
from unlisted.pipeline import create_swap
from unlisted.read_api import ReadAPI
from unlisted.scheduler import RefreshScheduler
from web.api import RATE_LIMITER_KEY, READ_API_KEY, api
from web.config import (
    COMPRESS_ALGORITHM,
    COMPRESS_MIN_SIZE,
    FLASK_DEBUG,
    FLASK_HOST,
    FLASK_PORT,
    RUN_SCHEDULER,
)
from web.rate_limit import RateLimiter, create_rate_limiter

__all__ = ["create_app", "main"]

logger = get_logger("web")


def create_app(
    read_api: Optional[ReadAPI] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> Flask:
    """Build the Flask app around a read API and a rate limiter.

    Both default to the configured pipeline and Redis limiter.
    """
    app = Flask(__name__)
    app.json.sort_keys = False

    # gzip JSON responses for clients that accept it
    app.config["COMPRESS_ALGORITHM"] = COMPRESS_ALGORITHM
    app.config["COMPRESS_MIN_SIZE"] = COMPRESS_MIN_SIZE
    app.config["COMPRESS_MIMETYPES"] = ["application/json"]
    Compress(app)

    app.extensions[READ_API_KEY] = read_api or ReadAPI(create_swap())
    app.extensions[RATE_LIMITER_KEY] = rate_limiter or create_rate_limiter()
    app.register_blueprint(api)
    return app


def main() -> None:
    setup_logging(level=logging.DEBUG if FLASK_DEBUG else logging.INFO)

    swap = create_swap()
    app = create_app(read_api=ReadAPI(swap))

    scheduler = RefreshScheduler(swap).start() if RUN_SCHEDULER else None

    logger.info(f"Server listening on {FLASK_HOST}:{FLASK_PORT}")
    try:
        # The reloader would start a second scheduler thread
        app.run(host=FLASK_HOST, port=FLASK_PORT, debug=FLASK_DEBUG, use_reloader=False)
    finally:
        if scheduler is not None:
            scheduler.stop(timeout=5)


if __name__ == "__main__":
    main()
