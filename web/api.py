"""JSON endpoints serving the live sales dataset.

Every route sits behind the rate limiter. Reads go through the ``ReadAPI``
stored on the app, so a request either gets a complete dataset or a 503
telling the client to retry.
"""

from typing import Tuple

from flask import Blueprint, Response, current_app, jsonify, request

from unlisted.errors import CycleFailed, DataNotReady, LoadInProgress, StateConflict
from unlisted.logging_config import get_logger
from unlisted.read_api import ReadAPI
from web.config import RETRY_AFTER_SECONDS
from web.rate_limit import RateLimiter, client_ip

__all__ = ["api", "READ_API_KEY", "RATE_LIMITER_KEY"]

logger = get_logger("web.api")

READ_API_KEY = "unlisted.read_api"
RATE_LIMITER_KEY = "unlisted.rate_limiter"

api = Blueprint("api", __name__)


def _read_api() -> ReadAPI:
    return current_app.extensions[READ_API_KEY]


def _rate_limiter() -> RateLimiter:
    return current_app.extensions[RATE_LIMITER_KEY]


@api.before_request
def enforce_rate_limit():
    """Reject clients over their request budget with 400 and Retry-After."""
    ip = client_ip(request)
    result = _rate_limiter().hit(ip)
    if result.allowed:
        return None

    logger.info(f"Rate limited {ip}: {result.total} requests per window exceeded")
    response = jsonify({"limit": True})
    response.status_code = 400
    response.headers["Retry-After"] = str(max(result.reset_in, 0))
    return response


@api.errorhandler(DataNotReady)
def handle_not_ready(error: DataNotReady) -> Tuple[Response, int]:
    if isinstance(error, CycleFailed):
        logger.error(f"Data load failed: {error}")
    elif isinstance(error, LoadInProgress):
        logger.info(f"Data still loading: {error}")
    response = jsonify({"error": "Server error, try again later."})
    response.headers["Retry-After"] = str(RETRY_AFTER_SECONDS)
    return response, 503


@api.errorhandler(StateConflict)
def handle_state_conflict(error: StateConflict) -> Tuple[Response, int]:
    logger.error(f"State conflict while serving {request.path}: {error}")
    return jsonify({"error": str(error)}), 409


@api.route("/", methods=["GET"])
def index() -> Response:
    return jsonify({"success": 1})


@api.route("/unlisted.json", methods=["GET"])
def unlisted_sales() -> Response:
    """Products on sale that are missing from the sale category."""
    return jsonify(_read_api().get_unlisted_sales())


@api.route("/sales.json", methods=["GET"])
def complete_sales() -> Response:
    """Every product currently on sale."""
    return jsonify(_read_api().get_full_sales_view())


@api.route("/status.json", methods=["GET"])
def status() -> Response:
    return jsonify(_read_api().get_status())
