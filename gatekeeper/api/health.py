"""Health check endpoints."""
import redis
from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.route("/health")
def health_check():
    """Basic health check endpoint."""
    return ("ok", 200, {"Content-Type": "text/plain"})


@bp.route("/ready")
def readiness_check():
    """Readiness check: the redis store must answer PING."""
    client = current_app.config.get("REDIS_CLIENT")
    if client is None:
        return ("ready", 200, {"Content-Type": "text/plain"})
    try:
        client.ping()
    except redis.RedisError as e:
        current_app.logger.warning(f"Readiness check failed: {e}")
        return jsonify({"error": "Service Unavailable", "message": "redis unreachable"}), 503
    return ("ready", 200, {"Content-Type": "text/plain"})
