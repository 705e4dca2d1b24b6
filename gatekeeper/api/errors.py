"""Error handlers for the application."""
from flask import jsonify
from werkzeug.exceptions import HTTPException

from gatekeeper.core.accounts import AccountLinkError
from gatekeeper.core.captcha import (
    ChallengeInvalid,
    MissingParameter,
    SendError,
    StorageError,
    ThrottleExceeded,
    UnknownChannel,
)
from gatekeeper.core.federation import ProviderError, UnknownRegistration
from gatekeeper.core.messaging import DispatchError


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    # ── domain errors ────────────────────────────────────────────────────────
    @app.errorhandler(StorageError)
    @app.errorhandler(AccountLinkError)
    def storage_unavailable(error):
        """Handle store outages (challenge store, link store)."""
        app.logger.error(f"Storage unavailable: {error}", exc_info=True)
        return jsonify({"error": "Service Unavailable", "message": "Storage temporarily unavailable"}), 503

    @app.errorhandler(SendError)
    @app.errorhandler(DispatchError)
    def send_failed(error):
        """Handle challenge delivery failures."""
        app.logger.warning(f"Challenge delivery failed: {error}")
        return jsonify({"error": "Send Failed", "message": "Verification code could not be delivered"}), 502

    @app.errorhandler(ChallengeInvalid)
    def challenge_invalid(error):
        return jsonify({"error": "Unauthorized", "message": str(error)}), 401

    @app.errorhandler(ThrottleExceeded)
    def throttle_exceeded(error):
        response = jsonify({
            "error": "Too Many Requests",
            "message": str(error),
            "retry_after": error.retry_after,
        })
        response.status_code = 429
        response.headers["Retry-After"] = str(error.retry_after)
        return response

    @app.errorhandler(MissingParameter)
    @app.errorhandler(UnknownChannel)
    def bad_gate_request(error):
        return jsonify({"error": "Bad Request", "message": str(error)}), 400

    @app.errorhandler(UnknownRegistration)
    def unknown_registration(error):
        return jsonify({"error": "Not Found", "message": str(error)}), 404

    @app.errorhandler(ProviderError)
    def provider_failed(error):
        """Handle token exchange, user-info and callback failures."""
        app.logger.warning(f"Federated login failed: {error}")
        return jsonify({
            "error": "Unauthorized",
            "message": error.message,
            "provider_error": error.provider_error_code,
        }), 401

    # ── HTTP errors ──────────────────────────────────────────────────────────
    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors."""
        description = getattr(error, "description", None) or "Bad request"
        return jsonify({"error": "Bad Request", "message": description}), 400

    @app.errorhandler(401)
    def unauthorized(error):
        """Handle 401 Unauthorized errors."""
        return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found errors."""
        return jsonify({"error": "Not Found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method Not Allowed", "message": "Method not allowed for this endpoint"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 Internal Server Error."""
        # ALWAYS log the full error (even in production) - logs are secure
        app.logger.error(f"Internal error: {error}", exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # Pass through HTTP errors
        if isinstance(error, HTTPException):
            return error

        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500
