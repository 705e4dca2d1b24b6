"""Authentication routes: local login and federated (OAuth2) login.

Federated flow:
    GET /oauth2/authorization/<registration_id>   → 302 to the provider
    GET /login/oauth2/code/<registration_id>      → token exchange + user info

A federated identity with no local link is parked in the session; the next
successful local login (POST /login) binds it to that account.
"""
from __future__ import annotations
import hmac

from flask import Blueprint, abort, current_app, g, jsonify, redirect, request, session

from gatekeeper.core.captcha import request_param
from gatekeeper.core.captcha.models import Channel
from gatekeeper.core.federation import (
    AuthorizationCodeGrant,
    AuthorizationFailed,
    AuthorizationRequest,
    PendingBinding,
    SignIn,
    UnknownRegistration,
)
from gatekeeper.services import current_services

bp = Blueprint("auth", __name__)

AUTH_REQUEST_SESSION_KEY = "oauth2_authorization_request"


def _sign_in(account) -> None:
    session["account_id"] = account.account_id
    session["username"] = account.username


def _verified_mobile() -> str | None:
    verified = g.get("verified_challenge")
    if verified and verified[0] == Channel.SMS.value:
        return verified[1]
    return None


# ─────────────────────────────────────────────────────────────────────────────
# Local credentials
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/login", methods=["POST"])
def login():
    """Authenticate with username/password, or with a mobile number the SMS
    challenge has just verified."""
    services = current_services()
    username = request_param(request, "username")
    password = request_param(request, "password")
    mobile = request_param(request, "mobile")

    account = None
    password_login = bool(username and password)
    if password_login:
        account = services.accounts.authenticate(username, password)
    elif mobile:
        verified = _verified_mobile()
        if verified is None or not hmac.compare_digest(verified, mobile):
            abort(401)
        account = services.accounts.find_by_mobile(mobile)
    else:
        abort(400, description="username and password, or mobile, are required")

    if account is None:
        current_app.logger.info("Local login rejected")
        return jsonify({"error": "Unauthorized", "message": "Invalid credentials"}), 401

    _sign_in(account)
    # Only a password login can claim a pending federated identity
    if password_login:
        services.events.publish(account.account_id)
    current_app.logger.info(f"Local login succeeded for account {account.account_id}")
    return jsonify({"status": "authenticated", "account": account.public_view()})


@bp.route("/logout", methods=["POST"])
def logout():
    current_services().binding.abandon()
    session.clear()
    return jsonify({"status": "logged_out"})


@bp.route("/me")
def me():
    services = current_services()
    account_id = session.get("account_id")
    account = services.accounts.get(account_id) if account_id else None

    pending = None
    state = services.binding.current_state()
    if isinstance(state, PendingBinding):
        pending = {
            "registration_id": state.identity.registration_id,
            "subject_id": state.identity.subject_id,
        }

    return jsonify({
        "authenticated": account is not None,
        "account": account.public_view() if account else None,
        "pending_binding": pending,
    })


# ─────────────────────────────────────────────────────────────────────────────
# Federated login
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/oauth2/authorization/<registration_id>")
def authorize(registration_id: str):
    """Redirect to the provider's authorization endpoint."""
    auth_request = current_services().authorization.resolve(request)
    if auth_request is None:
        raise UnknownRegistration(registration_id)
    session[AUTH_REQUEST_SESSION_KEY] = auth_request.to_dict()
    return redirect(auth_request.to_url())


@bp.route("/login/oauth2/code/<registration_id>")
def callback(registration_id: str):
    """Complete the authorization-code flow and resolve the local account."""
    services = current_services()
    descriptor = services.providers.get(registration_id)

    stored = session.pop(AUTH_REQUEST_SESSION_KEY, None)
    if not stored:
        raise AuthorizationFailed("No authorization request in progress", "authorization_request_not_found",
                                  registration_id=registration_id)
    auth_request = AuthorizationRequest.from_dict(stored)

    if request.args.get("error"):
        raise AuthorizationFailed(
            "Provider denied the authorization request",
            request.args["error"],
            request.args.get("error_description"),
            registration_id=registration_id,
        )

    state = request.args.get("state", "")
    if auth_request.registration_id != registration_id or not hmac.compare_digest(state, auth_request.state):
        raise AuthorizationFailed("State mismatch", "invalid_state", registration_id=registration_id)

    code = request.args.get("code")
    if not code:
        abort(400, description="Missing authorization code")

    grant = AuthorizationCodeGrant(
        provider=descriptor,
        code=code,
        redirect_uri=auth_request.redirect_uri,
        code_verifier=auth_request.code_verifier,
        state=state,
    )
    token = services.tokens.exchange(grant)
    identity = services.user_info.fetch_user(token, registration_id)

    effect = services.binding.on_federation_success(identity)
    if isinstance(effect, SignIn):
        account = services.accounts.get(effect.account_id)
        if account is None:
            current_app.logger.error(f"Link for {registration_id} points to missing account {effect.account_id}")
            abort(401)
        _sign_in(account)
        return jsonify({"status": "authenticated", "account": account.public_view()})

    current_app.logger.info(f"Federated identity from {registration_id} awaiting binding")
    return jsonify({
        "status": "pending_binding",
        "registration_id": identity.registration_id,
        "subject_id": identity.subject_id,
    })
