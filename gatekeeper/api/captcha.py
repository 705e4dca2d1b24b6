"""Challenge gate.

Runs before every request. Send URLs are answered here directly. Validate
requests are checked and, when the code matches, allowed through to their
view with ``g.verified_challenge`` set to ``(channel, target)``.
"""
from __future__ import annotations

from flask import Blueprint, current_app, g, request

from gatekeeper.core.captcha.service import SEND
from gatekeeper.services import current_services

bp = Blueprint("captcha", __name__)


@bp.before_app_request
def challenge_gate():
    """Route the request to the matching challenge service, if any."""
    if request.method == "OPTIONS":
        return None

    match = current_services().captcha.resolve(request)
    if match is None:
        return None

    service = match.service
    if match.action == SEND:
        return service.send(request)

    challenge = service.validate(request)
    g.verified_challenge = (service.channel, challenge.target)
    current_app.logger.debug(f"{service.channel} challenge accepted for {request.path}")
    return None
