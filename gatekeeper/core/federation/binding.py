"""Session-scoped binding of a federated identity to a local account.

The binding rules are a pure function over (state, event):

    FederationSucceeded, linked        → state unchanged, SignIn(account)
    FederationSucceeded, not linked    → PendingBinding(identity)
    LocalAuthenticationSucceeded       → Unbound, CreateLink(...) if pending
    BindingAbandoned                   → Unbound

``SocialBindingCoordinator`` keeps the state in the Flask session and
carries out the effects.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Callable, MutableMapping, Optional, Tuple, Union

from flask import session as flask_session

from gatekeeper.core.accounts import AccountLinkError, AccountLinkService
from .userinfo import FederatedIdentity

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# States
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Unbound:
    pass


@dataclass(frozen=True)
class PendingBinding:
    identity: FederatedIdentity


UNBOUND = Unbound()

BindingState = Union[Unbound, PendingBinding]


# ─────────────────────────────────────────────────────────────────────────────
# Events
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class FederationSucceeded:
    identity: FederatedIdentity
    linked_account_id: Optional[str] = None


@dataclass(frozen=True)
class LocalAuthenticationSucceeded:
    account_id: str


@dataclass(frozen=True)
class BindingAbandoned:
    pass


BindingEvent = Union[FederationSucceeded, LocalAuthenticationSucceeded, BindingAbandoned]


# ─────────────────────────────────────────────────────────────────────────────
# Effects
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class SignIn:
    account_id: str


@dataclass(frozen=True)
class CreateLink:
    registration_id: str
    subject_id: str
    account_id: str


BindingEffect = Union[SignIn, CreateLink]


def transition(state: BindingState, event: BindingEvent) -> Tuple[BindingState, Optional[BindingEffect]]:
    if isinstance(event, FederationSucceeded):
        if event.linked_account_id:
            return state, SignIn(event.linked_account_id)
        return PendingBinding(event.identity), None

    if isinstance(event, LocalAuthenticationSucceeded):
        if isinstance(state, PendingBinding):
            identity = state.identity
            return UNBOUND, CreateLink(identity.registration_id, identity.subject_id, event.account_id)
        return state, None

    if isinstance(event, BindingAbandoned):
        return UNBOUND, None

    raise TypeError(f"Unsupported binding event: {event!r}")


class SocialBindingCoordinator:
    """Drive ``transition`` against the current session."""

    SESSION_KEY = "social_pending_binding"

    def __init__(
        self,
        link_service: AccountLinkService,
        session_provider: Callable[[], MutableMapping[str, Any]] = lambda: flask_session,
    ):
        self.link_service = link_service
        self._session = session_provider

    # ── session state ────────────────────────────────────────────────────────
    def current_state(self) -> BindingState:
        data = self._session().get(self.SESSION_KEY)
        if not data:
            return UNBOUND
        identity = FederatedIdentity(
            registration_id=data["registration_id"],
            subject_id=data["subject_id"],
            raw_attributes=data.get("attributes") or {},
        )
        return PendingBinding(identity)

    def _store(self, state: BindingState) -> None:
        session = self._session()
        if isinstance(state, PendingBinding):
            session[self.SESSION_KEY] = {
                "registration_id": state.identity.registration_id,
                "subject_id": state.identity.subject_id,
                "attributes": state.identity.raw_attributes,
            }
        else:
            session.pop(self.SESSION_KEY, None)

    # ── event handling ───────────────────────────────────────────────────────
    def handle(self, event: BindingEvent) -> Optional[BindingEffect]:
        state = self.current_state()
        new_state, effect = transition(state, event)

        if isinstance(effect, CreateLink):
            try:
                created = self.link_service.create_link(effect.registration_id, effect.subject_id, effect.account_id)
            except AccountLinkError as e:
                # Login still succeeds; the pending binding stays for a later attempt
                logger.error("Failed to bind %s identity to %s: %s", effect.registration_id, effect.account_id, e)
                return None
            if not created:
                logger.warning(
                    "%s identity already linked to another account; binding to %s skipped",
                    effect.registration_id, effect.account_id,
                )

        if new_state != state:
            self._store(new_state)
        return effect

    def on_federation_success(self, identity: FederatedIdentity) -> Optional[BindingEffect]:
        """Sign in a linked identity or park it as a pending binding.

        Raises:
            AccountLinkError: If the link store is unavailable
        """
        linked = self.link_service.find_link(identity.registration_id, identity.subject_id)
        return self.handle(FederationSucceeded(identity, linked))

    def on_local_authentication(self, account_id: str) -> None:
        self.handle(LocalAuthenticationSucceeded(account_id))

    def abandon(self) -> None:
        self.handle(BindingAbandoned())
