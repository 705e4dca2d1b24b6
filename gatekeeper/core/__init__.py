"""Core logic for the verification gate and the federation broker.

Module Structure:
    - captcha/      : challenge generation, storage, delivery and validation
    - federation/   : provider registry, vendor adapters, token and user-info
                      brokers, social binding
    - accounts.py   : local accounts and federated-identity links
    - events.py     : local-authentication event source
    - messaging.py  : outbound message dispatch adapters

Usage Pattern:
    These modules are NOT auto-imported. Import explicitly when needed:
        from gatekeeper.core.captcha import ChallengeServiceRegistry
        from gatekeeper.core.federation import TokenExchangeBroker
"""
