"""Gatekeeper: verification-challenge gate and identity federation broker.

To use the Flask app:
    from gatekeeper.flask_app import create_app

To use the challenge gate directly:
    from gatekeeper.core.captcha import ChallengeServiceRegistry

To use the federation brokers:
    from gatekeeper.core.federation import TokenExchangeBroker, UserInfoBroker
"""
# Note: flask_app is not imported here so that core modules stay importable
# without building an application.
