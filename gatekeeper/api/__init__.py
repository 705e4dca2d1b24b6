"""HTTP blueprints: challenge gate, authentication, health, error handlers."""
