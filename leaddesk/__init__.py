"""
Flask application factory.

Creates and configures the Flask app, registers the API blueprint.
"""
import os
from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from leaddesk.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    app.secret_key = os.getenv('SECRET_KEY', 'dev-secret-change-me')

    from leaddesk.routes.api import bp as api_bp
    app.register_blueprint(api_bp)

    # Initialize circuit breakers for the MQL and OpenAI providers
    from leaddesk.extensions import redis_client
    from leaddesk.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    # Import models so Base.metadata knows about them.
    # Schema is managed by Alembic, no create_all() here.
    import importlib
    importlib.import_module('leaddesk.models.lead')
    importlib.import_module('leaddesk.models.enrichment')
    importlib.import_module('leaddesk.models.analysis')

    return app
