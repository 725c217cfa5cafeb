"""
Flask application factory.

Creates the app, wires logging, registers the blueprints and the
generation-provider circuit breakers.
"""
import importlib

from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from leadintel.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    # Register blueprints
    from leadintel.routes.dashboard import bp as dashboard_bp
    from leadintel.routes.leads import bp as leads_bp

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(leads_bp)

    # Circuit breakers for the summary generation providers
    from leadintel.extensions import redis_client
    from leadintel.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    # Import models so Base.metadata knows about them. Tables are owned by
    # the dashboard application; nothing here creates or migrates them.
    for name in ('lead', 'channel_session', 'message', 'stage_change', 'activity', 'dashboard_user'):
        importlib.import_module(f'leadintel.models.{name}')

    return app
