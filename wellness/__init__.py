"""Flask application factory."""
from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFProtect
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # CSRF protection; the JSON API blueprints below authenticate with bearer
    # tokens and are exempt
    csrf = CSRFProtect(app)

    from flask_wtf.csrf import CSRFError

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Session expired. Reload the page.'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache for the public settings document
    from wellness.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from wellness.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Per-actor client state and collaborators
    from wellness.middleware import default_api_client_factory, load_actor
    from wellness.services.store import StoreRegistry
    from wellness.services.verification_service import FormatCheckVerifier

    app.extensions['payment_stores'] = StoreRegistry.from_config(app.config)
    app.extensions['credential_verifier'] = FormatCheckVerifier()
    app.extensions['api_client_factory'] = default_api_client_factory

    @app.before_request
    def before_request_handler():
        """Load the acting user's token for each request."""
        load_actor()

    # Error Handlers
    from wellness.exceptions import WellnessError

    @app.errorhandler(WellnessError)
    def handle_wellness_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"WellnessError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"WellnessError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        import traceback
        from werkzeug.exceptions import HTTPException
        if isinstance(error, HTTPException):
            return jsonify({'status': 'error', 'message': error.name}), error.code
        app.logger.error(f"Unhandled Exception on {request.path}: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from wellness.blueprints.payments import payments_bp
    from wellness.blueprints.analytics import analytics_bp
    from wellness.blueprints.metrics import metrics_bp

    csrf.exempt(payments_bp)
    csrf.exempt(analytics_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(metrics_bp)

    app.logger.info(f"API_BASE_URL={app.config.get('API_BASE_URL')}")
    app.logger.info(f"SUBSCRIPTION_CHECK_POLICY={app.config.get('SUBSCRIPTION_CHECK_POLICY')}")

    return app
