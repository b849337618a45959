# app.py

import logging
import os

from dotenv import load_dotenv
from flask import Flask, Response, jsonify

# Load environment variables from .env file first
load_dotenv()

# Module imports after load_dotenv() - E402 is intentional
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # noqa: E402

from backoffice.routes import init_routes  # noqa: E402
from backoffice.utils.logging_config import setup_logging  # noqa: E402
from config import get_config_class  # noqa: E402
from config.monitoring import MONITORING_BY_ENV, MonitoringConfig  # noqa: E402
from config.validation import validate_and_exit  # noqa: E402

logger = logging.getLogger(__name__)


def create_app(config_object=None, *, identity_provider=None, mailer=None):
    """Build the Flask app hosting the serverless adapters."""
    flask_env = os.environ.get("FLASK_ENV", "development")
    app = Flask(__name__)

    app.config.from_object(config_object or get_config_class(flask_env))
    app.config.from_object(MONITORING_BY_ENV.get(flask_env, MonitoringConfig))

    # Validate store credentials (only in production)
    if flask_env == "production":
        validate_and_exit(app.config)

    if identity_provider is not None:
        app.extensions["identity_provider"] = identity_provider
    if mailer is not None:
        app.extensions["mailer"] = mailer

    setup_logging(app)
    init_routes(app)

    if app.config.get("MONITORING_ENABLED"):

        @app.route(app.config.get("METRICS_ENDPOINT", "/metrics"))
        def metrics():
            return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"error": "Internal server error"}), 500

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
