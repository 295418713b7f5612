import logging
import os
import sys

from flask import Flask, jsonify
from prometheus_client import CONTENT_TYPE_LATEST
from .extensions import db, migrate
from .config import DevConfig, ProdConfig


def _configure_logging(app):
    """Set up structured logging for production."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    ))
    level = logging.INFO if not app.debug else logging.DEBUG
    # app.logger is the "reado" logger, so module loggers propagate to it
    app.logger.setLevel(level)
    app.logger.addHandler(handler)
    logging.getLogger('gunicorn.error').setLevel(level)


def _ensure_schema(app):
    """Create missing tables. Idempotent; migrations handle column changes."""
    with app.app_context():
        try:
            db.create_all()
            app.logger.info('Schema check completed')
        except Exception as e:
            app.logger.warning('Schema check failed: %s', e)


def create_app(config=None):
    app = Flask(__name__, static_folder=None)

    if config is None:
        config = ProdConfig if os.environ.get('FLASK_ENV') == 'production' else DevConfig
    app.config.from_object(config)

    _configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so they are registered with SQLAlchemy (needed for migrations)
    from . import models  # noqa: F401

    _ensure_schema(app)

    from flask_cors import CORS
    origins = [o.strip() for o in app.config['CORS_ORIGINS'].split(',') if o.strip()]
    CORS(app, origins=origins, supports_credentials=True)

    from .services.moderation import ModerationPipeline
    ModerationPipeline(app)

    from .api import register_blueprints
    register_blueprints(app)

    @app.route('/')
    def index():
        return 'API is running', 200, {'Content-Type': 'text/plain; charset=utf-8'}

    @app.route('/health')
    def health_check():
        try:
            db.session.execute(db.text('SELECT 1'))
            return jsonify(status='ok', db='connected'), 200
        except Exception:
            app.logger.exception('Health check failed')
            return jsonify(status='degraded', db='not connected'), 503

    @app.route('/metrics')
    def metrics():
        body = app.extensions['request_metrics'].render()
        return body, 200, {'Content-Type': CONTENT_TYPE_LATEST}

    # Wrap last so every route above goes through the guards
    from .middleware import install_request_pipeline
    install_request_pipeline(app)

    return app
