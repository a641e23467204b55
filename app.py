import os
import sys
import logging

from flask import Flask, jsonify
from flask_migrate import Migrate

from models import db
from config import Config
from routes.api_client import init_api_client
from routes.utils import cache

logger = logging.getLogger(__name__)


def create_app(config_object=Config):
    if getattr(sys, 'frozen', False):
        # tallyfront.ini and the SQLite audit log sit next to the executable
        try:
            os.chdir(str(Config.BASE_DIR))
        except OSError:
            logger.exception("Failed to chdir to BASE_DIR in frozen mode")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    cache.init_app(app)
    init_api_client(app)

    from routes.documents import documents_bp
    from routes.ar_ap import ar_ap_bp, refunds_bp
    app.register_blueprint(documents_bp)
    app.register_blueprint(ar_ap_bp)
    app.register_blueprint(refunds_bp)

    # Local audit log
    db.init_app(app)
    Migrate(app, db)
    with app.app_context():
        db.create_all()

    @app.route('/healthz')
    def healthz():
        return jsonify({'status': 'ok', 'api_base_url': app.config.get('API_BASE_URL')})

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def server_error(e):
        logger.exception("Unhandled error: %s", e)
        return jsonify({'error': 'Internal server error'}), 500

    return app
