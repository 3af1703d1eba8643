import logging
import os

from flask import Flask, jsonify

from auth import auth_bp, login_manager
from config import Config
from dashboard import dashboard_bp
from errors import register_error_handlers
from logging_setup import setup_logging
from models import db
from notifications import notifications_bp
from scheduler import NotificationScheduler
from tasks import tasks_bp

logger = logging.getLogger(__name__)


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    db.init_app(app)
    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(notifications_bp)
    register_error_handlers(app)

    @app.route('/api/v1/health')
    def health():
        return jsonify(status='ok', message='Server is running')

    @app.route('/')
    def index():
        return jsonify(message='Welcome to the Task Manager API', version='1.0.0')

    return app


def main():
    setup_logging(Config.LOG_LEVEL, Config.LOG_DIR)
    app = create_app()
    with app.app_context():
        db.create_all()

    scheduler = NotificationScheduler(app)
    if app.config['SCHEDULER_ENABLED']:
        scheduler.start(run_now=True)

    port = int(os.getenv('PORT', 5000))
    logger.info("Server starting on port %s", port)
    try:
        # the reloader would fork a second process with its own scheduler
        app.run(host='0.0.0.0', port=port, use_reloader=False)
    finally:
        scheduler.shutdown()


if __name__ == '__main__':
    main()
