import os
import logging

from flask import Flask

from ridesync.extensions import db, init_extensions
from ridesync.errors import register_error_handlers
from ridesync.logger import setup_logging
from ridesync.services.container import init_container
from ridesync.utils.scheduler import init_scheduler, shutdown_scheduler

log = logging.getLogger(__name__)


def create_app(test_config=None):
    """Application factory function."""
    app = Flask(__name__, instance_relative_config=True)

    # Load configuration
    from ridesync.config import get_config
    if test_config is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
        app.config.from_object(get_config(config_name))
    else:
        app.config.from_object(get_config('testing'))
        app.config.from_mapping(test_config)

    # Ensure the instance folder exists
    os.makedirs(app.instance_path, exist_ok=True)

    setup_logging(app)
    init_extensions(app)
    register_error_handlers(app)
    register_blueprints(app)

    from ridesync.cli import register_commands
    register_commands(app)

    container = init_container(app)

    with app.app_context():
        # Import models so their tables are known to the metadata
        from ridesync import models  # noqa: F401
        db.create_all()

        if not app.config.get('TESTING'):
            # A checkpoint left behind by a crash must be looked at before any ride starts
            if container.get('recording_service').recover():
                log.info("Interrupted ride restored from checkpoint")
            container.get('sync_service').refresh_state()

    init_scheduler(app, container)

    @app.teardown_appcontext
    def teardown_db(exception=None):
        """Clean up at the end of the request."""
        db.session.remove()

    return app


def register_blueprints(app):
    """Register all blueprints with the app."""
    from ridesync.web.api import api_bp
    app.register_blueprint(api_bp)


def shutdown_app(app):
    """Stop background threads and save the live ride."""
    from ridesync.services.container import get_container
    from ridesync.tasks import executor

    shutdown_scheduler(app)
    get_container(app).shutdown()
    executor.shutdown(wait=False)
