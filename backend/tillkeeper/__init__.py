from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    # Overrides must land before the extensions bind their engine
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.sessions import till_bp

    app.register_blueprint(till_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
