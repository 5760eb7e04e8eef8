# phm_app_pkg/__init__.py

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import NotFound

# Load environment variables from .env file.
load_dotenv()

# Import configurations
from .config import get_config

# Initialize extensions at the top level, but without an app context.
# This is a standard pattern to avoid circular imports.
db = SQLAlchemy()
migrate = Migrate()


def create_app(config_name='development'):
    """
    Application factory function.
    """
    app = Flask(__name__)

    config_class = get_config(config_name)
    if hasattr(config_class, 'validate'):
        config_class.validate()
    app.config.from_object(config_class)

    # Initialize extensions with the app context
    db.init_app(app)
    migrate.init_app(app, db)

    # --- Import and register Blueprints INSIDE create_app ---
    # This also prevents circular imports.
    from .auth.routes import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')

    from .public_health.routes import public_health_bp
    app.register_blueprint(public_health_bp, url_prefix='/api')

    from .advanced_filters.routes import user_filters_bp
    app.register_blueprint(user_filters_bp, url_prefix='/api')

    # Register audit listeners
    from .audit.listeners import register_audit_listeners
    register_audit_listeners(app)

    @app.route('/health')
    def health_check():
        return "PHM App is healthy!", 200

    # Centralized error handling
    from .errors import AdvancedFilterError, ValidationError

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        # Authorization failures share this body so jurisdiction ids cannot be probed.
        app.logger.warning(f"Rejected request ({type(e).__name__} on '{e.param}'): {e.message}")
        return jsonify({"error": "Invalid request parameters."}), 400

    @app.errorhandler(AdvancedFilterError)
    def handle_advanced_filter_error(e):
        app.logger.warning(f"[AdvancedFilter] Invalid statement for '{e.field}': {e.message}")
        return jsonify(e.to_dict()), 422

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        app.logger.error(f"Database Error: {e}")
        db.session.rollback()
        return jsonify({"error": "A database error occurred."}), 500

    @app.errorhandler(NotFound)
    def handle_not_found_error(e):
        app.logger.warning(f"Not Found Error: {e}")
        return jsonify({"error": "The requested resource was not found."}), 404

    @app.errorhandler(Exception)
    def handle_generic_error(e):
        app.logger.error(f"An unexpected error occurred: {e}", exc_info=True)
        return jsonify({"error": "An unexpected server error occurred."}), 500

    return app
