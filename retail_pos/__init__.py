"""
Flask Application Factory
Initializes and configures the Flask application
"""

import os
from flask import Flask, jsonify
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFProtect, CSRFError
from config import config
from retail_pos.models import db, User
from retail_pos.utils.errors import POSError

# Initialize extensions
login_manager = LoginManager()
migrate = Migrate()
csrf = CSRFProtect()


def create_app(config_name='default'):
    """
    Application factory pattern
    Creates and configures Flask application
    """
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])

    # Validate secret key in production
    if config_name == 'production':
        if not app.config.get('SECRET_KEY') or app.config['SECRET_KEY'] == 'dev-secret-key-change-in-production':
            raise ValueError("Production requires a secure SECRET_KEY. Set it via environment variable.")
        if len(app.config['SECRET_KEY']) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters for production.")

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        """Load user by ID for Flask-Login"""
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'error': 'Authentication required'}), 401

    if not app.config.get('TESTING'):
        os.makedirs(app.config['LOG_FOLDER'], exist_ok=True)

    # Register blueprints
    from retail_pos.routes.auth import bp as auth_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')

    from retail_pos.routes.pos import bp as pos_bp
    app.register_blueprint(pos_bp, url_prefix='/pos')

    from retail_pos.routes.promotions import bp as promotions_bp
    app.register_blueprint(promotions_bp, url_prefix='/promotions')

    from retail_pos.routes.cashiers import bp as cashiers_bp
    app.register_blueprint(cashiers_bp, url_prefix='/cashiers')

    from retail_pos.routes.reports import bp as reports_bp
    app.register_blueprint(reports_bp, url_prefix='/reports')

    # Error handlers
    @app.errorhandler(POSError)
    def handle_pos_error(error):
        db.session.rollback()
        app.logger.info(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f"Internal error: {getattr(error, 'original_exception', error)}")
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error):
        return jsonify({
            'success': False,
            'error': 'CSRF token missing or invalid',
            'message': 'Fetch a token from /auth/csrf-token and send it in the X-CSRFToken header'
        }), 400

    @app.route('/')
    def index():
        return jsonify({
            'name': app.config['BUSINESS_NAME'],
            'currency': app.config['CURRENCY'],
        })

    return app
