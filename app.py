import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

import click
from flask import Flask, g, jsonify, render_template, request

import auth_service
from app_models import db, Staff, User
from config import get_config, INSTANCE_DIR
from fee_data import refresh_overdue_fees
from grading import seed_default_grade_scale
from security import init_security
from staff_data import generate_staff_number

GRADE_COLORS = {
    'A+': 'success',
    'A': 'success',
    'B+': 'primary',
    'B': 'primary',
    'C': 'info',
    'D': 'warning',
    'F': 'danger',
}


def configure_logging(app):
    """Console logging always, a rotating log file when LOG_TO_FILE is set."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    formatter = logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s')

    app.logger.handlers.clear()
    app.logger.setLevel(level)
    app.logger.propagate = False

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(level)
    app.logger.addHandler(console)

    if app.config.get('LOG_TO_FILE'):
        os.makedirs(app.config['LOG_DIR'], exist_ok=True)
        file_handler = RotatingFileHandler(os.path.join(app.config['LOG_DIR'], 'application.log'),
                                           maxBytes=2 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)


def register_template_helpers(app):
    @app.template_filter('comma')
    def comma_filter(value):
        """Format number with comma separators (2 decimal places)"""
        try:
            return "{:,.2f}".format(float(value))
        except (ValueError, TypeError):
            return value

    @app.template_filter('comma_int')
    def comma_int_filter(value):
        """Format number with comma separators (no decimal places)"""
        try:
            return "{:,}".format(int(float(value)))
        except (ValueError, TypeError):
            return value

    @app.template_filter('grade_color')
    def grade_color_filter(grade):
        return GRADE_COLORS.get(grade, 'secondary')

    # Make datetime, the school name and the signed-in user available in templates
    @app.context_processor
    def inject_globals():
        user = g.get('current_user')
        return {
            'datetime': datetime,
            'school_name': app.config['SCHOOL_NAME'],
            'software_name': app.config['SOFTWARE_NAME'],
            'currency': app.config['CURRENCY'],
            'current_user': user,
            'can': lambda permission: auth_service.has_permission(user, permission),
        }


def register_error_handlers(app):
    def _error(status, template, message):
        if request.path.startswith('/api/'):
            return jsonify({'success': False, 'error': message}), status
        return render_template(template), status

    @app.errorhandler(403)
    def forbidden(error):
        return _error(403, 'errors/403.html', 'Forbidden')

    @app.errorhandler(404)
    def not_found(error):
        return _error(404, 'errors/404.html', 'Not found')

    @app.errorhandler(500)
    def server_error(error):
        db.session.rollback()
        app.logger.error("Unhandled error on %s: %s", request.path, error)
        return _error(500, 'errors/500.html', 'Internal server error')


def register_blueprints(app):
    from auth import auth_bp
    from health import health_bp
    from dashboard_views import dashboard_bp
    from student_views import students_bp
    from staff_views import staff_bp
    from academic_views import academics_bp
    from fee_views import fees_bp
    from attendance_views import attendance_bp
    from report_card_views import report_cards_bp
    from registration_views import registration_bp

    for blueprint in (auth_bp, health_bp, dashboard_bp, students_bp, staff_bp, academics_bp,
                      fees_bp, attendance_bp, report_cards_bp, registration_bp):
        app.register_blueprint(blueprint)


def create_default_admin(app):
    """Create the first administrator from DEFAULT_ADMIN_EMAIL / DEFAULT_ADMIN_PASSWORD."""
    email = app.config.get('DEFAULT_ADMIN_EMAIL')
    password = app.config.get('DEFAULT_ADMIN_PASSWORD')
    if User.query.first() is not None:
        return None
    if not email or not password:
        app.logger.warning("No users exist and DEFAULT_ADMIN_EMAIL/DEFAULT_ADMIN_PASSWORD are not set")
        return None

    staff = Staff(
        staff_number=generate_staff_number(),
        name='System',
        surname='Administrator',
        email=email.lower(),
        phone='-',
        position='Administrator',
        department='Administration',
        role='admin',
        permissions={name: True for name in auth_service.PERMISSIONS},
        access_level=5,
        is_active=True,
    )
    db.session.add(staff)
    db.session.flush()
    result = auth_service.register(email, password, 'admin', staff.id)
    if not result['success']:
        db.session.rollback()
        app.logger.error("Default admin not created: %s", result['error'])
        return None
    app.logger.info("Created default administrator %s", email)
    return result['data']


def initialize_database(app):
    with app.app_context():
        db.create_all()
        seed_default_grade_scale()
        create_default_admin(app)


def register_commands(app):
    @app.cli.command('init-db')
    def init_db_command():
        """Create tables, seed the grade scale and the default admin."""
        initialize_database(app)
        click.echo('Database initialised.')

    @app.cli.command('purge-sessions')
    def purge_sessions_command():
        """Delete expired login sessions."""
        click.echo(f'Removed {auth_service.purge_expired_sessions()} expired session(s).')

    @app.cli.command('refresh-fees')
    def refresh_fees_command():
        """Mark unpaid fees past their due date as overdue."""
        click.echo(f'Marked {refresh_overdue_fees()} fee(s) overdue.')


def create_app(config=None):
    app = Flask(
        __name__,
        template_folder=os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates'),
        static_folder=os.path.join(os.path.dirname(os.path.abspath(__file__)), 'static'),
        instance_path=INSTANCE_DIR,
    )
    config_class = get_config(config) if config is None or isinstance(config, str) else config
    app.config.from_object(config_class)
    os.makedirs(app.instance_path, exist_ok=True)

    configure_logging(app)
    config_class.init_app(app)

    db.init_app(app)

    init_security(app)

    register_template_helpers(app)
    register_error_handlers(app)
    register_blueprints(app)
    register_commands(app)

    app.logger.info("%s started (%s)", app.config['SOFTWARE_NAME'], config_class.__name__)
    return app
