from datetime import datetime

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app_models import db

health_bp = Blueprint('health', __name__)


@health_bp.route('/health')
def health_check():
    """Health check endpoint for the load balancer"""
    database = 'ok'
    try:
        db.session.execute(text('SELECT 1'))
    except SQLAlchemyError:
        current_app.logger.exception("Health check database probe failed")
        database = 'unavailable'
    return jsonify({
        'status': 'ok' if database == 'ok' else 'degraded',
        'service': current_app.config['SOFTWARE_NAME'],
        'database': database,
        'timestamp': datetime.utcnow().isoformat(),
    }), 200 if database == 'ok' else 503
