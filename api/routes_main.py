# api/routes_main.py - Health check and admin dashboard
import logging
from flask import jsonify, current_app
from . import api_bp
from .utils import permission_required, error_response
from database import db
from storage import get_storage

logger = logging.getLogger(__name__)


# Health check route
@api_bp.route('/health')
def health_check():
    database_ok = db.ping()
    try:
        storage_name = get_storage(current_app).name
    except RuntimeError as e:
        logger.error(f"❌ Storage misconfigured: {e}")
        storage_name = None

    healthy = database_ok and storage_name is not None
    return jsonify({
        'status': 'healthy' if healthy else 'unhealthy',
        'database': 'ok' if database_ok else 'unreachable',
        'storage': storage_name
    }), 200 if healthy else 503


@api_bp.route('/admin/dashboard')
@permission_required('view_dashboard')
def admin_dashboard():
    try:
        stats = db.get_dashboard_stats()
        stats['premium_users'] = db.get_user_stats()['premium_users']
        return jsonify(stats)
    except Exception as e:
        logger.error(f"❌ Error loading dashboard stats: {e}")
        return error_response('Erro ao carregar o painel', 500)
