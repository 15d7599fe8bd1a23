# api/routes_logs.py - Activity log routes
import logging
from datetime import datetime
from flask import request, jsonify, send_file, current_app
from . import api_bp
from .utils import (
    permission_required, error_response, parse_int, parse_date, pagination,
    generate_logs_excel, get_filters_description, ValidationError
)
from database import db

logger = logging.getLogger(__name__)


def _log_filters(args):
    return {
        'user_id': parse_int(args.get('user_id'), 'user_id', required=False),
        'action_type': args.get('action_type') or None,
        'start_date': parse_date(args.get('start_date')),
        'end_date': parse_date(args.get('end_date'))
    }


@api_bp.route('/admin/logs')
@permission_required('view_logs')
def activity_logs():
    """Activity logs with filters, 30-day stats and known action types"""
    try:
        filters = _log_filters(request.args)
        page = parse_int(request.args.get('page'), 'page', minimum=1, required=False) or 1
        limit = current_app.config['LOGS_PAGE_SIZE']

        logs = db.get_activity_logs(limit=limit, offset=(page - 1) * limit, **filters)
        total = db.count_activity_logs(**filters)

        return jsonify({
            'logs': logs,
            'pagination': pagination(page, limit, total),
            'stats': db.get_activity_stats(days=30),
            'action_types': db.get_action_types()
        })

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error loading activity logs: {e}")
        return error_response('Erro ao carregar logs', 500)


@api_bp.route('/admin/logs/export')
@permission_required('view_logs')
def export_activity_logs():
    try:
        logs = db.get_activity_logs(limit=None, **_log_filters(request.args))
        excel_file = generate_logs_excel(logs, get_filters_description(request.args))
        if excel_file is None:
            return error_response('Erro ao gerar arquivo Excel', 500)

        filename = f"logs_atividade_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
        return send_file(
            excel_file,
            mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
            as_attachment=True,
            download_name=filename
        )

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error exporting activity logs: {e}")
        return error_response('Erro ao exportar logs', 500)
