# api/routes_users.py - Admin user management
import logging
from datetime import datetime
from flask import request, jsonify, send_file, current_app
from . import api_bp
from .utils import (
    permission_required, get_current_user, error_response, get_request_data, parse_bool,
    parse_int, parse_datetime, pagination, public_user, log_activity, export_users, ValidationError
)
from database import db
from config import ACCESS_LEVELS, PASSWORD_MIN_LENGTH, PRIVILEGED_LEVELS, get_all_levels

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('nivelacesso', 'is_active', 'tipoplano', 'acessovitalicio', 'dataexpiracao', 'observacaoadmin')


def _may_manage(target, new_level=None):
    """Only admins touch privileged accounts or hand out privileged levels"""
    if get_current_user()['nivelacesso'] == 'admin':
        return True
    return target['nivelacesso'] not in PRIVILEGED_LEVELS and new_level not in PRIVILEGED_LEVELS


def _user_filters(args):
    return {
        'search': args.get('search', '').strip() or None,
        'status': args.get('status') if args.get('status') in ('active', 'inactive') else None,
        'nivelacesso': args.get('nivelacesso') or None
    }


@api_bp.route('/admin/users')
@permission_required('manage_users')
def list_users():
    try:
        page = parse_int(request.args.get('page'), 'page', minimum=1, required=False) or 1
        limit = parse_int(request.args.get('limit'), 'limit', minimum=1, maximum=100, required=False) \
            or current_app.config['USERS_PAGE_SIZE']

        users, total = db.list_users(limit=limit, offset=(page - 1) * limit, **_user_filters(request.args))
        return jsonify({
            'users': [public_user(user) for user in users],
            'pagination': pagination(page, limit, total),
            'stats': db.get_user_stats()
        })

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error listing users: {e}")
        return error_response('Erro ao buscar usuários', 500)


@api_bp.route('/admin/users/levels')
@permission_required('manage_users')
def list_access_levels():
    return jsonify(get_all_levels())


@api_bp.route('/admin/users/export')
@permission_required('manage_users')
def export_users_file():
    """Export the filtered user list as CSV or Excel"""
    try:
        fmt = request.args.get('format', 'csv').lower()
        if fmt not in ('csv', 'xlsx'):
            return error_response('Formato inválido, use csv ou xlsx')

        users, _ = db.list_users(limit=None, **_user_filters(request.args))
        output = export_users(users, fmt)

        filename = f"usuarios_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{fmt}"
        mimetype = (
            'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet' if fmt == 'xlsx'
            else 'text/csv'
        )
        log_activity('export_users', f'Exportou {len(users)} usuários ({fmt})')
        return send_file(output, mimetype=mimetype, as_attachment=True, download_name=filename)

    except Exception as e:
        logger.error(f"❌ Error exporting users: {e}")
        return error_response('Erro ao exportar usuários', 500)


@api_bp.route('/admin/users/<int:user_id>', methods=['PATCH'])
@permission_required('manage_users')
def update_user(user_id):
    try:
        user = db.get_user_by_id(user_id)
        if not user:
            return error_response('Usuário não encontrado', 404)

        data = get_request_data()
        fields = {key: data[key] for key in EDITABLE_FIELDS if key in data}
        if not fields:
            return error_response('Nenhum campo válido para atualizar')

        if 'nivelacesso' in fields and fields['nivelacesso'] not in ACCESS_LEVELS:
            return error_response('Nível de acesso inválido')
        if not _may_manage(user, fields.get('nivelacesso')):
            return error_response('Apenas administradores podem alterar esta conta ou conceder este nível', 403)
        for key in ('is_active', 'acessovitalicio'):
            if key in fields:
                fields[key] = int(parse_bool(fields[key]))
        if 'dataexpiracao' in fields:
            fields['dataexpiracao'] = parse_datetime(fields['dataexpiracao'])

        if not db.update_user_fields(user_id, fields):
            return error_response('Erro ao atualizar usuário', 500)

        changed = {key: user.get(key) for key in fields}
        log_activity('update_user', f"Atualizou usuário {user['username']}", 'user', user_id, user['username'],
                     old_value=str(changed), new_value=str(fields))
        return jsonify(public_user(db.get_user_by_id(user_id)))

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error updating user {user_id}: {e}")
        return error_response('Erro ao atualizar usuário', 500)


@api_bp.route('/admin/users/<int:user_id>', methods=['DELETE'])
@permission_required('manage_users')
def delete_user(user_id):
    try:
        if user_id == get_current_user()['id']:
            return error_response('Você não pode excluir sua própria conta')

        user = db.get_user_by_id(user_id)
        if not user:
            return error_response('Usuário não encontrado', 404)
        if not _may_manage(user):
            return error_response('Apenas administradores podem excluir esta conta', 403)
        if not db.delete_user(user_id):
            return error_response('Usuário não encontrado', 404)

        log_activity('delete_user', f"Excluiu usuário {user['username']}", 'user', user_id, user['username'])
        return jsonify({'success': True, 'message': 'Usuário excluído com sucesso'})

    except Exception as e:
        logger.error(f"❌ Error deleting user {user_id}: {e}")
        return error_response('Erro ao excluir usuário', 500)


@api_bp.route('/admin/users/<int:user_id>/password', methods=['POST'])
@permission_required('manage_users')
def reset_user_password(user_id):
    try:
        new_password = str(get_request_data().get('new_password', ''))
        if len(new_password) < PASSWORD_MIN_LENGTH:
            return error_response(f'A senha deve ter pelo menos {PASSWORD_MIN_LENGTH} caracteres')

        user = db.get_user_by_id(user_id)
        if not user:
            return error_response('Usuário não encontrado', 404)
        if not _may_manage(user):
            return error_response('Apenas administradores podem alterar esta senha', 403)

        if not db.change_user_password(user_id, new_password):
            return error_response('Erro ao alterar a senha', 500)

        log_activity('reset_password', f"Redefiniu a senha de {user['username']}", 'user', user_id, user['username'])
        return jsonify({'success': True, 'message': 'Senha alterada com sucesso'})

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error resetting password for {user_id}: {e}")
        return error_response('Erro ao alterar a senha', 500)
