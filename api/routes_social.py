# api/routes_social.py - Social networks, growth records, analytics and goals
import logging
from datetime import date
from flask import request, jsonify
from . import api_bp
from .utils import (
    login_required, get_current_user, error_response, get_request_data,
    parse_bool, parse_int, require_date, ValidationError
)
from .analytics import growth_analytics, goal_current_value, goal_progress, period_start
from database import db
from config import SOCIAL_PLATFORMS, SOCIAL_GOAL_TYPES

logger = logging.getLogger(__name__)

GROWTH_INT_FIELDS = ('followers', 'average_likes', 'average_comments', 'posts_count', 'sales_from_platform')


def _parse_network(data, partial=False):
    network = {}
    if 'platform' in data or not partial:
        platform = str(data.get('platform') or '').strip().lower()
        if platform not in SOCIAL_PLATFORMS:
            raise ValidationError('Plataforma inválida')
        network['platform'] = platform
    if 'username' in data or not partial:
        username = str(data.get('username') or '').strip().lstrip('@')
        if not username:
            raise ValidationError('Nome de usuário é obrigatório')
        network['username'] = username
    if 'profile_url' in data:
        network['profile_url'] = data['profile_url'] or None
    if 'is_active' in data:
        network['is_active'] = int(parse_bool(data['is_active']))
    return network


def _parse_growth(data):
    record = {}
    for field in GROWTH_INT_FIELDS:
        if field in data:
            record[field] = parse_int(data[field], field, minimum=0)
    if 'notes' in data:
        record['notes'] = data['notes'] or None
    return record


def _goal_with_progress(user_id, goal):
    records = db.list_growth_data(user_id, goal['network_id'])
    return goal_progress(goal, goal_current_value(goal['goal_type'], records))


# Networks
@api_bp.route('/social-growth/networks')
@login_required
def list_networks():
    return jsonify(db.list_networks(get_current_user()['id']))


@api_bp.route('/social-growth/networks', methods=['POST'])
@login_required
def create_network():
    user = get_current_user()
    try:
        network = _parse_network(get_request_data())
        network_id = db.create_network(
            user['id'], network['platform'], network['username'],
            network.get('profile_url'), network.get('is_active', 1)
        )
        if not network_id:
            return error_response('Esta rede social já está cadastrada')
        return jsonify(db.get_network(user['id'], network_id)), 201

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error creating social network: {e}")
        return error_response('Erro ao cadastrar rede social', 500)


@api_bp.route('/social-growth/networks/<int:network_id>', methods=['PUT'])
@login_required
def update_network(network_id):
    user = get_current_user()
    try:
        network = _parse_network(get_request_data(), partial=True)
        updated = db.update_network(user['id'], network_id, network)
        if updated is None:
            return error_response('Rede social não encontrada', 404)
        if updated is False:
            return error_response('Esta rede social já está cadastrada')
        return jsonify(updated)

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error updating social network {network_id}: {e}")
        return error_response('Erro ao atualizar rede social', 500)


@api_bp.route('/social-growth/networks/<int:network_id>', methods=['DELETE'])
@login_required
def delete_network(network_id):
    if not db.delete_network(get_current_user()['id'], network_id):
        return error_response('Rede social não encontrada', 404)
    return jsonify({'success': True, 'message': 'Rede social excluída com sucesso'})


# Growth data
@api_bp.route('/social-growth/data', methods=['POST'])
@login_required
def save_growth_data():
    """Insert or update the record of a network for a given day"""
    user = get_current_user()
    try:
        data = get_request_data()
        network_id = parse_int(data.get('network_id'), 'network_id')
        if not db.get_network(user['id'], network_id):
            return error_response('Rede social não encontrada', 404)

        record_date = require_date(data.get('record_date'), 'record_date')
        if 'followers' not in data:
            return error_response('Campo obrigatório: followers')

        record, created = db.upsert_growth_data(user['id'], network_id, record_date, _parse_growth(data))
        return jsonify(record), 201 if created else 200

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error saving growth data: {e}")
        return error_response('Erro ao salvar dados de crescimento', 500)


@api_bp.route('/social-growth/data/<int:record_id>', methods=['PUT'])
@login_required
def update_growth_data(record_id):
    user = get_current_user()
    try:
        data = get_request_data()
        record = _parse_growth(data)
        if 'record_date' in data:
            record['record_date'] = require_date(data['record_date'], 'record_date')

        updated = db.update_growth_data(user['id'], record_id, record)
        if updated is None:
            return error_response('Registro não encontrado', 404)
        if updated is False:
            return error_response('Já existe um registro para esta data')
        return jsonify(updated)

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error updating growth record {record_id}: {e}")
        return error_response('Erro ao atualizar registro', 500)


@api_bp.route('/social-growth/data/<int:record_id>', methods=['DELETE'])
@login_required
def delete_growth_data(record_id):
    if not db.delete_growth_data(get_current_user()['id'], record_id):
        return error_response('Registro não encontrado', 404)
    return jsonify({'success': True, 'message': 'Registro excluído com sucesso'})


@api_bp.route('/social-growth/data/<int:network_id>')
@login_required
def network_growth_data(network_id):
    user = get_current_user()
    if not db.get_network(user['id'], network_id):
        return error_response('Rede social não encontrada', 404)
    return jsonify(db.list_growth_data(user['id'], network_id))


@api_bp.route('/social-growth/history')
@login_required
def growth_history():
    return jsonify(db.list_growth_data(get_current_user()['id']))


@api_bp.route('/social-growth/analytics')
@login_required
def social_analytics():
    user = get_current_user()
    try:
        period = parse_int(request.args.get('period'), 'period', minimum=1, maximum=60, required=False) or 6
        records = db.list_growth_data(user['id'], since=period_start(period))
        networks = db.list_networks(user['id'])
        active_goals = db.count_active_goals(user['id'], date.today().isoformat())

        analytics = growth_analytics(networks, records, active_goals)
        analytics['period'] = period
        return jsonify(analytics)

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error computing social analytics: {e}")
        return error_response('Erro ao calcular análises', 500)


# Goals
@api_bp.route('/social-growth/goals')
@login_required
def list_goals():
    user = get_current_user()
    try:
        goals = [_goal_with_progress(user['id'], goal) for goal in db.list_goals(user['id'])]
        return jsonify(goals)
    except Exception as e:
        logger.error(f"❌ Error listing goals: {e}")
        return error_response('Erro ao buscar metas', 500)


@api_bp.route('/social-growth/goals', methods=['POST'])
@login_required
def create_goal():
    user = get_current_user()
    try:
        data = get_request_data()
        network_id = parse_int(data.get('network_id'), 'network_id')
        if not db.get_network(user['id'], network_id):
            return error_response('Rede social não encontrada', 404)

        goal_type = data.get('goal_type')
        if goal_type not in SOCIAL_GOAL_TYPES:
            return error_response('Tipo de meta inválido')
        target_value = parse_int(data.get('target_value'), 'target_value', minimum=1)
        deadline = require_date(data.get('deadline'), 'deadline')

        if db.active_goal_exists(user['id'], network_id, goal_type):
            return error_response('Já existe uma meta ativa deste tipo para esta rede social')

        goal_id = db.create_goal(user['id'], network_id, goal_type, target_value, deadline, data.get('description'))
        if not goal_id:
            return error_response('Erro ao criar meta', 500)
        return jsonify(_goal_with_progress(user['id'], db.get_goal(user['id'], goal_id))), 201

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error creating goal: {e}")
        return error_response('Erro ao criar meta', 500)


@api_bp.route('/social-growth/goals/<int:goal_id>', methods=['PUT'])
@login_required
def update_goal(goal_id):
    user = get_current_user()
    try:
        existing = db.get_goal(user['id'], goal_id)
        if not existing:
            return error_response('Meta não encontrada', 404)

        data = get_request_data()
        fields = {}
        if 'goal_type' in data:
            if data['goal_type'] not in SOCIAL_GOAL_TYPES:
                return error_response('Tipo de meta inválido')
            fields['goal_type'] = data['goal_type']
        if 'target_value' in data:
            fields['target_value'] = parse_int(data['target_value'], 'target_value', minimum=1)
        if 'deadline' in data:
            fields['deadline'] = require_date(data['deadline'], 'deadline')
        if 'description' in data:
            fields['description'] = data['description']
        if 'is_active' in data:
            fields['is_active'] = int(parse_bool(data['is_active']))

        goal_type = fields.get('goal_type', existing['goal_type'])
        is_active = fields.get('is_active', existing['is_active'])
        if is_active and db.active_goal_exists(user['id'], existing['network_id'], goal_type, exclude_id=goal_id):
            return error_response('Já existe uma meta ativa deste tipo para esta rede social')

        updated = db.update_goal(user['id'], goal_id, fields)
        return jsonify(_goal_with_progress(user['id'], updated))

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error updating goal {goal_id}: {e}")
        return error_response('Erro ao atualizar meta', 500)


@api_bp.route('/social-growth/goals/<int:goal_id>', methods=['DELETE'])
@login_required
def delete_goal(goal_id):
    if not db.delete_goal(get_current_user()['id'], goal_id):
        return error_response('Meta não encontrada', 404)
    return jsonify({'success': True, 'message': 'Meta excluída com sucesso'})
