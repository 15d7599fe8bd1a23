# api/routes_webhooks.py - Hotmart webhook intake, webhook logs and product mappings
import hmac
import json
import logging
from flask import request, jsonify, current_app
from . import api_bp
from .subscriptions import extract_purchase, process_hotmart_event
from .utils import (
    permission_required, error_response, get_request_data, parse_bool, parse_int, pagination,
    log_activity, ValidationError
)
from database import db
from config import PLAN_DURATION_DAYS, SUBSCRIPTION_PLANS, WEBHOOK_STATUSES

logger = logging.getLogger(__name__)


def _hotmart_token(payload):
    return request.headers.get('X-Hotmart-Hottok') or payload.get('hottok') or ''


def _finish_log(log_id, outcome):
    error = outcome['message'] if outcome['status'] != 'processed' else None
    db.update_webhook_log(log_id, outcome['status'], outcome.get('user_id'), error)


@api_bp.route('/webhooks/hotmart', methods=['POST'])
def hotmart_webhook():
    """Receive a Hotmart event. Every call is logged, authorized or not"""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_response('Corpo JSON inválido')

    purchase = extract_purchase(payload)
    stored = {key: value for key, value in payload.items() if key != 'hottok'}
    log_id = db.create_webhook_log('hotmart', purchase['event'] or 'UNKNOWN', purchase['email'],
                                   purchase['transaction'], json.dumps(stored, ensure_ascii=False),
                                   request.remote_addr)

    secret = current_app.config.get('HOTMART_SECRET')
    if not secret:
        logger.error("❌ HOTMART_SECRET is not configured, rejecting webhook")
        db.update_webhook_log(log_id, 'error', error_message='HOTMART_SECRET não configurado')
        return error_response('Webhook não configurado', 503)
    if not hmac.compare_digest(str(_hotmart_token(payload)).encode(), secret.encode()):
        logger.warning(f"⚠️ Hotmart webhook with invalid token from {request.remote_addr}")
        db.update_webhook_log(log_id, 'error', error_message='Token inválido')
        return error_response('Token inválido', 401)

    try:
        outcome = process_hotmart_event(payload)
    except Exception as e:
        logger.error(f"❌ Error processing Hotmart webhook {log_id}: {e}")
        db.update_webhook_log(log_id, 'error', error_message=str(e))
        return error_response('Erro ao processar webhook', 500)

    _finish_log(log_id, outcome)
    return jsonify({
        'success': outcome['status'] != 'error',
        'status': outcome['status'],
        'message': outcome['message'],
        'log_id': log_id
    }), 400 if outcome['status'] == 'error' else 200


@api_bp.route('/admin/webhook-logs')
@permission_required('manage_subscriptions')
def list_webhook_logs():
    try:
        status = request.args.get('status') or None
        if status and status not in WEBHOOK_STATUSES:
            return error_response('Status inválido')
        page = parse_int(request.args.get('page'), 'page', minimum=1, required=False) or 1
        limit = current_app.config['WEBHOOK_LOGS_PAGE_SIZE']

        logs, total = db.list_webhook_logs(status=status, email=request.args.get('email') or None,
                                           limit=limit, offset=(page - 1) * limit)
        return jsonify({'logs': logs, 'pagination': pagination(page, limit, total)})

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error listing webhook logs: {e}")
        return error_response('Erro ao buscar logs de webhook', 500)


@api_bp.route('/admin/webhook-logs/<int:log_id>')
@permission_required('manage_subscriptions')
def get_webhook_log(log_id):
    log = db.get_webhook_log(log_id)
    if not log:
        return error_response('Log não encontrado', 404)
    log['payload_data'] = json.loads(log['payload_data']) if log['payload_data'] else None
    return jsonify(log)


@api_bp.route('/admin/webhook-logs/<int:log_id>/reprocess', methods=['POST'])
@permission_required('manage_subscriptions')
def reprocess_webhook_log(log_id):
    """Run a stored payload through the processor again"""
    log = db.get_webhook_log(log_id)
    if not log:
        return error_response('Log não encontrado', 404)
    if log['provider'] != 'hotmart' or not log['payload_data']:
        return error_response('Log sem payload para reprocessar')

    try:
        outcome = process_hotmart_event(json.loads(log['payload_data']))
    except Exception as e:
        logger.error(f"❌ Error reprocessing webhook {log_id}: {e}")
        db.update_webhook_log(log_id, 'error', error_message=str(e))
        return error_response('Erro ao reprocessar webhook', 500)

    _finish_log(log_id, outcome)
    log_activity('reprocess_webhook', f"Reprocessou webhook {log_id} ({log['event_type']})",
                 'webhook_log', log_id, log['email'], new_value=outcome['status'])
    return jsonify(dict(outcome, log_id=log_id))


def _mapping_fields(data, partial=False):
    fields = {}
    for key in ('product_id', 'offer_id', 'product_name'):
        if key in data:
            fields[key] = str(data[key] or '').strip()
    if not partial:
        fields.setdefault('offer_id', '')
        for key in ('product_id', 'product_name'):
            if not fields.get(key):
                raise ValidationError(f'Campo obrigatório: {key}')
    elif any(not fields[key] for key in ('product_id', 'product_name') if key in fields):
        raise ValidationError('product_id e product_name não podem ficar vazios')

    if 'plan_type' in data or not partial:
        if data.get('plan_type') not in SUBSCRIPTION_PLANS:
            raise ValidationError(f"Plano inválido, use: {', '.join(SUBSCRIPTION_PLANS)}")
        fields['plan_type'] = data['plan_type']
    if 'duration_days' in data:
        fields['duration_days'] = parse_int(data['duration_days'], 'duration_days', minimum=1, required=False)
    if 'is_lifetime' in data:
        fields['is_lifetime'] = int(parse_bool(data['is_lifetime']))

    if fields.get('plan_type') == 'vitalicio':
        fields['is_lifetime'] = 1
    if not partial and not fields.get('is_lifetime') and not fields.get('duration_days'):
        fields['duration_days'] = PLAN_DURATION_DAYS[fields['plan_type']]
    return fields


@api_bp.route('/admin/product-mappings')
@permission_required('manage_subscriptions')
def list_product_mappings():
    return jsonify(db.list_product_mappings())


@api_bp.route('/admin/product-mappings', methods=['POST'])
@permission_required('manage_subscriptions')
def create_product_mapping():
    try:
        fields = _mapping_fields(get_request_data())
        mapping_id = db.create_product_mapping(fields)
        if mapping_id is None:
            return error_response('Já existe um mapeamento para este produto e oferta', 409)

        log_activity('create_product_mapping', f"Mapeou o produto {fields['product_name']}", 'product_mapping',
                     mapping_id, fields['product_name'], new_value=fields['plan_type'])
        return jsonify(db.get_product_mapping(mapping_id)), 201

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error creating product mapping: {e}")
        return error_response('Erro ao criar mapeamento', 500)


@api_bp.route('/admin/product-mappings/<int:mapping_id>', methods=['PUT'])
@permission_required('manage_subscriptions')
def update_product_mapping(mapping_id):
    try:
        current = db.get_product_mapping(mapping_id)
        if not current:
            return error_response('Mapeamento não encontrado', 404)

        fields = _mapping_fields(get_request_data(), partial=True)
        if not fields:
            return error_response('Nenhum campo válido para atualizar')

        mapping = db.update_product_mapping(mapping_id, fields)
        if mapping is None:
            return error_response('Mapeamento não encontrado', 404)
        if mapping is False:
            return error_response('Já existe um mapeamento para este produto e oferta', 409)

        log_activity('update_product_mapping', f"Atualizou o mapeamento {mapping['product_name']}",
                     'product_mapping', mapping_id, mapping['product_name'],
                     old_value=current['plan_type'], new_value=mapping['plan_type'])
        return jsonify(mapping)

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error updating product mapping {mapping_id}: {e}")
        return error_response('Erro ao atualizar mapeamento', 500)


@api_bp.route('/admin/product-mappings/<int:mapping_id>', methods=['DELETE'])
@permission_required('manage_subscriptions')
def delete_product_mapping(mapping_id):
    mapping = db.get_product_mapping(mapping_id)
    if not mapping or not db.delete_product_mapping(mapping_id):
        return error_response('Mapeamento não encontrado', 404)

    log_activity('delete_product_mapping', f"Removeu o mapeamento {mapping['product_name']}",
                 'product_mapping', mapping_id, mapping['product_name'])
    return jsonify({'success': True, 'message': 'Mapeamento removido com sucesso'})
