# api/routes_popups.py - Promotional popups: targeting, view tracking and admin CRUD
import uuid
import logging
from flask import request, jsonify, current_app
from . import api_bp
from .utils import (
    permission_required, get_current_user, has_premium_access, error_response, get_request_data,
    read_uploaded_image, parse_bool, parse_int, parse_datetime, log_activity, ValidationError
)
from database import db, now_str
from storage import optimize_image, get_storage, InvalidImageError, StorageError
from config import POPUP_POSITIONS, POPUP_SIZES, POPUP_ACTIONS

logger = logging.getLogger(__name__)

TEXT_FIELDS = (
    'content', 'button_text', 'button_url', 'background_color', 'text_color',
    'button_color', 'button_text_color', 'animation'
)
BOOL_FIELDS = ('show_once', 'show_to_logged_users', 'show_to_guest_users', 'show_to_premium_users', 'is_active')


def _parse_popup(data, existing=None):
    """Validate a popup payload; ``existing`` makes every field optional"""
    popup = {}

    if 'title' in data or existing is None:
        title = str(data.get('title') or '').strip()
        if not title:
            raise ValidationError('Título é obrigatório')
        popup['title'] = title

    for field in TEXT_FIELDS:
        if field in data:
            value = data[field]
            popup[field] = str(value).strip() if value is not None else None

    for field in BOOL_FIELDS:
        if field in data:
            popup[field] = int(parse_bool(data[field]))

    if 'position' in data:
        if data['position'] not in POPUP_POSITIONS:
            raise ValidationError('Posição inválida')
        popup['position'] = data['position']
    if 'size' in data:
        if data['size'] not in POPUP_SIZES:
            raise ValidationError('Tamanho inválido')
        popup['size'] = data['size']

    if 'delay_seconds' in data:
        popup['delay_seconds'] = parse_int(data['delay_seconds'], 'delay_seconds', minimum=0)
    if 'frequency' in data:
        popup['frequency'] = parse_int(data['frequency'], 'frequency', minimum=1)

    for field in ('start_date', 'end_date'):
        if field in data or existing is None:
            value = parse_datetime(data.get(field))
            if not value:
                raise ValidationError(f'Campo obrigatório: {field}')
            popup[field] = value

    start = popup.get('start_date') or existing['start_date']
    end = popup.get('end_date') or existing['end_date']
    if start >= end:
        raise ValidationError('A data de início deve ser anterior à data de término')

    return popup


def _store_popup_image(image_data):
    result = optimize_image(
        image_data,
        quality=current_app.config['IMAGE_QUALITY'],
        max_width=current_app.config['POPUP_IMAGE_MAX_WIDTH']
    )
    return get_storage(current_app).upload_image(result, 'popups')


def _remove_image(url):
    if url and not get_storage(current_app).delete(url):
        logger.warning(f"⚠️ Could not remove popup image: {url}")


@api_bp.route('/popups/active')
def active_popup():
    """The popup to show this viewer right now, if any"""
    try:
        user = get_current_user()
        session_id = request.args.get('session_id') or str(uuid.uuid4())
        response = {'has_active_popup': False, 'popup': None, 'session_id': session_id}

        popup = db.get_active_popup_candidate(now_str(), user is not None, has_premium_access(user))
        if not popup:
            return jsonify(response)

        if user:
            views = db.count_popup_views(popup['id'], user_id=user['id'])
        else:
            views = db.count_popup_views(popup['id'], session_id=session_id)

        if popup['show_once'] and views > 0:
            return jsonify(response)
        if popup['frequency'] > 1 and views % popup['frequency'] != 0:
            return jsonify(response)

        response.update(has_active_popup=True, popup=popup)
        return jsonify(response)

    except Exception as e:
        logger.error(f"❌ Error selecting active popup: {e}")
        return error_response('Erro ao buscar popup ativo', 500)


@api_bp.route('/popups/view', methods=['POST'])
def record_popup_view():
    try:
        data = get_request_data()
        user = get_current_user()
        popup_id = parse_int(data.get('popup_id'), 'popup_id')
        session_id = data.get('session_id') or None
        action = data.get('action') or 'view'

        if not user and not session_id:
            return error_response('session_id é obrigatório para visitantes')
        if action not in POPUP_ACTIONS:
            return error_response('Ação inválida')
        if not db.get_popup(popup_id):
            return error_response('Popup não encontrado', 404)

        if not db.record_popup_view(popup_id, action, user['id'] if user else None, session_id):
            return error_response('Erro ao registrar visualização', 500)
        return jsonify({'success': True, 'message': 'Visualização registrada'})

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error recording popup view: {e}")
        return error_response('Erro ao registrar visualização', 500)


@api_bp.route('/popups')
@permission_required('manage_popups')
def list_popups():
    return jsonify(db.list_popups())


@api_bp.route('/popups/<int:popup_id>')
@permission_required('manage_popups')
def get_popup(popup_id):
    popup = db.get_popup(popup_id)
    if not popup:
        return error_response('Popup não encontrado', 404)
    return jsonify(popup)


@api_bp.route('/popups', methods=['POST'])
@permission_required('manage_popups')
def create_popup():
    image_url = None
    try:
        popup = _parse_popup(get_request_data())
        image_data = read_uploaded_image('image', required=False)
        if image_data:
            image_url = _store_popup_image(image_data)
            popup['image_url'] = image_url

        popup_id = db.create_popup(popup, created_by=get_current_user()['id'])
        if not popup_id:
            _remove_image(image_url)
            return error_response('Erro ao criar popup', 500)

        log_activity('create_popup', f"Criou popup: {popup['title']}", 'popup', popup_id, popup['title'])
        return jsonify(db.get_popup(popup_id)), 201

    except (ValidationError, InvalidImageError) as e:
        return error_response(str(e))
    except StorageError as e:
        logger.error(f"❌ Storage error creating popup: {e}")
        return error_response('Erro ao enviar a imagem', 500)
    except Exception as e:
        logger.error(f"❌ Error creating popup: {e}")
        _remove_image(image_url)
        return error_response('Erro ao criar popup', 500)


@api_bp.route('/popups/<int:popup_id>', methods=['PUT'])
@permission_required('manage_popups')
def update_popup(popup_id):
    image_url = None
    try:
        existing = db.get_popup(popup_id)
        if not existing:
            return error_response('Popup não encontrado', 404)

        data = get_request_data()
        popup = _parse_popup(data, existing)

        image_data = read_uploaded_image('image', required=False)
        if image_data:
            image_url = _store_popup_image(image_data)
            popup['image_url'] = image_url
        elif parse_bool(data.get('remove_image')):
            popup['image_url'] = None

        if not db.update_popup(popup_id, popup):
            _remove_image(image_url)
            return error_response('Erro ao atualizar popup', 500)

        if 'image_url' in popup and existing['image_url']:
            _remove_image(existing['image_url'])

        updated = db.get_popup(popup_id)
        log_activity('update_popup', f"Atualizou popup: {updated['title']}", 'popup', popup_id, updated['title'])
        return jsonify(updated)

    except (ValidationError, InvalidImageError) as e:
        return error_response(str(e))
    except StorageError as e:
        logger.error(f"❌ Storage error updating popup {popup_id}: {e}")
        return error_response('Erro ao enviar a imagem', 500)
    except Exception as e:
        logger.error(f"❌ Error updating popup {popup_id}: {e}")
        _remove_image(image_url)
        return error_response('Erro ao atualizar popup', 500)


@api_bp.route('/popups/<int:popup_id>', methods=['DELETE'])
@permission_required('manage_popups')
def delete_popup(popup_id):
    try:
        popup = db.get_popup(popup_id)
        if not popup:
            return error_response('Popup não encontrado', 404)

        if not db.delete_popup(popup_id):
            return error_response('Erro ao excluir popup', 500)

        _remove_image(popup['image_url'])
        log_activity('delete_popup', f"Excluiu popup: {popup['title']}", 'popup', popup_id, popup['title'])
        return jsonify({'success': True, 'message': 'Popup excluído com sucesso'})

    except Exception as e:
        logger.error(f"❌ Error deleting popup {popup_id}: {e}")
        return error_response('Erro ao excluir popup', 500)


@api_bp.route('/popups/<int:popup_id>/stats')
@permission_required('manage_popups')
def popup_stats(popup_id):
    if not db.get_popup(popup_id):
        return error_response('Popup não encontrado', 404)
    return jsonify(db.get_popup_stats(popup_id))
