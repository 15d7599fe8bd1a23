# api/routes_catalog.py - Categories, formats and file types
import logging
from flask import jsonify
from . import api_bp
from .utils import (
    permission_required, error_response, get_request_data, slugify, log_activity, ValidationError
)
from database import db

logger = logging.getLogger(__name__)

CATALOG_KINDS = {
    'categories': ('categories', 'categoria'),
    'formats': ('formats', 'formato'),
    'file-types': ('file_types', 'tipo de arquivo'),
}
KIND_RULE = '<any(categories, formats, "file-types"):kind>'


def _parse_item(data):
    name = str(data.get('name', '')).strip()
    if not name:
        raise ValidationError('Nome é obrigatório')
    slug = slugify(data.get('slug') or name)
    if not slug:
        raise ValidationError('Slug inválido')
    return name, slug


@api_bp.route(f'/{KIND_RULE}')
def list_catalog(kind):
    table, _ = CATALOG_KINDS[kind]
    return jsonify(db.list_catalog(table))


@api_bp.route(f'/{KIND_RULE}/<int:item_id>')
def get_catalog_item(kind, item_id):
    table, label = CATALOG_KINDS[kind]
    item = db.get_catalog_item(table, item_id)
    if not item:
        return error_response(f'{label.capitalize()} não encontrado(a)', 404)
    return jsonify(item)


@api_bp.route(f'/{KIND_RULE}', methods=['POST'])
@permission_required('manage_catalog')
def create_catalog_item(kind):
    table, label = CATALOG_KINDS[kind]
    try:
        name, slug = _parse_item(get_request_data())
        item_id = db.create_catalog_item(table, name, slug)
        if not item_id:
            return error_response(f'Já existe um(a) {label} com o slug "{slug}"')

        log_activity('create_catalog', f'Criou {label}: {name}', table, item_id, name)
        return jsonify(db.get_catalog_item(table, item_id)), 201

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error creating {table} item: {e}")
        return error_response(f'Erro ao criar {label}', 500)


@api_bp.route(f'/{KIND_RULE}/<int:item_id>', methods=['PUT'])
@permission_required('manage_catalog')
def update_catalog_item(kind, item_id):
    table, label = CATALOG_KINDS[kind]
    try:
        old = db.get_catalog_item(table, item_id)
        if not old:
            return error_response(f'{label.capitalize()} não encontrado(a)', 404)

        name, slug = _parse_item(get_request_data())
        result = db.update_catalog_item(table, item_id, name, slug)
        if not result['success']:
            return error_response(result['message'], result['status'])

        log_activity('update_catalog', f'Atualizou {label}: {name}', table, item_id, name,
                     old_value=old['name'], new_value=name)
        return jsonify(db.get_catalog_item(table, item_id))

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error updating {table} item {item_id}: {e}")
        return error_response(f'Erro ao atualizar {label}', 500)


@api_bp.route(f'/{KIND_RULE}/<int:item_id>', methods=['DELETE'])
@permission_required('manage_catalog')
def delete_catalog_item(kind, item_id):
    table, label = CATALOG_KINDS[kind]
    try:
        item = db.get_catalog_item(table, item_id)
        result = db.delete_catalog_item(table, item_id)
        if not result['success']:
            return error_response(result['message'], result['status'])

        log_activity('delete_catalog', f'Excluiu {label}: {item["name"]}', table, item_id, item['name'])
        return jsonify({'success': True, 'message': result['message']})

    except Exception as e:
        logger.error(f"❌ Error deleting {table} item {item_id}: {e}")
        return error_response(f'Erro ao excluir {label}', 500)
