# api/routes_arts.py - Art groups, variations, downloads and favorites
import logging
from flask import request, jsonify, current_app
from . import api_bp
from .utils import (
    login_required, get_current_user, has_permission, has_premium_access, error_response,
    parse_bool, parse_int, read_uploaded_image, pagination, log_activity, ValidationError
)
from database import db
from storage import optimize_image, get_storage, InvalidImageError, StorageError

logger = logging.getLogger(__name__)


def _can_manage_group(group, user):
    return bool(user) and (group['designer_id'] == user['id'] or has_permission('manage_all_arts', user))


def _visible_group(group_id):
    """The group when it exists and the caller may see it, else None"""
    group = db.get_art_group(group_id)
    if not group:
        return None
    if not group['is_visible'] and not has_permission('manage_all_arts'):
        return None
    return group


def _validate_references(category_id=None, format_id=None, file_type_id=None):
    if category_id is not None and not db.catalog_item_exists('categories', category_id):
        raise ValidationError('Categoria não encontrada')
    if format_id is not None and not db.catalog_item_exists('formats', format_id):
        raise ValidationError('Formato não encontrado')
    if file_type_id is not None and not db.catalog_item_exists('file_types', file_type_id):
        raise ValidationError('Tipo de arquivo não encontrado')


def _store_image(image_data, user_id):
    """Transcode to WebP and upload under the designer's folder"""
    result = optimize_image(image_data, quality=current_app.config['IMAGE_QUALITY'])
    url = get_storage(current_app).upload_image(result, f'designer/{user_id}')
    logger.info(f"✅ Image stored ({result.original_size} -> {result.optimized_size} bytes): {url}")
    return url, result


def _remove_images(urls):
    """Best-effort removal of stored images"""
    storage = get_storage(current_app)
    for url in urls:
        if url and not storage.delete(url):
            logger.warning(f"⚠️ Could not remove stored image: {url}")


@api_bp.route('/art-groups')
def list_art_groups():
    try:
        args = request.args
        page = parse_int(args.get('page'), 'page', minimum=1, required=False) or 1
        limit = parse_int(args.get('limit'), 'limit', minimum=1, required=False) \
            or current_app.config['ART_GROUPS_PAGE_SIZE']
        limit = min(limit, current_app.config['ART_GROUPS_MAX_PAGE_SIZE'])

        show_invisible = parse_bool(args.get('show_invisible')) and has_permission('manage_all_arts')

        groups, total = db.list_art_groups(
            page=page,
            limit=limit,
            search=args.get('search', '').strip() or None,
            category_id=parse_int(args.get('category_id'), 'category_id', required=False),
            format_id=parse_int(args.get('format_id'), 'format_id', required=False),
            designer_id=parse_int(args.get('designer_id'), 'designer_id', required=False),
            only_premium=parse_bool(args.get('only_premium')),
            show_invisible=show_invisible,
            order_by=args.get('order_by', 'created_at'),
            order=args.get('order', 'desc').lower()
        )
        return jsonify({'groups': groups, 'pagination': pagination(page, limit, total)})

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error listing art groups: {e}")
        return error_response('Erro ao buscar grupos de artes', 500)


@api_bp.route('/art-groups/<int:group_id>')
def get_art_group(group_id):
    try:
        group = _visible_group(group_id)
        if not group:
            return error_response('Grupo de arte não encontrado', 404)

        db.increment_view_count(group_id)
        group['view_count'] += 1
        group['variations'] = db.get_group_variations(group_id)
        return jsonify(group)

    except Exception as e:
        logger.error(f"❌ Error loading art group {group_id}: {e}")
        return error_response('Erro ao buscar grupo de arte', 500)


@api_bp.route('/art-groups', methods=['POST'])
@login_required
def create_art_group():
    """Create a group with its primary variation from a multipart upload"""
    user = get_current_user()
    if not has_permission('upload_arts', user):
        return error_response('Acesso negado. Permissão necessária: upload_arts', 403)

    image_url = None
    try:
        form = request.form
        title = form.get('title', '').strip()
        if not title:
            return error_response('Título é obrigatório')

        category_id = parse_int(form.get('category_id'), 'category_id')
        format_id = parse_int(form.get('format_id'), 'format_id')
        file_type_id = parse_int(form.get('file_type_id'), 'file_type_id')
        edit_url = form.get('edit_url', '').strip()
        is_premium = parse_bool(form.get('is_premium'))
        image_data = read_uploaded_image('image')

        _validate_references(category_id, format_id, file_type_id)

        image_url, image = _store_image(image_data, user['id'])

        result = db.create_art_group(
            title=title,
            category_id=category_id,
            designer_id=user['id'],
            format_id=format_id,
            file_type_id=file_type_id,
            image_url=image_url,
            edit_url=edit_url,
            is_premium=is_premium,
            width=image.width,
            height=image.height,
            aspect_ratio=image.aspect_ratio
        )
        if not result['success']:
            _remove_images([image_url])
            return error_response(result['message'], result['status'])

        group = result['group']
        log_activity('create_art_group', f'Criou grupo de arte: {title}', 'art_group', group['id'], title)
        return jsonify(group), 201

    except (ValidationError, InvalidImageError) as e:
        return error_response(str(e))
    except StorageError as e:
        logger.error(f"❌ Storage error creating art group: {e}")
        return error_response('Erro ao enviar a imagem', 500)
    except Exception as e:
        logger.error(f"❌ Error creating art group: {e}")
        _remove_images([image_url])
        return error_response('Erro ao criar grupo de arte', 500)


@api_bp.route('/art-groups/<int:group_id>/variations', methods=['POST'])
@login_required
def add_variation(group_id):
    user = get_current_user()
    image_url = None
    try:
        group = db.get_art_group(group_id)
        if not group:
            return error_response('Grupo de arte não encontrado', 404)
        if not _can_manage_group(group, user):
            return error_response('Você não tem permissão para editar este grupo', 403)

        form = request.form
        format_id = parse_int(form.get('format_id'), 'format_id')
        file_type_id = parse_int(form.get('file_type_id'), 'file_type_id')
        edit_url = form.get('edit_url', '').strip()
        is_primary = parse_bool(form.get('is_primary'))
        image_data = read_uploaded_image('image')

        _validate_references(format_id=format_id, file_type_id=file_type_id)
        if any(v['format_id'] == format_id for v in db.get_group_variations(group_id)):
            return error_response('Já existe uma variação com este formato para este grupo')

        image_url, image = _store_image(image_data, user['id'])

        result = db.add_variation(
            group_id, format_id, file_type_id, image_url, edit_url,
            is_primary=is_primary, width=image.width, height=image.height, aspect_ratio=image.aspect_ratio
        )
        if not result['success']:
            _remove_images([image_url])
            return error_response(result['message'], result['status'])

        variation = result['variation']
        log_activity('add_variation', f"Adicionou variação ao grupo {group['title']}",
                     'art_variation', variation['id'], group['title'])
        return jsonify(variation), 201

    except (ValidationError, InvalidImageError) as e:
        return error_response(str(e))
    except StorageError as e:
        logger.error(f"❌ Storage error adding variation: {e}")
        return error_response('Erro ao enviar a imagem', 500)
    except Exception as e:
        logger.error(f"❌ Error adding variation to group {group_id}: {e}")
        _remove_images([image_url])
        return error_response('Erro ao adicionar variação', 500)


@api_bp.route('/art-groups/<int:group_id>', methods=['PUT'])
@login_required
def update_art_group(group_id):
    user = get_current_user()
    try:
        group = db.get_art_group(group_id)
        if not group:
            return error_response('Grupo de arte não encontrado', 404)
        if not _can_manage_group(group, user):
            return error_response('Você não tem permissão para editar este grupo', 403)

        data = request.get_json(silent=True) or request.form.to_dict()
        fields = {}
        if 'title' in data:
            title = str(data['title']).strip()
            if not title:
                return error_response('Título não pode ser vazio')
            fields['title'] = title
        if 'category_id' in data:
            fields['category_id'] = parse_int(data['category_id'], 'category_id')
            _validate_references(category_id=fields['category_id'])
        if 'is_premium' in data:
            fields['is_premium'] = int(parse_bool(data['is_premium']))
        if 'is_visible' in data:
            fields['is_visible'] = int(parse_bool(data['is_visible']))

        updated = db.update_art_group(group_id, fields)
        if not updated:
            return error_response('Grupo de arte não encontrado', 404)

        log_activity('update_art_group', f"Atualizou grupo de arte: {updated['title']}",
                     'art_group', group_id, updated['title'], old_value=group['title'], new_value=updated['title'])
        return jsonify(updated)

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error updating art group {group_id}: {e}")
        return error_response('Erro ao atualizar grupo de arte', 500)


@api_bp.route('/art-groups/<int:group_id>/variations/<int:variation_id>/primary', methods=['PUT'])
@login_required
def set_primary_variation(group_id, variation_id):
    user = get_current_user()
    try:
        group = db.get_art_group(group_id)
        if not group:
            return error_response('Grupo de arte não encontrado', 404)
        if not _can_manage_group(group, user):
            return error_response('Você não tem permissão para editar este grupo', 403)

        result = db.set_primary_variation(group_id, variation_id)
        if not result['success']:
            return error_response(result['message'], result['status'])

        log_activity('set_primary_variation', f"Definiu variação primária do grupo {group['title']}",
                     'art_variation', variation_id, group['title'])
        return jsonify({'success': True, 'message': result['message']})

    except Exception as e:
        logger.error(f"❌ Error setting primary variation {variation_id}: {e}")
        return error_response('Erro ao definir variação como primária', 500)


@api_bp.route('/art-groups/<int:group_id>/variations/<int:variation_id>', methods=['DELETE'])
@login_required
def delete_variation(group_id, variation_id):
    user = get_current_user()
    try:
        group = db.get_art_group(group_id)
        if not group:
            return error_response('Grupo de arte não encontrado', 404)
        if not _can_manage_group(group, user):
            return error_response('Você não tem permissão para editar este grupo', 403)

        result = db.delete_variation(group_id, variation_id)
        if not result['success']:
            return error_response(result['message'], result['status'])

        _remove_images(result['image_urls'])
        log_activity('delete_variation', f"Excluiu variação do grupo {group['title']}",
                     'art_variation', variation_id, group['title'])
        return jsonify({'success': True, 'message': result['message']})

    except Exception as e:
        logger.error(f"❌ Error deleting variation {variation_id}: {e}")
        return error_response('Erro ao excluir variação', 500)


@api_bp.route('/art-groups/<int:group_id>', methods=['DELETE'])
@login_required
def delete_art_group(group_id):
    user = get_current_user()
    try:
        group = db.get_art_group(group_id)
        if not group:
            return error_response('Grupo de arte não encontrado', 404)
        if not _can_manage_group(group, user):
            return error_response('Você não tem permissão para excluir este grupo', 403)

        result = db.delete_art_group(group_id)
        if not result['success']:
            return error_response(result['message'], result['status'])

        _remove_images(result['image_urls'])
        log_activity('delete_art_group', f"Excluiu grupo de arte: {group['title']}",
                     'art_group', group_id, group['title'])
        return jsonify({'success': True, 'message': result['message']})

    except Exception as e:
        logger.error(f"❌ Error deleting art group {group_id}: {e}")
        return error_response('Erro ao excluir grupo de arte', 500)


@api_bp.route('/art-groups/<int:group_id>/related')
def related_art_groups(group_id):
    try:
        limit = parse_int(request.args.get('limit'), 'limit', minimum=1, maximum=50, required=False) \
            or current_app.config['RELATED_GROUPS_LIMIT']
        related = db.get_related_groups(group_id, limit)
        if related is None:
            return error_response('Grupo de arte não encontrado', 404)
        return jsonify(related)

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error loading related groups for {group_id}: {e}")
        return error_response('Erro ao buscar artes relacionadas', 500)


@api_bp.route('/art-groups/<int:group_id>/variations/<int:variation_id>/download', methods=['POST'])
@login_required
def download_variation(group_id, variation_id):
    user = get_current_user()
    try:
        group = _visible_group(group_id)
        variation = db.get_variation(group_id, variation_id) if group else None
        if not variation:
            return error_response('Arte não encontrada', 404)

        if group['is_premium'] and not has_premium_access(user):
            return error_response('Esta arte é exclusiva para assinantes premium', 403)

        if not db.record_download(user['id'], group_id, variation_id):
            return error_response('Erro ao registrar download', 500)

        return jsonify({'success': True, 'edit_url': variation['edit_url'], 'image_url': variation['image_url']})

    except Exception as e:
        logger.error(f"❌ Error downloading variation {variation_id}: {e}")
        return error_response('Erro ao registrar download', 500)


@api_bp.route('/art-groups/<int:group_id>/favorite', methods=['POST'])
@login_required
def toggle_favorite(group_id):
    user = get_current_user()
    try:
        if not _visible_group(group_id):
            return error_response('Grupo de arte não encontrado', 404)

        result = db.toggle_favorite(user['id'], group_id)
        if result is None:
            return error_response('Erro ao atualizar favorito', 500)
        return jsonify(result)

    except Exception as e:
        logger.error(f"❌ Error toggling favorite on {group_id}: {e}")
        return error_response('Erro ao atualizar favorito', 500)


@api_bp.route('/me/favorites')
@login_required
def my_favorites():
    return jsonify(db.get_user_favorites(get_current_user()['id']))


@api_bp.route('/me/downloads')
@login_required
def my_downloads():
    return jsonify(db.get_user_downloads(get_current_user()['id']))
