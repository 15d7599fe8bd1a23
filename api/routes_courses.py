# api/routes_courses.py - Video course modules, lessons, progress and ratings
import re
import logging
import requests
from flask import request, jsonify, current_app
from . import api_bp
from .utils import (
    login_required, permission_required, get_current_user, has_permission, has_premium_access,
    error_response, get_request_data, parse_bool, parse_int, log_activity, ValidationError
)
from database import db
from config import COURSE_LEVELS, VIDEO_PROVIDERS

logger = logging.getLogger(__name__)

YOUTUBE_ID_RE = re.compile(
    r'(?:youtube\.com/(?:watch\?(?:.*&)?v=|embed/|shorts/|v/)|youtu\.be/)([A-Za-z0-9_-]{11})'
)


def youtube_video_id(url):
    match = YOUTUBE_ID_RE.search(url or '')
    return match.group(1) if match else None


def fetch_vimeo_thumbnail(video_url):
    """Thumbnail from Vimeo's oEmbed endpoint, None when unavailable"""
    try:
        response = requests.get(
            current_app.config['VIMEO_OEMBED_URL'],
            params={'url': video_url},
            timeout=current_app.config['HTTP_TIMEOUT_SECONDS']
        )
        response.raise_for_status()
        return response.json().get('thumbnail_url')
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"⚠️ Vimeo thumbnail lookup failed for {video_url}: {e}")
        return None


def derive_thumbnail(video_url, provider):
    if provider == 'youtube':
        video_id = youtube_video_id(video_url)
        return f'https://img.youtube.com/vi/{video_id}/hqdefault.jpg' if video_id else None
    if provider == 'vimeo':
        return fetch_vimeo_thumbnail(video_url)
    return None


def _course_access(user):
    """(include_premium, include_inactive) for this viewer"""
    manager = has_permission('manage_courses', user)
    return manager or has_premium_access(user), manager


def _parse_module(data, partial=False):
    module = {}
    if 'title' in data or not partial:
        title = str(data.get('title') or '').strip()
        if not title:
            raise ValidationError('Título é obrigatório')
        module['title'] = title
    for field in ('description', 'thumbnail_url'):
        if field in data:
            module[field] = data[field] or None
    if 'level' in data or not partial:
        level = data.get('level') or 'iniciante'
        if level not in COURSE_LEVELS:
            raise ValidationError('Nível inválido')
        module['level'] = level
    if 'sort_order' in data:
        module['sort_order'] = parse_int(data['sort_order'], 'sort_order', minimum=1)
    for field in ('is_premium', 'is_active'):
        if field in data:
            module[field] = int(parse_bool(data[field]))
    return module


def _parse_lesson(data, partial=False):
    lesson = {}
    if 'module_id' in data or not partial:
        lesson['module_id'] = parse_int(data.get('module_id'), 'module_id')
        if not db.get_module(lesson['module_id']):
            raise ValidationError('Módulo não encontrado')
    for field in ('title', 'video_url'):
        if field in data or not partial:
            value = str(data.get(field) or '').strip()
            if not value:
                raise ValidationError(f'Campo obrigatório: {field}')
            lesson[field] = value
    if 'video_provider' in data or not partial:
        provider = data.get('video_provider') or 'youtube'
        if provider not in VIDEO_PROVIDERS:
            raise ValidationError('Provedor de vídeo inválido')
        lesson['video_provider'] = provider
    for field in ('description', 'thumbnail_url'):
        if field in data:
            lesson[field] = data[field] or None
    if 'duration' in data:
        lesson['duration'] = parse_int(data['duration'], 'duration', minimum=0, required=False)
    if 'sort_order' in data:
        lesson['sort_order'] = parse_int(data['sort_order'], 'sort_order', minimum=1)
    if 'is_premium' in data:
        lesson['is_premium'] = int(parse_bool(data['is_premium']))
    return lesson


def _lesson_locked(lesson, user):
    return (lesson['is_premium'] or lesson['module_is_premium']) and not _course_access(user)[0]


# Public routes
@api_bp.route('/courses/modules')
def list_modules():
    try:
        include_premium, include_inactive = _course_access(get_current_user())
        return jsonify(db.list_modules(include_premium, include_inactive))
    except Exception as e:
        logger.error(f"❌ Error listing modules: {e}")
        return error_response('Erro ao buscar módulos', 500)


@api_bp.route('/courses/modules/<int:module_id>')
def get_module(module_id):
    include_premium, include_inactive = _course_access(get_current_user())
    module = db.get_module(module_id, include_premium, include_inactive)
    if not module:
        return error_response('Módulo não encontrado', 404)
    return jsonify(module)


@api_bp.route('/courses/lessons')
def list_lessons():
    try:
        include_premium, include_inactive = _course_access(get_current_user())
        module_id = parse_int(request.args.get('module_id'), 'module_id', required=False)
        visible_modules = {m['id'] for m in db.list_modules(include_premium, include_inactive)}

        if module_id is not None and module_id not in visible_modules:
            return error_response('Módulo não encontrado', 404)

        lessons = [
            lesson for lesson in db.list_lessons(module_id, include_premium)
            if lesson['module_id'] in visible_modules
        ]
        return jsonify(lessons)

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error listing lessons: {e}")
        return error_response('Erro ao buscar aulas', 500)


@api_bp.route('/courses/lessons/<int:lesson_id>')
def get_lesson(lesson_id):
    lesson = db.get_lesson(lesson_id)
    if not lesson:
        return error_response('Aula não encontrada', 404)
    if _lesson_locked(lesson, get_current_user()):
        return error_response('Esta aula é exclusiva para assinantes premium', 403)
    return jsonify(lesson)


# Admin routes
@api_bp.route('/courses/modules', methods=['POST'])
@permission_required('manage_courses')
def create_module():
    try:
        module = _parse_module(get_request_data())
        module_id = db.create_module(module, created_by=get_current_user()['id'])
        if not module_id:
            return error_response('Erro ao criar módulo', 500)

        log_activity('create_module', f"Criou módulo: {module['title']}", 'course_module', module_id, module['title'])
        return jsonify(db.get_module(module_id)), 201

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error creating module: {e}")
        return error_response('Erro ao criar módulo', 500)


@api_bp.route('/courses/modules/<int:module_id>', methods=['PUT'])
@permission_required('manage_courses')
def update_module(module_id):
    try:
        if not db.get_module(module_id):
            return error_response('Módulo não encontrado', 404)

        module = _parse_module(get_request_data(), partial=True)
        db.update_module(module_id, module)

        updated = db.get_module(module_id)
        log_activity('update_module', f"Atualizou módulo: {updated['title']}", 'course_module', module_id, updated['title'])
        return jsonify(updated)

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error updating module {module_id}: {e}")
        return error_response('Erro ao atualizar módulo', 500)


@api_bp.route('/courses/modules/<int:module_id>', methods=['DELETE'])
@permission_required('manage_courses')
def delete_module(module_id):
    try:
        module = db.get_module(module_id)
        result = db.delete_module(module_id)
        if not result['success']:
            return error_response(result['message'], result['status'])

        log_activity('delete_module', f"Excluiu módulo: {module['title']}", 'course_module', module_id, module['title'])
        return jsonify({'success': True, 'message': result['message']})

    except Exception as e:
        logger.error(f"❌ Error deleting module {module_id}: {e}")
        return error_response('Erro ao excluir módulo', 500)


@api_bp.route('/courses/lessons', methods=['POST'])
@permission_required('manage_courses')
def create_lesson():
    try:
        lesson = _parse_lesson(get_request_data())
        if not lesson.get('thumbnail_url'):
            lesson['thumbnail_url'] = derive_thumbnail(lesson['video_url'], lesson['video_provider'])

        lesson_id = db.create_lesson(lesson, created_by=get_current_user()['id'])
        if not lesson_id:
            return error_response('Erro ao criar aula', 500)

        log_activity('create_lesson', f"Criou aula: {lesson['title']}", 'course_lesson', lesson_id, lesson['title'])
        return jsonify(db.get_lesson(lesson_id)), 201

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error creating lesson: {e}")
        return error_response('Erro ao criar aula', 500)


@api_bp.route('/courses/lessons/<int:lesson_id>', methods=['PUT'])
@permission_required('manage_courses')
def update_lesson(lesson_id):
    try:
        existing = db.get_lesson(lesson_id)
        if not existing:
            return error_response('Aula não encontrada', 404)

        lesson = _parse_lesson(get_request_data(), partial=True)
        video_changed = 'video_url' in lesson or 'video_provider' in lesson
        if 'thumbnail_url' not in lesson and (video_changed or not existing['thumbnail_url']):
            lesson['thumbnail_url'] = derive_thumbnail(
                lesson.get('video_url', existing['video_url']),
                lesson.get('video_provider', existing['video_provider'])
            )

        if not db.update_lesson(lesson_id, lesson):
            return error_response('Erro ao atualizar aula', 500)

        updated = db.get_lesson(lesson_id)
        log_activity('update_lesson', f"Atualizou aula: {updated['title']}", 'course_lesson', lesson_id, updated['title'])
        return jsonify(updated)

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error updating lesson {lesson_id}: {e}")
        return error_response('Erro ao atualizar aula', 500)


@api_bp.route('/courses/lessons/<int:lesson_id>', methods=['DELETE'])
@permission_required('manage_courses')
def delete_lesson(lesson_id):
    lesson = db.get_lesson(lesson_id)
    if not lesson or not db.delete_lesson(lesson_id):
        return error_response('Aula não encontrada', 404)

    log_activity('delete_lesson', f"Excluiu aula: {lesson['title']}", 'course_lesson', lesson_id, lesson['title'])
    return jsonify({'success': True, 'message': 'Aula excluída com sucesso'})


# Progress
@api_bp.route('/courses/lessons/<int:lesson_id>/progress', methods=['PUT'])
@login_required
def update_progress(lesson_id):
    user = get_current_user()
    try:
        lesson = db.get_lesson(lesson_id)
        if not lesson:
            return error_response('Aula não encontrada', 404)
        if _lesson_locked(lesson, user):
            return error_response('Esta aula é exclusiva para assinantes premium', 403)

        data = get_request_data()
        progress = parse_int(data.get('progress'), 'progress', minimum=0, maximum=100, required=False)
        is_completed = parse_bool(data['is_completed']) if 'is_completed' in data else None
        notes = data.get('notes')

        record = db.upsert_progress(user['id'], lesson_id, progress, is_completed, notes)
        return jsonify(record)

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error saving progress for lesson {lesson_id}: {e}")
        return error_response('Erro ao salvar progresso', 500)


@api_bp.route('/courses/modules/<int:module_id>/progress')
@login_required
def module_progress(module_id):
    user = get_current_user()
    include_premium, include_inactive = _course_access(user)
    if not db.get_module(module_id, include_premium, include_inactive):
        return error_response('Módulo não encontrado', 404)

    lessons = db.get_module_progress(user['id'], module_id)
    completed = sum(1 for lesson in lessons if lesson['is_completed'])
    total = len(lessons)
    return jsonify({
        'module_id': module_id,
        'lessons': lessons,
        'completed_lessons': completed,
        'total_lessons': total,
        'percent': round(completed / total * 100, 2) if total else 0
    })


# Ratings
@api_bp.route('/courses/lessons/<int:lesson_id>/ratings')
def lesson_ratings(lesson_id):
    if not db.get_lesson(lesson_id):
        return error_response('Aula não encontrada', 404)

    ratings = db.get_lesson_ratings(lesson_id)
    average = round(sum(r['rating'] for r in ratings) / len(ratings), 2) if ratings else 0
    return jsonify({'ratings': ratings, 'average': average, 'count': len(ratings)})


@api_bp.route('/courses/lessons/<int:lesson_id>/ratings', methods=['POST'])
@login_required
def rate_lesson(lesson_id):
    user = get_current_user()
    try:
        if not db.get_lesson(lesson_id):
            return error_response('Aula não encontrada', 404)

        data = get_request_data()
        rating = parse_int(data.get('rating'), 'rating', minimum=1, maximum=5)
        comment = (str(data.get('comment')).strip() or None) if data.get('comment') else None

        return jsonify(db.rate_lesson(user['id'], lesson_id, rating, comment))

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error rating lesson {lesson_id}: {e}")
        return error_response('Erro ao avaliar aula', 500)


@api_bp.route('/courses/lessons/<int:lesson_id>/ratings', methods=['DELETE'])
@login_required
def delete_rating(lesson_id):
    if not db.delete_rating(get_current_user()['id'], lesson_id):
        return error_response('Avaliação não encontrada', 404)
    return jsonify({'success': True, 'message': 'Avaliação removida'})
