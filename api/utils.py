# api/utils.py - Shared helpers: auth decorators, request parsing, exports
import io
import json
import re
import logging
import unicodedata
from datetime import datetime, date, timezone
from functools import wraps

import pandas as pd
from flask import session, request, jsonify, g

from database import db
from config import get_level_permissions, PREMIUM_LEVELS, ALLOWED_IMAGE_EXTENSIONS

logger = logging.getLogger(__name__)

TRUE_VALUES = {'true', '1', 'yes', 'on', 'sim'}
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


class ValidationError(ValueError):
    """Bad client input; routes answer it with a 400"""


def error_response(message, status=400):
    return jsonify({'success': False, 'message': message}), status


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_IMAGE_EXTENSIONS


# Authentication and Permission Decorators
def get_current_user():
    """The logged-in user (fresh from the database), cached on ``g``"""
    if 'current_user' in g:
        return g.current_user

    user = None
    user_id = session.get('user_id')
    if user_id is not None:
        user = db.get_user_by_id(user_id)
        if user and not user['is_active']:
            user = None
        if user is None:
            session.clear()
    g.current_user = user
    return user


def get_user_permissions(level):
    """Get permissions for a nivelacesso from config"""
    return get_level_permissions(level)


def has_permission(permission, user=None):
    user = user or get_current_user()
    if not user:
        return False
    if user['nivelacesso'] == 'admin':
        return True
    permissions = get_user_permissions(user['nivelacesso'])
    return bool(permissions.get('all_permissions') or permissions.get(permission, False))


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_current_user() is None:
            return error_response('Não autenticado', 401)
        return f(*args, **kwargs)
    return decorated_function


def permission_required(permission):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                logger.info(f"🔐 Permission DENIED: not logged in for {permission}")
                return error_response('Não autenticado', 401)

            if not has_permission(permission, user):
                logger.info(f"🔐 Permission DENIED: {user['username']} ({user['nivelacesso']}) lacks {permission}")
                return error_response(f'Acesso negado. Permissão necessária: {permission}', 403)

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def parse_timestamp(value):
    """Parse stored or client timestamps into a naive UTC datetime, None when empty"""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip().replace('Z', '+00:00')
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f'Data inválida: {value}')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_datetime(value):
    """Normalize a client timestamp to the stored ``YYYY-MM-DD HH:MM:SS`` text"""
    parsed = parse_timestamp(value)
    return parsed.strftime(TIMESTAMP_FORMAT) if parsed else None


def parse_date(value):
    parsed = parse_timestamp(value)
    return parsed.strftime('%Y-%m-%d') if parsed else None


def require_date(value, field):
    """Like parse_date, but an empty value is a validation error"""
    parsed = parse_date(value)
    if not parsed:
        raise ValidationError(f'Campo obrigatório: {field}')
    return parsed


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_subscription_expired(user):
    if not user or user.get('nivelacesso') != 'premium' or user.get('acessovitalicio'):
        return False
    expiry = parse_timestamp(user.get('dataexpiracao'))
    return expiry is not None and expiry < utcnow()


def has_premium_access(user):
    """Lifetime access, a premium-carrying tier, or a subscription still running"""
    if not user:
        return False
    if user.get('acessovitalicio'):
        return True
    if is_subscription_expired(user):
        return False
    if user.get('nivelacesso') in PREMIUM_LEVELS:
        return True
    expiry = parse_timestamp(user.get('dataexpiracao'))
    return expiry is not None and expiry > utcnow()


def public_user(user):
    """User payload for the client, with derived access flags"""
    data = {key: value for key, value in user.items() if key != 'password_hash'}
    data['is_premium'] = has_premium_access(user)
    data['permissions'] = get_user_permissions(user['nivelacesso'])
    return data


# Request parsing
def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in TRUE_VALUES


def parse_int(value, field, minimum=None, maximum=None, required=True):
    if value in (None, ''):
        if required:
            raise ValidationError(f'Campo obrigatório: {field}')
        return None
    if isinstance(value, bool):
        raise ValidationError(f'Valor inválido para {field}')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Valor inválido para {field}')
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} deve ser no mínimo {minimum}')
    if maximum is not None and number > maximum:
        raise ValidationError(f'{field} deve ser no máximo {maximum}')
    return number


def get_request_data():
    """JSON body, a JSON ``data`` form field, or the plain form"""
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError('Corpo JSON inválido')
        return data
    if 'data' in request.form:
        try:
            data = json.loads(request.form['data'])
        except ValueError:
            raise ValidationError('Campo data contém JSON inválido')
        if not isinstance(data, dict):
            raise ValidationError('Campo data contém JSON inválido')
        return data
    return request.form.to_dict()


def read_uploaded_image(field='image', required=True):
    """Bytes of an uploaded image file, or None when absent and optional"""
    file = request.files.get(field)
    if file is None or not file.filename:
        if required:
            raise ValidationError('Nenhuma imagem enviada')
        return None
    if not allowed_file(file.filename):
        raise ValidationError('Tipo de arquivo não permitido')
    return file.read()


def slugify(text):
    normalized = unicodedata.normalize('NFKD', str(text)).encode('ascii', 'ignore').decode('ascii')
    return re.sub(r'[^a-z0-9]+', '-', normalized.lower()).strip('-')


def pagination(page, limit, total):
    total_pages = (total + limit - 1) // limit if limit else 0
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'total_pages': total_pages,
        'has_more': page < total_pages
    }


def log_activity(action_type, description, target_type=None, target_id=None, target_name=None,
                 old_value=None, new_value=None, user=None):
    """Record an activity for the current user with request metadata"""
    user = user or get_current_user()
    db.log_activity(
        user_id=user['id'] if user else None,
        username=user['username'] if user else None,
        action_type=action_type,
        action_description=description,
        target_type=target_type,
        target_id=target_id,
        target_name=target_name,
        old_value=old_value,
        new_value=new_value,
        ip_address=request.remote_addr,
        user_agent=request.headers.get('User-Agent', '')[:255]
    )


# Excel / CSV Export Functions
def _autosize_columns(worksheet):
    for column in worksheet.columns:
        max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
        worksheet.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)


def generate_logs_excel(logs, filters=None):
    """Generate an Excel file for activity logs"""
    try:
        data = []
        for log in logs:
            data.append({
                'Data e hora': log.get('created_at', ''),
                'Usuário': log.get('username', ''),
                'Tipo de ação': log.get('action_type', ''),
                'Descrição': log.get('action_description', ''),
                'Tipo do alvo': log.get('target_type', ''),
                'Nome do alvo': log.get('target_name', ''),
                'ID do alvo': log.get('target_id', ''),
                'Valor anterior': log.get('old_value', ''),
                'Valor novo': log.get('new_value', ''),
                'Endereço IP': log.get('ip_address', '')
            })

        df = pd.DataFrame(data, columns=[
            'Data e hora', 'Usuário', 'Tipo de ação', 'Descrição', 'Tipo do alvo', 'Nome do alvo',
            'ID do alvo', 'Valor anterior', 'Valor novo', 'Endereço IP'
        ])

        output = io.BytesIO()
        with pd.ExcelWriter(output, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name='Logs', index=False, startrow=2)
            worksheet = writer.sheets['Logs']
            worksheet.cell(row=1, column=1, value='Logs de atividade - DesignAuto')
            worksheet.cell(row=2, column=1, value=f'Filtros aplicados: {filters or "todos os registros"}')
            _autosize_columns(worksheet)

        output.seek(0)
        return output

    except (ValueError, OSError) as e:
        logger.error(f"❌ Error generating logs Excel: {e}")
        return None


def get_filters_description(args):
    """Human-readable description of the applied log filters"""
    filters = []
    if args.get('user_id'):
        filters.append(f"usuário: {args.get('user_id')}")
    if args.get('action_type'):
        filters.append(f"ação: {args.get('action_type')}")
    if args.get('start_date'):
        filters.append(f"de: {args.get('start_date')}")
    if args.get('end_date'):
        filters.append(f"até: {args.get('end_date')}")
    return ' | '.join(filters) if filters else 'todos os registros'


USER_EXPORT_COLUMNS = [
    'id', 'username', 'email', 'name', 'nivelacesso', 'is_active', 'tipoplano', 'origemassinatura',
    'dataassinatura', 'dataexpiracao', 'acessovitalicio', 'last_login', 'created_at'
]


def export_users(users, fmt='csv'):
    """Serialize users to CSV or XLSX bytes"""
    df = pd.DataFrame(users, columns=USER_EXPORT_COLUMNS)
    output = io.BytesIO()
    if fmt == 'xlsx':
        with pd.ExcelWriter(output, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name='Usuarios', index=False)
            _autosize_columns(writer.sheets['Usuarios'])
    else:
        output.write(df.to_csv(index=False).encode('utf-8-sig'))
    output.seek(0)
    return output
