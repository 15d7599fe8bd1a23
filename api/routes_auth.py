# api/routes_auth.py - Registration, login and session routes
import re
import logging
from flask import request, jsonify, session
from . import api_bp
from .utils import (
    login_required, get_current_user, get_user_permissions, public_user,
    error_response, log_activity, get_request_data, ValidationError
)
from database import db
from config import PASSWORD_MIN_LENGTH

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
USERNAME_RE = re.compile(r'^[A-Za-z0-9_.-]{3,50}$')


def _start_session(user):
    session.clear()
    session.permanent = True
    session['user_id'] = user['id']
    session['username'] = user['username']
    session['nivelacesso'] = user['nivelacesso']
    session['permissions'] = get_user_permissions(user['nivelacesso'])


@api_bp.route('/auth/register', methods=['POST'])
def register():
    """Create a free account and log it in"""
    try:
        data = get_request_data()
        username = str(data.get('username', '')).strip()
        email = str(data.get('email', '')).strip().lower()
        password = str(data.get('password', ''))
        name = str(data.get('name', '')).strip() or None

        if not username or not email or not password:
            return error_response('Usuário, email e senha são obrigatórios')
        if not USERNAME_RE.match(username):
            return error_response('Nome de usuário inválido')
        if not EMAIL_RE.match(email):
            return error_response('Email inválido')
        if len(password) < PASSWORD_MIN_LENGTH:
            return error_response(f'A senha deve ter pelo menos {PASSWORD_MIN_LENGTH} caracteres')

        user_id = db.create_user(username, email, password, name=name)
        if not user_id:
            return error_response('Nome de usuário ou email já cadastrado')

        user = db.get_user_by_id(user_id)
        _start_session(user)
        log_activity('register', f'Novo cadastro: {username}', 'user', user_id, username, user=user)
        return jsonify({'success': True, 'message': 'Cadastro realizado com sucesso', 'user': public_user(user)}), 201

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error registering user: {e}")
        return error_response('Erro ao realizar cadastro', 500)


@api_bp.route('/auth/login', methods=['POST'])
def login():
    """Log in with username or email"""
    try:
        data = get_request_data()
        login_value = str(data.get('username') or data.get('email') or '').strip()
        password = str(data.get('password', ''))

        if not login_value or not password:
            return error_response('Informe usuário e senha')

        user = db.authenticate_user(login_value, password)
        if not user:
            logger.info(f"🔐 Failed login for {login_value}")
            return error_response('Usuário ou senha incorretos', 401)

        if db.expire_subscriptions(user_id=user['id']):
            user = db.get_user_by_id(user['id'])

        _start_session(user)
        log_activity('login', f"Login do usuário {user['username']}", user=user)
        logger.info(f"🔐 User {user['username']} logged in ({user['nivelacesso']})")

        return jsonify({'success': True, 'message': 'Login realizado com sucesso', 'user': public_user(user)})

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error during login: {e}")
        return error_response('Erro ao realizar login', 500)


@api_bp.route('/auth/logout', methods=['POST'])
def logout():
    user = get_current_user()
    if user:
        log_activity('logout', f"Logout do usuário {user['username']}", user=user)
    session.clear()
    return jsonify({'success': True, 'message': 'Logout realizado com sucesso'})


@api_bp.route('/auth/me')
@login_required
def me():
    return jsonify({'user': public_user(get_current_user())})


@api_bp.route('/auth/change-password', methods=['POST'])
@login_required
def change_password():
    try:
        data = get_request_data()
        current_password = data.get('current_password')
        new_password = data.get('new_password')
        confirm_password = data.get('confirm_password')

        if not current_password or not new_password or not confirm_password:
            return error_response('Preencha todos os campos')
        if new_password != confirm_password:
            return error_response('A nova senha e a confirmação não conferem')
        if len(new_password) < PASSWORD_MIN_LENGTH:
            return error_response(f'A senha deve ter pelo menos {PASSWORD_MIN_LENGTH} caracteres')

        user = get_current_user()
        if not db.verify_password(user['id'], current_password):
            return error_response('Senha atual incorreta')

        if not db.change_user_password(user['id'], new_password):
            return error_response('Erro ao alterar a senha', 500)

        log_activity('change_password', 'Alteração da própria senha', 'user', user['id'], user['username'])
        return jsonify({'success': True, 'message': 'Senha alterada com sucesso'})

    except ValidationError as e:
        return error_response(str(e))
    except Exception as e:
        logger.error(f"❌ Error changing password: {e}")
        return error_response('Erro ao alterar a senha', 500)
