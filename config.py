# config.py - Central Configuration File
# Access tiers (nivelacesso) and their permissions live here too
import os
from dotenv import load_dotenv

load_dotenv()

# Flask
SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
MAX_CONTENT_LENGTH = 16 * 1024 * 1024
SESSION_LIFETIME_DAYS = int(os.environ.get('SESSION_LIFETIME_DAYS', '7'))
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

# Database Configuration
DATABASE_PATH = os.environ.get('DATABASE_PATH', 'designauto.db')

# Default admin, created when the users table is empty
DEFAULT_ADMIN_USERNAME = os.environ.get('DEFAULT_ADMIN_USERNAME', 'admin')
DEFAULT_ADMIN_EMAIL = os.environ.get('DEFAULT_ADMIN_EMAIL', 'admin@designauto.com.br')
DEFAULT_ADMIN_PASSWORD = os.environ.get('DEFAULT_ADMIN_PASSWORD', 'admin123')

# Storage: 'local' writes under UPLOAD_FOLDER, 'r2' uses Cloudflare R2
STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'local')
UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', 'uploads')
PUBLIC_UPLOADS_URL = os.environ.get('PUBLIC_UPLOADS_URL', '/uploads')

R2_ACCOUNT_ID = os.environ.get('R2_ACCOUNT_ID', '')
R2_ACCESS_KEY_ID = os.environ.get('R2_ACCESS_KEY_ID', '')
R2_SECRET_ACCESS_KEY = os.environ.get('R2_SECRET_ACCESS_KEY', '')
R2_BUCKET_NAME = os.environ.get('R2_BUCKET_NAME', 'designauto-images')
R2_PUBLIC_URL = os.environ.get('R2_PUBLIC_URL', '').rstrip('/')

# Images
IMAGE_QUALITY = 85
POPUP_IMAGE_MAX_WIDTH = 800
ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}

# Pagination
ART_GROUPS_PAGE_SIZE = 24
ART_GROUPS_MAX_PAGE_SIZE = 100
RELATED_GROUPS_LIMIT = 8
USERS_PAGE_SIZE = 20
LOGS_PAGE_SIZE = 50

# External services
VIMEO_OEMBED_URL = 'https://vimeo.com/api/oembed.json'
HTTP_TIMEOUT_SECONDS = 5

# Hotmart subscription webhooks; the hottok configured on the Hotmart side
HOTMART_SECRET = os.environ.get('HOTMART_SECRET', '')
WEBHOOK_LOGS_PAGE_SIZE = 50

# Choices
COURSE_LEVELS = ('iniciante', 'intermediario', 'avancado')
VIDEO_PROVIDERS = ('youtube', 'vimeo', 'vturb', 'panda')
SOCIAL_PLATFORMS = ('instagram', 'facebook', 'tiktok', 'youtube', 'linkedin', 'twitter')
SOCIAL_GOAL_TYPES = ('followers', 'sales', 'engagement')
POPUP_POSITIONS = ('center', 'top', 'bottom', 'top-left', 'top-right', 'bottom-left', 'bottom-right')
POPUP_SIZES = ('small', 'medium', 'large')
POPUP_ACTIONS = ('view', 'click', 'dismiss')
SUBSCRIPTION_PLANS = ('mensal', 'semestral', 'anual', 'vitalicio')
WEBHOOK_STATUSES = ('received', 'processed', 'ignored', 'error')

# Tiers that always carry premium access
PREMIUM_LEVELS = ('premium', 'designer', 'designer_adm', 'admin')
# Only an admin may grant these levels or edit accounts holding them
PRIVILEGED_LEVELS = ('admin', 'designer_adm')

# Subscription length per plan; products with no mapping get DEFAULT_PLAN
PLAN_DURATION_DAYS = {'mensal': 30, 'semestral': 180, 'anual': 365}
DEFAULT_PLAN = 'anual'

# Access Levels (nivelacesso) Configuration
ACCESS_LEVELS = {
    'admin': {
        'name': 'Administrador',
        'description': 'Acesso total à plataforma',
        'permissions': {
            'all_permissions': True,
            'download_premium': True,
            'upload_arts': True,
            'manage_all_arts': True,
            'manage_catalog': True,
            'manage_popups': True,
            'manage_courses': True,
            'manage_users': True,
            'manage_subscriptions': True,
            'view_logs': True,
            'view_dashboard': True
        }
    },
    'designer_adm': {
        'name': 'Designer Administrador',
        'description': 'Gerencia todas as artes e o catálogo',
        'permissions': {
            'all_permissions': False,
            'download_premium': True,
            'upload_arts': True,
            'manage_all_arts': True,
            'manage_catalog': True,
            'manage_popups': False,
            'manage_courses': True,
            'manage_users': False,
            'manage_subscriptions': False,
            'view_logs': False,
            'view_dashboard': True
        }
    },
    'designer': {
        'name': 'Designer',
        'description': 'Publica e gerencia as próprias artes',
        'permissions': {
            'all_permissions': False,
            'download_premium': True,
            'upload_arts': True,
            'manage_all_arts': False,
            'manage_catalog': False,
            'manage_popups': False,
            'manage_courses': False,
            'manage_users': False,
            'manage_subscriptions': False,
            'view_logs': False,
            'view_dashboard': False
        }
    },
    'suporte': {
        'name': 'Suporte',
        'description': 'Atendimento: consulta usuários e painel',
        'permissions': {
            'all_permissions': False,
            'download_premium': False,
            'upload_arts': False,
            'manage_all_arts': False,
            'manage_catalog': False,
            'manage_popups': False,
            'manage_courses': False,
            'manage_users': True,
            'manage_subscriptions': False,
            'view_logs': True,
            'view_dashboard': True
        }
    },
    'premium': {
        'name': 'Premium',
        'description': 'Assinante com acesso às artes premium',
        'permissions': {
            'all_permissions': False,
            'download_premium': True,
            'upload_arts': False,
            'manage_all_arts': False,
            'manage_catalog': False,
            'manage_popups': False,
            'manage_courses': False,
            'manage_users': False,
            'manage_subscriptions': False,
            'view_logs': False,
            'view_dashboard': False
        }
    },
    'usuario': {
        'name': 'Usuário',
        'description': 'Conta gratuita',
        'permissions': {
            'all_permissions': False,
            'download_premium': False,
            'upload_arts': False,
            'manage_all_arts': False,
            'manage_catalog': False,
            'manage_popups': False,
            'manage_courses': False,
            'manage_users': False,
            'manage_subscriptions': False,
            'view_logs': False,
            'view_dashboard': False
        }
    }
}

# Password rules
PASSWORD_MIN_LENGTH = 6

# Seed data for `flask seed-catalog`
DEFAULT_FORMATS = ['Feed', 'Stories', 'Cartaz', 'Web Banner']
DEFAULT_FILE_TYPES = ['Canva', 'PSD', 'AI', 'PNG']
DEFAULT_CATEGORIES = ['Vendas', 'Lavagem', 'Mecânica', 'Locação', 'Seminovos']


def get_access_level(level):
    """Get the configuration for an access level"""
    return ACCESS_LEVELS.get(level, ACCESS_LEVELS['usuario'])


def get_level_permissions(level):
    """Get permissions for a specific access level"""
    return dict(get_access_level(level)['permissions'])


def get_all_levels():
    """Get all available access levels"""
    return [
        {'level': level, 'name': data['name'], 'description': data['description']}
        for level, data in ACCESS_LEVELS.items()
    ]
