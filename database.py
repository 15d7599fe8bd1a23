# database.py - sqlite persistence for users, arts, popups, courses and social growth
import sqlite3
import os
import logging
from contextlib import contextmanager
from datetime import datetime, timezone, timedelta
from typing import List, Dict, Any, Optional, Tuple
from werkzeug.security import generate_password_hash, check_password_hash

logger = logging.getLogger(__name__)

# Columns stored as 0/1 that are returned as booleans
BOOL_COLUMNS = {
    'is_active', 'is_premium', 'is_visible', 'is_primary', 'acessovitalicio',
    'show_once', 'show_to_logged_users', 'show_to_guest_users', 'show_to_premium_users',
    'is_completed', 'is_lifetime'
}

CATALOG_TABLES = {
    'categories': ('art_groups', 'category_id'),
    'formats': ('art_variations', 'format_id'),
    'file_types': ('art_variations', 'file_type_id'),
}

ART_GROUP_ORDER_COLUMNS = {
    'created_at': 'ag.created_at',
    'title': 'ag.title',
    'view_count': 'ag.view_count',
    'download_count': 'ag.download_count',
    'like_count': 'ag.like_count',
}

USER_PUBLIC_COLUMNS = '''
    id, username, email, name, bio, profile_image_url, nivelacesso, is_active,
    tipoplano, origemassinatura, dataassinatura, dataexpiracao, acessovitalicio, codigoassinante,
    observacaoadmin, last_login, created_at, updated_at
'''

POPUP_FIELDS = (
    'title', 'content', 'image_url', 'button_text', 'button_url', 'background_color',
    'text_color', 'button_color', 'button_text_color', 'position', 'size', 'animation',
    'delay_seconds', 'start_date', 'end_date', 'show_once', 'frequency',
    'show_to_logged_users', 'show_to_guest_users', 'show_to_premium_users', 'is_active'
)

MODULE_FIELDS = ('title', 'description', 'thumbnail_url', 'level', 'sort_order', 'is_premium', 'is_active')

LESSON_FIELDS = (
    'module_id', 'title', 'description', 'video_url', 'video_provider', 'duration',
    'thumbnail_url', 'sort_order', 'is_premium'
)

GROWTH_FIELDS = (
    'followers', 'average_likes', 'average_comments', 'posts_count', 'sales_from_platform', 'notes'
)

PRODUCT_MAPPING_FIELDS = ('product_id', 'offer_id', 'product_name', 'plan_type', 'duration_days', 'is_lifetime')


def now_str() -> str:
    """Current UTC time in the format sqlite's CURRENT_TIMESTAMP uses"""
    return datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')


def _to_dict(row) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    data = dict(row)
    for key in BOOL_COLUMNS.intersection(data):
        if data[key] is not None:
            data[key] = bool(data[key])
    return data


def _to_dicts(rows) -> List[Dict[str, Any]]:
    return [_to_dict(row) for row in rows]


def _result(success, status=200, message='', **extra) -> Dict[str, Any]:
    data = {'success': success, 'status': status, 'message': message}
    data.update(extra)
    return data


class Database:
    def __init__(self, db_path=None):
        self.db_path = db_path

    def init_app(self, app):
        """Bind to the app's DATABASE_PATH and make sure the schema exists"""
        self.db_path = app.config['DATABASE_PATH']
        self._ensure_db_file()
        self.init_db()
        self.update_schema(
            admin_username=app.config.get('DEFAULT_ADMIN_USERNAME', 'admin'),
            admin_email=app.config.get('DEFAULT_ADMIN_EMAIL', 'admin@designauto.com.br'),
            admin_password=app.config.get('DEFAULT_ADMIN_PASSWORD', 'admin123')
        )
        app.extensions['database'] = self

    def _ensure_db_file(self):
        """Ensure the database file exists"""
        directory = os.path.dirname(os.path.abspath(self.db_path))
        os.makedirs(directory, exist_ok=True)
        if not os.path.exists(self.db_path):
            logger.info(f"📄 Creating new database file: {self.db_path}")
            open(self.db_path, 'a').close()

    @contextmanager
    def get_connection(self):
        """Get database connection"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        """Create every table and index if missing"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('PRAGMA journal_mode = WAL')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT UNIQUE NOT NULL,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    name TEXT,
                    bio TEXT,
                    profile_image_url TEXT,
                    nivelacesso TEXT NOT NULL DEFAULT 'usuario',
                    is_active BOOLEAN NOT NULL DEFAULT 1,
                    tipoplano TEXT,
                    origemassinatura TEXT,
                    dataassinatura TIMESTAMP,
                    dataexpiracao TIMESTAMP,
                    acessovitalicio BOOLEAN NOT NULL DEFAULT 0,
                    codigoassinante TEXT,
                    observacaoadmin TEXT,
                    last_login TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            for table in CATALOG_TABLES:
                cursor.execute(f'''
                    CREATE TABLE IF NOT EXISTS {table} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        slug TEXT UNIQUE NOT NULL
                    )
                ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS art_groups (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    category_id INTEGER NOT NULL,
                    designer_id INTEGER,
                    is_premium BOOLEAN NOT NULL DEFAULT 0,
                    is_visible BOOLEAN NOT NULL DEFAULT 1,
                    view_count INTEGER NOT NULL DEFAULT 0,
                    download_count INTEGER NOT NULL DEFAULT 0,
                    like_count INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (category_id) REFERENCES categories (id),
                    FOREIGN KEY (designer_id) REFERENCES users (id) ON DELETE SET NULL
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS art_variations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    group_id INTEGER NOT NULL,
                    format_id INTEGER NOT NULL,
                    file_type_id INTEGER NOT NULL,
                    image_url TEXT NOT NULL,
                    edit_url TEXT NOT NULL DEFAULT '',
                    width INTEGER,
                    height INTEGER,
                    aspect_ratio TEXT,
                    is_primary BOOLEAN NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (group_id) REFERENCES art_groups (id) ON DELETE CASCADE,
                    FOREIGN KEY (format_id) REFERENCES formats (id),
                    FOREIGN KEY (file_type_id) REFERENCES file_types (id),
                    UNIQUE(group_id, format_id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS downloads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    group_id INTEGER NOT NULL,
                    variation_id INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE,
                    FOREIGN KEY (group_id) REFERENCES art_groups (id) ON DELETE CASCADE,
                    FOREIGN KEY (variation_id) REFERENCES art_variations (id) ON DELETE SET NULL
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS favorites (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    group_id INTEGER NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE,
                    FOREIGN KEY (group_id) REFERENCES art_groups (id) ON DELETE CASCADE,
                    UNIQUE(user_id, group_id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS popups (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    content TEXT,
                    image_url TEXT,
                    button_text TEXT,
                    button_url TEXT,
                    background_color TEXT DEFAULT '#ffffff',
                    text_color TEXT DEFAULT '#000000',
                    button_color TEXT DEFAULT '#4F46E5',
                    button_text_color TEXT DEFAULT '#ffffff',
                    position TEXT NOT NULL DEFAULT 'center',
                    size TEXT NOT NULL DEFAULT 'medium',
                    animation TEXT DEFAULT 'fade',
                    delay_seconds INTEGER NOT NULL DEFAULT 2,
                    start_date TIMESTAMP NOT NULL,
                    end_date TIMESTAMP NOT NULL,
                    show_once BOOLEAN NOT NULL DEFAULT 0,
                    frequency INTEGER NOT NULL DEFAULT 1,
                    show_to_logged_users BOOLEAN NOT NULL DEFAULT 1,
                    show_to_guest_users BOOLEAN NOT NULL DEFAULT 1,
                    show_to_premium_users BOOLEAN NOT NULL DEFAULT 1,
                    is_active BOOLEAN NOT NULL DEFAULT 1,
                    created_by INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (created_by) REFERENCES users (id) ON DELETE SET NULL
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS popup_views (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    popup_id INTEGER NOT NULL,
                    user_id INTEGER,
                    session_id TEXT,
                    action TEXT NOT NULL DEFAULT 'view',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (popup_id) REFERENCES popups (id) ON DELETE CASCADE,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE SET NULL
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS course_modules (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    thumbnail_url TEXT,
                    level TEXT NOT NULL DEFAULT 'iniciante',
                    sort_order INTEGER NOT NULL DEFAULT 1,
                    is_premium BOOLEAN NOT NULL DEFAULT 0,
                    is_active BOOLEAN NOT NULL DEFAULT 1,
                    created_by INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (created_by) REFERENCES users (id) ON DELETE SET NULL
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS course_lessons (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    module_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    video_url TEXT NOT NULL,
                    video_provider TEXT NOT NULL DEFAULT 'youtube',
                    duration INTEGER,
                    thumbnail_url TEXT,
                    sort_order INTEGER NOT NULL DEFAULT 1,
                    is_premium BOOLEAN NOT NULL DEFAULT 0,
                    created_by INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (module_id) REFERENCES course_modules (id),
                    FOREIGN KEY (created_by) REFERENCES users (id) ON DELETE SET NULL
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS course_progress (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    lesson_id INTEGER NOT NULL,
                    progress INTEGER NOT NULL DEFAULT 0,
                    is_completed BOOLEAN NOT NULL DEFAULT 0,
                    notes TEXT,
                    last_watched_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE,
                    FOREIGN KEY (lesson_id) REFERENCES course_lessons (id) ON DELETE CASCADE,
                    UNIQUE(user_id, lesson_id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS course_ratings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    lesson_id INTEGER NOT NULL,
                    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                    comment TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE,
                    FOREIGN KEY (lesson_id) REFERENCES course_lessons (id) ON DELETE CASCADE,
                    UNIQUE(user_id, lesson_id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS social_networks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    platform TEXT NOT NULL,
                    username TEXT NOT NULL,
                    profile_url TEXT,
                    is_active BOOLEAN NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE,
                    UNIQUE(user_id, platform, username)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS social_growth_data (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    network_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    record_date DATE NOT NULL,
                    followers INTEGER NOT NULL DEFAULT 0,
                    average_likes INTEGER DEFAULT 0,
                    average_comments INTEGER DEFAULT 0,
                    posts_count INTEGER DEFAULT 0,
                    sales_from_platform INTEGER DEFAULT 0,
                    notes TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (network_id) REFERENCES social_networks (id) ON DELETE CASCADE,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE,
                    UNIQUE(network_id, record_date)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS social_goals (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    network_id INTEGER NOT NULL,
                    goal_type TEXT NOT NULL,
                    target_value INTEGER NOT NULL CHECK (target_value > 0),
                    deadline DATE NOT NULL,
                    description TEXT,
                    is_active BOOLEAN NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE,
                    FOREIGN KEY (network_id) REFERENCES social_networks (id) ON DELETE CASCADE
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS activity_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER,
                    username TEXT,
                    action_type TEXT NOT NULL,
                    action_description TEXT NOT NULL,
                    target_type TEXT,
                    target_id INTEGER,
                    target_name TEXT,
                    old_value TEXT,
                    new_value TEXT,
                    ip_address TEXT,
                    user_agent TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS product_mappings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    product_id TEXT NOT NULL,
                    offer_id TEXT NOT NULL DEFAULT '',
                    product_name TEXT NOT NULL,
                    plan_type TEXT NOT NULL,
                    duration_days INTEGER,
                    is_lifetime BOOLEAN NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (product_id, offer_id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS webhook_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    provider TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'received',
                    email TEXT,
                    transaction_id TEXT,
                    payload_data TEXT,
                    error_message TEXT,
                    user_id INTEGER,
                    source_ip TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE SET NULL
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_art_groups_category ON art_groups(category_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_art_groups_designer ON art_groups(designer_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_art_variations_group ON art_variations(group_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_downloads_created_at ON downloads(created_at)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_popup_views_popup ON popup_views(popup_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_course_lessons_module ON course_lessons(module_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_growth_user_date ON social_growth_data(user_id, record_date)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_goals_user_active ON social_goals(user_id, is_active)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_logs_user_id ON activity_logs(user_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_logs_created_at ON activity_logs(created_at)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_logs_action_type ON activity_logs(action_type)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_webhook_logs_status ON webhook_logs(status)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_webhook_logs_email ON webhook_logs(email)')

            conn.commit()
            logger.info("✅ Database initialized")

    def update_schema(self, admin_username='admin', admin_email='admin@designauto.com.br',
                      admin_password='admin123'):
        """Add late columns and create the default admin on an empty users table"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute('PRAGMA table_info(users)')
                columns = [column[1] for column in cursor.fetchall()]
                if 'observacaoadmin' not in columns:
                    logger.info("🔄 Adding observacaoadmin column to users table...")
                    cursor.execute('ALTER TABLE users ADD COLUMN observacaoadmin TEXT')
                if 'codigoassinante' not in columns:
                    logger.info("🔄 Adding codigoassinante column to users table...")
                    cursor.execute('ALTER TABLE users ADD COLUMN codigoassinante TEXT')

                cursor.execute('SELECT COUNT(*) FROM users')
                if cursor.fetchone()[0] == 0:
                    cursor.execute('''
                        INSERT INTO users (username, email, password_hash, name, nivelacesso)
                        VALUES (?, ?, ?, ?, 'admin')
                    ''', (admin_username, admin_email, generate_password_hash(admin_password), 'Administrador'))
                    logger.warning(f"⚠️ Created default admin user '{admin_username}', change its password")

                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"❌ Error updating schema: {e}")

    def ping(self) -> bool:
        try:
            with self.get_connection() as conn:
                conn.execute('SELECT 1')
            return True
        except sqlite3.Error as e:
            logger.error(f"❌ Database unreachable: {e}")
            return False

    # ------------------------------------------------------------------ users

    def create_user(self, username, email, password, name=None, nivelacesso='usuario', **extra):
        """Create a user and return its id, None when username or email is taken"""
        allowed = ('tipoplano', 'origemassinatura', 'dataassinatura', 'dataexpiracao',
                   'acessovitalicio', 'codigoassinante')
        columns = ['username', 'email', 'password_hash', 'name', 'nivelacesso']
        params = [username, email, generate_password_hash(password), name, nivelacesso]
        for key in allowed:
            if key in extra:
                columns.append(key)
                params.append(extra[key])

        with self.get_connection() as conn:
            try:
                cursor = conn.execute(
                    f"INSERT INTO users ({', '.join(columns)}) VALUES ({', '.join('?' * len(columns))})",
                    params
                )
                conn.commit()
                logger.info(f"✅ Created user: {username} ({nivelacesso})")
                return cursor.lastrowid
            except sqlite3.IntegrityError:
                logger.warning(f"❌ Username or email already exists: {username} / {email}")
                return None

    def authenticate_user(self, login, password):
        """Authenticate by username or email; returns the public user or None"""
        with self.get_connection() as conn:
            row = conn.execute('''
                SELECT id, password_hash FROM users
                WHERE (username = ? OR lower(email) = lower(?)) AND is_active = 1
            ''', (login, login)).fetchone()

            if not row or not check_password_hash(row['password_hash'], password):
                return None

            conn.execute('UPDATE users SET last_login = ? WHERE id = ?', (now_str(), row['id']))
            conn.commit()
        return self.get_user_by_id(row['id'])

    def get_user_by_id(self, user_id, include_hash=False):
        columns = USER_PUBLIC_COLUMNS + (', password_hash' if include_hash else '')
        with self.get_connection() as conn:
            row = conn.execute(f'SELECT {columns} FROM users WHERE id = ?', (user_id,)).fetchone()
            return _to_dict(row)

    def get_user_by_email(self, email):
        with self.get_connection() as conn:
            row = conn.execute(
                f'SELECT {USER_PUBLIC_COLUMNS} FROM users WHERE lower(email) = lower(?)', (email,)
            ).fetchone()
            return _to_dict(row)

    def verify_password(self, user_id, password) -> bool:
        user = self.get_user_by_id(user_id, include_hash=True)
        return bool(user) and check_password_hash(user['password_hash'], password)

    def change_user_password(self, user_id, new_password) -> bool:
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(
                    'UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?',
                    (generate_password_hash(new_password), now_str(), user_id)
                )
                conn.commit()
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                logger.error(f"❌ Error changing password: {e}")
                return False

    def update_user_fields(self, user_id, fields: Dict[str, Any]) -> bool:
        """Update whitelisted columns; callers validate the values"""
        allowed = {'name', 'bio', 'profile_image_url', 'nivelacesso', 'is_active', 'tipoplano',
                   'origemassinatura', 'dataassinatura', 'dataexpiracao', 'acessovitalicio',
                   'codigoassinante', 'observacaoadmin'}
        updates = {key: value for key, value in fields.items() if key in allowed}
        if not updates:
            return False

        assignments = ', '.join(f'{key} = ?' for key in updates)
        params = list(updates.values()) + [now_str(), user_id]
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(f'UPDATE users SET {assignments}, updated_at = ? WHERE id = ?', params)
                conn.commit()
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                logger.error(f"❌ Error updating user {user_id}: {e}")
                return False

    def delete_user(self, user_id) -> bool:
        with self.get_connection() as conn:
            try:
                cursor = conn.execute('DELETE FROM users WHERE id = ?', (user_id,))
                conn.commit()
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                logger.error(f"❌ Error deleting user {user_id}: {e}")
                return False

    def list_users(self, search=None, status=None, nivelacesso=None, limit=20, offset=0) -> Tuple[List[Dict], int]:
        conditions = []
        params = []
        if search:
            conditions.append('(name LIKE ? OR email LIKE ? OR username LIKE ?)')
            params.extend([f'%{search}%'] * 3)
        if status == 'active':
            conditions.append('is_active = 1')
        elif status == 'inactive':
            conditions.append('is_active = 0')
        if nivelacesso:
            conditions.append('nivelacesso = ?')
            params.append(nivelacesso)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ''

        with self.get_connection() as conn:
            total = conn.execute(f'SELECT COUNT(*) FROM users {where}', params).fetchone()[0]
            query = f'SELECT {USER_PUBLIC_COLUMNS} FROM users {where} ORDER BY created_at DESC, id DESC'
            query_params = list(params)
            if limit is not None:
                query += ' LIMIT ? OFFSET ?'
                query_params.extend([limit, offset])
            rows = conn.execute(query, query_params).fetchall()
            return _to_dicts(rows), total

    def get_user_stats(self) -> Dict[str, int]:
        with self.get_connection() as conn:
            row = conn.execute('''
                SELECT
                    COUNT(*) AS total_users,
                    COALESCE(SUM(CASE WHEN is_active = 1 THEN 1 ELSE 0 END), 0) AS active_users,
                    COALESCE(SUM(CASE WHEN nivelacesso = 'premium' THEN 1 ELSE 0 END), 0) AS premium_users,
                    COALESCE(SUM(CASE WHEN nivelacesso = 'designer' THEN 1 ELSE 0 END), 0) AS designers
                FROM users
            ''').fetchone()
            return dict(row)

    def expire_subscriptions(self, user_id=None) -> int:
        """Downgrade premium users whose dataexpiracao has passed"""
        query = '''
            UPDATE users SET nivelacesso = 'usuario', updated_at = ?
            WHERE nivelacesso = 'premium' AND acessovitalicio = 0
              AND dataexpiracao IS NOT NULL AND dataexpiracao < ?
        '''
        now = now_str()
        params = [now, now]
        if user_id is not None:
            query += ' AND id = ?'
            params.append(user_id)
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(query, params)
                conn.commit()
                if cursor.rowcount:
                    logger.info(f"🔄 Downgraded {cursor.rowcount} expired subscription(s)")
                return cursor.rowcount
            except sqlite3.Error as e:
                logger.error(f"❌ Error expiring subscriptions: {e}")
                return 0

    # ---------------------------------------------------------------- catalog

    def list_catalog(self, table) -> List[Dict]:
        self._check_catalog_table(table)
        with self.get_connection() as conn:
            return _to_dicts(conn.execute(f'SELECT id, name, slug FROM {table} ORDER BY name').fetchall())

    def get_catalog_item(self, table, item_id):
        self._check_catalog_table(table)
        with self.get_connection() as conn:
            return _to_dict(conn.execute(f'SELECT id, name, slug FROM {table} WHERE id = ?', (item_id,)).fetchone())

    def catalog_item_exists(self, table, item_id) -> bool:
        return self.get_catalog_item(table, item_id) is not None

    def create_catalog_item(self, table, name, slug):
        """Insert and return the id, None when the slug is taken"""
        self._check_catalog_table(table)
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(f'INSERT INTO {table} (name, slug) VALUES (?, ?)', (name, slug))
                conn.commit()
                return cursor.lastrowid
            except sqlite3.IntegrityError:
                return None

    def update_catalog_item(self, table, item_id, name, slug):
        self._check_catalog_table(table)
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(f'UPDATE {table} SET name = ?, slug = ? WHERE id = ?', (name, slug, item_id))
                conn.commit()
            except sqlite3.IntegrityError:
                return _result(False, 400, 'Slug já utilizado')
            if cursor.rowcount == 0:
                return _result(False, 404, 'Item não encontrado')
            return _result(True, 200, 'Item atualizado com sucesso')

    def delete_catalog_item(self, table, item_id):
        self._check_catalog_table(table)
        ref_table, ref_column = CATALOG_TABLES[table]
        with self.get_connection() as conn:
            in_use = conn.execute(
                f'SELECT COUNT(*) FROM {ref_table} WHERE {ref_column} = ?', (item_id,)
            ).fetchone()[0]
            if in_use:
                return _result(False, 400, f'Item em uso por {in_use} arte(s)')
            cursor = conn.execute(f'DELETE FROM {table} WHERE id = ?', (item_id,))
            conn.commit()
            if cursor.rowcount == 0:
                return _result(False, 404, 'Item não encontrado')
            return _result(True, 200, 'Item excluído com sucesso')

    def seed_catalog(self, categories, formats, file_types, slugify) -> int:
        """Insert missing default catalog rows; returns how many were added"""
        added = 0
        with self.get_connection() as conn:
            for table, names in (('categories', categories), ('formats', formats), ('file_types', file_types)):
                for name in names:
                    cursor = conn.execute(
                        f'INSERT OR IGNORE INTO {table} (name, slug) VALUES (?, ?)', (name, slugify(name))
                    )
                    added += cursor.rowcount
            conn.commit()
        return added

    @staticmethod
    def _check_catalog_table(table):
        if table not in CATALOG_TABLES:
            raise ValueError(f'Unknown catalog table: {table}')

    # ------------------------------------------------------------- art groups

    def list_art_groups(self, page=1, limit=24, search=None, category_id=None, format_id=None,
                        designer_id=None, only_premium=False, show_invisible=False,
                        order_by='created_at', order='desc') -> Tuple[List[Dict], int]:
        conditions = []
        params = []

        if not show_invisible:
            conditions.append('ag.is_visible = 1')
        if category_id:
            conditions.append('ag.category_id = ?')
            params.append(category_id)
        if designer_id:
            conditions.append('ag.designer_id = ?')
            params.append(designer_id)
        if format_id:
            conditions.append('''EXISTS (
                SELECT 1 FROM art_variations av
                WHERE av.group_id = ag.id AND av.format_id = ?
            )''')
            params.append(format_id)
        if only_premium:
            conditions.append('ag.is_premium = 1')
        if search:
            conditions.append('(ag.title LIKE ? OR u.name LIKE ? OR u.username LIKE ?)')
            params.extend([f'%{search}%'] * 3)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ''
        order_column = ART_GROUP_ORDER_COLUMNS.get(order_by, 'ag.created_at')
        direction = 'ASC' if order == 'asc' else 'DESC'

        with self.get_connection() as conn:
            total = conn.execute(f'''
                SELECT COUNT(*) FROM art_groups ag
                LEFT JOIN users u ON ag.designer_id = u.id
                {where}
            ''', params).fetchone()[0]

            rows = conn.execute(f'''
                SELECT
                    ag.*,
                    u.name AS designer_name,
                    u.username AS designer_username,
                    u.profile_image_url AS designer_profile_image_url,
                    c.name AS category_name,
                    c.slug AS category_slug,
                    pv.id AS primary_variation_id,
                    COALESCE(pv.image_url, '') AS primary_image_url,
                    pv.aspect_ratio AS aspect_ratio
                FROM art_groups ag
                LEFT JOIN users u ON ag.designer_id = u.id
                LEFT JOIN categories c ON ag.category_id = c.id
                LEFT JOIN art_variations pv ON pv.group_id = ag.id AND pv.is_primary = 1
                {where}
                ORDER BY {order_column} {direction}, ag.id {direction}
                LIMIT ? OFFSET ?
            ''', params + [limit, (page - 1) * limit]).fetchall()

            return _to_dicts(rows), total

    def get_art_group(self, group_id):
        """Group with designer and category details, without variations"""
        with self.get_connection() as conn:
            row = conn.execute('''
                SELECT
                    ag.*,
                    u.name AS designer_name,
                    u.username AS designer_username,
                    u.profile_image_url AS designer_profile_image_url,
                    u.bio AS designer_bio,
                    c.name AS category_name,
                    c.slug AS category_slug
                FROM art_groups ag
                LEFT JOIN users u ON ag.designer_id = u.id
                LEFT JOIN categories c ON ag.category_id = c.id
                WHERE ag.id = ?
            ''', (group_id,)).fetchone()
            return _to_dict(row)

    def get_group_variations(self, group_id, conn=None) -> List[Dict]:
        query = '''
            SELECT
                av.*,
                f.name AS format_name,
                f.slug AS format_slug,
                ft.name AS file_type_name,
                ft.slug AS file_type_slug
            FROM art_variations av
            LEFT JOIN formats f ON av.format_id = f.id
            LEFT JOIN file_types ft ON av.file_type_id = ft.id
            WHERE av.group_id = ?
            ORDER BY av.is_primary DESC, av.created_at DESC, av.id DESC
        '''
        if conn is not None:
            return _to_dicts(conn.execute(query, (group_id,)).fetchall())
        with self.get_connection() as conn:
            return _to_dicts(conn.execute(query, (group_id,)).fetchall())

    def get_variation(self, group_id, variation_id):
        with self.get_connection() as conn:
            row = conn.execute(
                'SELECT * FROM art_variations WHERE id = ? AND group_id = ?', (variation_id, group_id)
            ).fetchone()
            return _to_dict(row)

    def increment_view_count(self, group_id):
        with self.get_connection() as conn:
            conn.execute('UPDATE art_groups SET view_count = view_count + 1 WHERE id = ?', (group_id,))
            conn.commit()

    def create_art_group(self, title, category_id, designer_id, format_id, file_type_id, image_url,
                         edit_url='', is_premium=False, width=None, height=None, aspect_ratio=None):
        """Create a group and its primary variation in one transaction"""
        with self.get_connection() as conn:
            try:
                cursor = conn.execute('''
                    INSERT INTO art_groups (title, category_id, designer_id, is_premium, is_visible)
                    VALUES (?, ?, ?, ?, 1)
                ''', (title, category_id, designer_id, int(bool(is_premium))))
                group_id = cursor.lastrowid

                conn.execute('''
                    INSERT INTO art_variations (
                        group_id, format_id, file_type_id, image_url, edit_url,
                        width, height, aspect_ratio, is_primary
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1)
                ''', (group_id, format_id, file_type_id, image_url, edit_url or '', width, height, aspect_ratio))

                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"❌ Error creating art group: {e}")
                return _result(False, 500, 'Erro ao criar grupo de arte')

        group = self.get_art_group(group_id)
        group['variations'] = self.get_group_variations(group_id)
        logger.info(f"✅ Created art group #{group_id}: {title}")
        return _result(True, 201, 'Grupo de arte criado com sucesso', group=group)

    def add_variation(self, group_id, format_id, file_type_id, image_url, edit_url='',
                      is_primary=False, width=None, height=None, aspect_ratio=None):
        with self.get_connection() as conn:
            try:
                if not conn.execute('SELECT id FROM art_groups WHERE id = ?', (group_id,)).fetchone():
                    return _result(False, 404, 'Grupo de arte não encontrado')

                duplicate = conn.execute(
                    'SELECT id FROM art_variations WHERE group_id = ? AND format_id = ?', (group_id, format_id)
                ).fetchone()
                if duplicate:
                    return _result(False, 400, 'Já existe uma variação com este formato para este grupo')

                has_primary = conn.execute(
                    'SELECT COUNT(*) FROM art_variations WHERE group_id = ? AND is_primary = 1', (group_id,)
                ).fetchone()[0]
                make_primary = bool(is_primary) or not has_primary

                if make_primary:
                    conn.execute('UPDATE art_variations SET is_primary = 0 WHERE group_id = ?', (group_id,))

                cursor = conn.execute('''
                    INSERT INTO art_variations (
                        group_id, format_id, file_type_id, image_url, edit_url,
                        width, height, aspect_ratio, is_primary
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', (group_id, format_id, file_type_id, image_url, edit_url or '',
                      width, height, aspect_ratio, int(make_primary)))
                variation_id = cursor.lastrowid

                conn.execute('UPDATE art_groups SET updated_at = ? WHERE id = ?', (now_str(), group_id))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"❌ Error adding variation to group {group_id}: {e}")
                return _result(False, 500, 'Erro ao adicionar variação')

        variation = self.get_variation(group_id, variation_id)
        return _result(True, 201, 'Variação adicionada com sucesso', variation=variation)

    def update_art_group(self, group_id, fields: Dict[str, Any]):
        """Update title/category/premium/visibility; returns the group or None if missing"""
        allowed = ('title', 'category_id', 'is_premium', 'is_visible')
        updates = {key: fields[key] for key in allowed if key in fields}
        assignments = [f'{key} = ?' for key in updates] + ['updated_at = ?']
        params = list(updates.values()) + [now_str(), group_id]

        with self.get_connection() as conn:
            cursor = conn.execute(f"UPDATE art_groups SET {', '.join(assignments)} WHERE id = ?", params)
            conn.commit()
            if cursor.rowcount == 0:
                return None
        return self.get_art_group(group_id)

    def set_primary_variation(self, group_id, variation_id):
        with self.get_connection() as conn:
            try:
                found = conn.execute(
                    'SELECT id FROM art_variations WHERE id = ? AND group_id = ?', (variation_id, group_id)
                ).fetchone()
                if not found:
                    return _result(False, 404, 'Variação não encontrada neste grupo')

                conn.execute('UPDATE art_variations SET is_primary = 0 WHERE group_id = ?', (group_id,))
                conn.execute('UPDATE art_variations SET is_primary = 1 WHERE id = ?', (variation_id,))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"❌ Error setting primary variation {variation_id}: {e}")
                return _result(False, 500, 'Erro ao definir variação como primária')
        return _result(True, 200, 'Variação definida como primária com sucesso')

    def delete_variation(self, group_id, variation_id):
        """Delete one variation, promoting the newest remaining one when it was primary"""
        with self.get_connection() as conn:
            try:
                variation = conn.execute(
                    'SELECT id, is_primary, image_url FROM art_variations WHERE id = ? AND group_id = ?',
                    (variation_id, group_id)
                ).fetchone()
                if not variation:
                    return _result(False, 404, 'Variação não encontrada neste grupo')

                count = conn.execute(
                    'SELECT COUNT(*) FROM art_variations WHERE group_id = ?', (group_id,)
                ).fetchone()[0]
                if count <= 1:
                    return _result(False, 400, 'Não é possível excluir a única variação de um grupo. '
                                               'Exclua o grupo inteiro se necessário.')

                conn.execute('DELETE FROM art_variations WHERE id = ?', (variation_id,))

                if variation['is_primary']:
                    conn.execute('''
                        UPDATE art_variations SET is_primary = 1
                        WHERE id = (
                            SELECT id FROM art_variations WHERE group_id = ?
                            ORDER BY created_at DESC, id DESC LIMIT 1
                        )
                    ''', (group_id,))

                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"❌ Error deleting variation {variation_id}: {e}")
                return _result(False, 500, 'Erro ao excluir variação')

        return _result(True, 200, 'Variação excluída com sucesso', image_urls=[variation['image_url']])

    def delete_art_group(self, group_id):
        with self.get_connection() as conn:
            try:
                image_urls = [row['image_url'] for row in conn.execute(
                    'SELECT image_url FROM art_variations WHERE group_id = ?', (group_id,)
                ).fetchall()]

                conn.execute('DELETE FROM downloads WHERE group_id = ?', (group_id,))
                conn.execute('DELETE FROM favorites WHERE group_id = ?', (group_id,))
                conn.execute('DELETE FROM art_variations WHERE group_id = ?', (group_id,))
                cursor = conn.execute('DELETE FROM art_groups WHERE id = ?', (group_id,))

                if cursor.rowcount == 0:
                    conn.rollback()
                    return _result(False, 404, 'Grupo de arte não encontrado')

                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"❌ Error deleting art group {group_id}: {e}")
                return _result(False, 500, 'Erro ao excluir grupo de arte')

        return _result(True, 200, 'Grupo de arte e suas variações excluídos com sucesso', image_urls=image_urls)

    def get_related_groups(self, group_id, limit=8):
        """Visible groups sharing category or designer; None when the group is missing"""
        with self.get_connection() as conn:
            group = conn.execute(
                'SELECT category_id, designer_id FROM art_groups WHERE id = ?', (group_id,)
            ).fetchone()
            if not group:
                return None

            rows = conn.execute('''
                SELECT
                    ag.*,
                    u.name AS designer_name,
                    u.username AS designer_username,
                    u.profile_image_url AS designer_profile_image_url,
                    c.name AS category_name,
                    c.slug AS category_slug,
                    pv.image_url AS primary_image_url,
                    pv.aspect_ratio AS aspect_ratio
                FROM art_groups ag
                LEFT JOIN users u ON ag.designer_id = u.id
                LEFT JOIN categories c ON ag.category_id = c.id
                LEFT JOIN art_variations pv ON pv.group_id = ag.id AND pv.is_primary = 1
                WHERE ag.id != ?
                  AND (ag.category_id = ? OR ag.designer_id = ?)
                  AND ag.is_visible = 1
                ORDER BY
                    CASE WHEN ag.category_id = ? AND ag.designer_id = ? THEN 1
                         WHEN ag.category_id = ? THEN 2
                         ELSE 3
                    END,
                    ag.created_at DESC, ag.id DESC
                LIMIT ?
            ''', (group_id, group['category_id'], group['designer_id'],
                  group['category_id'], group['designer_id'], group['category_id'], limit)).fetchall()
            return _to_dicts(rows)

    def record_download(self, user_id, group_id, variation_id) -> bool:
        with self.get_connection() as conn:
            try:
                conn.execute(
                    'INSERT INTO downloads (user_id, group_id, variation_id) VALUES (?, ?, ?)',
                    (user_id, group_id, variation_id)
                )
                conn.execute('UPDATE art_groups SET download_count = download_count + 1 WHERE id = ?', (group_id,))
                conn.commit()
                return True
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"❌ Error recording download: {e}")
                return False

    def toggle_favorite(self, user_id, group_id):
        """Add or remove a favorite and resync like_count; None on failure"""
        with self.get_connection() as conn:
            try:
                existing = conn.execute(
                    'SELECT id FROM favorites WHERE user_id = ? AND group_id = ?', (user_id, group_id)
                ).fetchone()
                if existing:
                    conn.execute('DELETE FROM favorites WHERE id = ?', (existing['id'],))
                else:
                    conn.execute('INSERT INTO favorites (user_id, group_id) VALUES (?, ?)', (user_id, group_id))

                conn.execute('''
                    UPDATE art_groups
                    SET like_count = (SELECT COUNT(*) FROM favorites WHERE group_id = ?)
                    WHERE id = ?
                ''', (group_id, group_id))
                like_count = conn.execute(
                    'SELECT like_count FROM art_groups WHERE id = ?', (group_id,)
                ).fetchone()[0]
                conn.commit()
                return {'favorited': not existing, 'like_count': like_count}
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"❌ Error toggling favorite: {e}")
                return None

    def get_user_favorites(self, user_id) -> List[Dict]:
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT ag.*, pv.image_url AS primary_image_url, f.created_at AS favorited_at
                FROM favorites f
                JOIN art_groups ag ON ag.id = f.group_id
                LEFT JOIN art_variations pv ON pv.group_id = ag.id AND pv.is_primary = 1
                WHERE f.user_id = ? AND ag.is_visible = 1
                ORDER BY f.created_at DESC, f.id DESC
            ''', (user_id,)).fetchall()
            return _to_dicts(rows)

    def get_user_downloads(self, user_id) -> List[Dict]:
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT d.id, d.group_id, d.variation_id, d.created_at AS downloaded_at,
                       ag.title, av.image_url, av.edit_url, f.name AS format_name
                FROM downloads d
                JOIN art_groups ag ON ag.id = d.group_id
                LEFT JOIN art_variations av ON av.id = d.variation_id
                LEFT JOIN formats f ON f.id = av.format_id
                WHERE d.user_id = ?
                ORDER BY d.created_at DESC, d.id DESC
            ''', (user_id,)).fetchall()
            return _to_dicts(rows)

    # ----------------------------------------------------------------- popups

    def list_popups(self) -> List[Dict]:
        with self.get_connection() as conn:
            return _to_dicts(conn.execute('SELECT * FROM popups ORDER BY created_at DESC, id DESC').fetchall())

    def get_popup(self, popup_id):
        with self.get_connection() as conn:
            return _to_dict(conn.execute('SELECT * FROM popups WHERE id = ?', (popup_id,)).fetchone())

    def create_popup(self, data: Dict[str, Any], created_by=None):
        fields = {key: data[key] for key in POPUP_FIELDS if key in data}
        fields['created_by'] = created_by
        columns = ', '.join(fields)
        placeholders = ', '.join('?' * len(fields))
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(f'INSERT INTO popups ({columns}) VALUES ({placeholders})', list(fields.values()))
                conn.commit()
                return cursor.lastrowid
            except sqlite3.Error as e:
                logger.error(f"❌ Error creating popup: {e}")
                return None

    def update_popup(self, popup_id, data: Dict[str, Any]) -> bool:
        fields = {key: data[key] for key in POPUP_FIELDS if key in data}
        assignments = [f'{key} = ?' for key in fields] + ['updated_at = ?']
        params = list(fields.values()) + [now_str(), popup_id]
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(f"UPDATE popups SET {', '.join(assignments)} WHERE id = ?", params)
                conn.commit()
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                logger.error(f"❌ Error updating popup {popup_id}: {e}")
                return False

    def delete_popup(self, popup_id) -> bool:
        with self.get_connection() as conn:
            try:
                conn.execute('DELETE FROM popup_views WHERE popup_id = ?', (popup_id,))
                cursor = conn.execute('DELETE FROM popups WHERE id = ?', (popup_id,))
                conn.commit()
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"❌ Error deleting popup {popup_id}: {e}")
                return False

    def get_active_popup_candidate(self, now, logged_in, is_premium):
        """Newest active popup for this audience whose window contains ``now``"""
        conditions = ['is_active = 1', 'start_date <= ?', 'end_date >= ?']
        if logged_in:
            conditions.append('show_to_logged_users = 1')
            if is_premium:
                conditions.append('show_to_premium_users = 1')
        else:
            conditions.append('show_to_guest_users = 1')

        with self.get_connection() as conn:
            row = conn.execute(f'''
                SELECT * FROM popups
                WHERE {' AND '.join(conditions)}
                ORDER BY created_at DESC, id DESC
                LIMIT 1
            ''', (now, now)).fetchone()
            return _to_dict(row)

    def count_popup_views(self, popup_id, user_id=None, session_id=None) -> int:
        if user_id is not None:
            column, value = 'user_id', user_id
        else:
            column, value = 'session_id', session_id
        with self.get_connection() as conn:
            return conn.execute(
                f'SELECT COUNT(*) FROM popup_views WHERE popup_id = ? AND {column} = ?', (popup_id, value)
            ).fetchone()[0]

    def record_popup_view(self, popup_id, action='view', user_id=None, session_id=None) -> bool:
        with self.get_connection() as conn:
            try:
                conn.execute(
                    'INSERT INTO popup_views (popup_id, user_id, session_id, action) VALUES (?, ?, ?, ?)',
                    (popup_id, user_id, session_id, action)
                )
                conn.commit()
                return True
            except sqlite3.Error as e:
                logger.error(f"❌ Error recording popup view: {e}")
                return False

    def get_popup_stats(self, popup_id) -> Dict[str, Any]:
        with self.get_connection() as conn:
            row = conn.execute('''
                SELECT
                    COALESCE(SUM(CASE WHEN action = 'view' THEN 1 ELSE 0 END), 0) AS total_views,
                    COALESCE(SUM(CASE WHEN action = 'click' THEN 1 ELSE 0 END), 0) AS total_clicks,
                    COALESCE(SUM(CASE WHEN action = 'dismiss' THEN 1 ELSE 0 END), 0) AS total_dismisses,
                    COUNT(DISTINCT user_id) AS unique_users,
                    COUNT(DISTINCT session_id) AS unique_sessions
                FROM popup_views
                WHERE popup_id = ?
            ''', (popup_id,)).fetchone()
            stats = dict(row)

        views = stats['total_views']
        stats['conversion_rate'] = round(stats['total_clicks'] / views * 100, 2) if views else 0
        return stats

    # ---------------------------------------------------------------- courses

    def list_modules(self, include_premium=False, include_inactive=False) -> List[Dict]:
        conditions = []
        if not include_premium:
            conditions.append('is_premium = 0')
        if not include_inactive:
            conditions.append('is_active = 1')
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ''
        with self.get_connection() as conn:
            modules = _to_dicts(conn.execute(
                f'SELECT * FROM course_modules {where} ORDER BY sort_order, id'
            ).fetchall())
        for module in modules:
            module['lessons'] = self.list_lessons(module['id'], include_premium)
        return modules

    def get_module(self, module_id, include_premium=True, include_inactive=True):
        with self.get_connection() as conn:
            module = _to_dict(conn.execute('SELECT * FROM course_modules WHERE id = ?', (module_id,)).fetchone())
        if not module:
            return None
        if (module['is_premium'] and not include_premium) or (not module['is_active'] and not include_inactive):
            return None
        module['lessons'] = self.list_lessons(module_id, include_premium)
        return module

    def create_module(self, data: Dict[str, Any], created_by=None):
        fields = {key: data[key] for key in MODULE_FIELDS if key in data}
        fields['created_by'] = created_by
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(
                    f"INSERT INTO course_modules ({', '.join(fields)}) VALUES ({', '.join('?' * len(fields))})",
                    list(fields.values())
                )
                conn.commit()
                return cursor.lastrowid
            except sqlite3.Error as e:
                logger.error(f"❌ Error creating module: {e}")
                return None

    def update_module(self, module_id, data: Dict[str, Any]) -> bool:
        fields = {key: data[key] for key in MODULE_FIELDS if key in data}
        assignments = [f'{key} = ?' for key in fields] + ['updated_at = ?']
        with self.get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE course_modules SET {', '.join(assignments)} WHERE id = ?",
                list(fields.values()) + [now_str(), module_id]
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete_module(self, module_id):
        with self.get_connection() as conn:
            if not conn.execute('SELECT id FROM course_modules WHERE id = ?', (module_id,)).fetchone():
                return _result(False, 404, 'Módulo não encontrado')
            lessons = conn.execute(
                'SELECT COUNT(*) FROM course_lessons WHERE module_id = ?', (module_id,)
            ).fetchone()[0]
            if lessons:
                return _result(False, 400, 'Não é possível excluir este módulo pois existem lições associadas a ele. '
                                           'Exclua as lições primeiro.')
            conn.execute('DELETE FROM course_modules WHERE id = ?', (module_id,))
            conn.commit()
        return _result(True, 200, 'Módulo excluído com sucesso')

    def list_lessons(self, module_id=None, include_premium=True) -> List[Dict]:
        conditions = []
        params = []
        if module_id is not None:
            conditions.append('module_id = ?')
            params.append(module_id)
        if not include_premium:
            conditions.append('is_premium = 0')
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ''
        with self.get_connection() as conn:
            return _to_dicts(conn.execute(
                f'SELECT * FROM course_lessons {where} ORDER BY module_id, sort_order, id', params
            ).fetchall())

    def get_lesson(self, lesson_id):
        with self.get_connection() as conn:
            row = conn.execute('''
                SELECT l.*, m.title AS module_title, m.is_premium AS module_is_premium
                FROM course_lessons l
                JOIN course_modules m ON m.id = l.module_id
                WHERE l.id = ?
            ''', (lesson_id,)).fetchone()
            lesson = _to_dict(row)
        if lesson:
            lesson['module_is_premium'] = bool(lesson['module_is_premium'])
        return lesson

    def create_lesson(self, data: Dict[str, Any], created_by=None):
        fields = {key: data[key] for key in LESSON_FIELDS if key in data}
        fields['created_by'] = created_by
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(
                    f"INSERT INTO course_lessons ({', '.join(fields)}) VALUES ({', '.join('?' * len(fields))})",
                    list(fields.values())
                )
                conn.commit()
                return cursor.lastrowid
            except sqlite3.Error as e:
                logger.error(f"❌ Error creating lesson: {e}")
                return None

    def update_lesson(self, lesson_id, data: Dict[str, Any]) -> bool:
        fields = {key: data[key] for key in LESSON_FIELDS if key in data}
        assignments = [f'{key} = ?' for key in fields] + ['updated_at = ?']
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(
                    f"UPDATE course_lessons SET {', '.join(assignments)} WHERE id = ?",
                    list(fields.values()) + [now_str(), lesson_id]
                )
                conn.commit()
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                logger.error(f"❌ Error updating lesson {lesson_id}: {e}")
                return False

    def delete_lesson(self, lesson_id) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM course_lessons WHERE id = ?', (lesson_id,))
            conn.commit()
            return cursor.rowcount > 0

    def upsert_progress(self, user_id, lesson_id, progress=None, is_completed=None, notes=None):
        with self.get_connection() as conn:
            existing = _to_dict(conn.execute(
                'SELECT * FROM course_progress WHERE user_id = ? AND lesson_id = ?', (user_id, lesson_id)
            ).fetchone())

            if existing:
                progress = existing['progress'] if progress is None else progress
                is_completed = existing['is_completed'] if is_completed is None else is_completed
                notes = existing['notes'] if notes is None else notes
            else:
                progress = progress or 0
                is_completed = bool(is_completed)

            if progress >= 100:
                is_completed = True

            conn.execute('''
                INSERT INTO course_progress (user_id, lesson_id, progress, is_completed, notes, last_watched_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, lesson_id) DO UPDATE SET
                    progress = excluded.progress,
                    is_completed = excluded.is_completed,
                    notes = excluded.notes,
                    last_watched_at = excluded.last_watched_at
            ''', (user_id, lesson_id, progress, int(bool(is_completed)), notes, now_str()))
            conn.commit()

            return _to_dict(conn.execute(
                'SELECT * FROM course_progress WHERE user_id = ? AND lesson_id = ?', (user_id, lesson_id)
            ).fetchone())

    def get_module_progress(self, user_id, module_id) -> List[Dict]:
        """Every lesson of the module paired with the user's progress"""
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT l.id AS lesson_id, l.title, l.sort_order, l.is_premium,
                       COALESCE(p.progress, 0) AS progress,
                       COALESCE(p.is_completed, 0) AS is_completed,
                       p.notes, p.last_watched_at
                FROM course_lessons l
                LEFT JOIN course_progress p ON p.lesson_id = l.id AND p.user_id = ?
                WHERE l.module_id = ?
                ORDER BY l.sort_order, l.id
            ''', (user_id, module_id)).fetchall()
            return _to_dicts(rows)

    def get_lesson_ratings(self, lesson_id) -> List[Dict]:
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT r.*, u.username, u.name
                FROM course_ratings r
                JOIN users u ON u.id = r.user_id
                WHERE r.lesson_id = ?
                ORDER BY r.created_at DESC, r.id DESC
            ''', (lesson_id,)).fetchall()
            return _to_dicts(rows)

    def rate_lesson(self, user_id, lesson_id, rating, comment=None):
        with self.get_connection() as conn:
            conn.execute('''
                INSERT INTO course_ratings (user_id, lesson_id, rating, comment)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, lesson_id) DO UPDATE SET
                    rating = excluded.rating,
                    comment = excluded.comment,
                    updated_at = ?
            ''', (user_id, lesson_id, rating, comment, now_str()))
            conn.commit()
            return _to_dict(conn.execute(
                'SELECT * FROM course_ratings WHERE user_id = ? AND lesson_id = ?', (user_id, lesson_id)
            ).fetchone())

    def delete_rating(self, user_id, lesson_id) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute(
                'DELETE FROM course_ratings WHERE user_id = ? AND lesson_id = ?', (user_id, lesson_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    # ---------------------------------------------------------- social growth

    def list_networks(self, user_id) -> List[Dict]:
        with self.get_connection() as conn:
            return _to_dicts(conn.execute(
                'SELECT * FROM social_networks WHERE user_id = ? ORDER BY platform, id', (user_id,)
            ).fetchall())

    def get_network(self, user_id, network_id):
        with self.get_connection() as conn:
            return _to_dict(conn.execute(
                'SELECT * FROM social_networks WHERE id = ? AND user_id = ?', (network_id, user_id)
            ).fetchone())

    def create_network(self, user_id, platform, username, profile_url=None, is_active=True):
        """Returns the id, None when the platform/username pair already exists"""
        with self.get_connection() as conn:
            try:
                cursor = conn.execute('''
                    INSERT INTO social_networks (user_id, platform, username, profile_url, is_active)
                    VALUES (?, ?, ?, ?, ?)
                ''', (user_id, platform, username, profile_url, int(bool(is_active))))
                conn.commit()
                return cursor.lastrowid
            except sqlite3.IntegrityError:
                return None

    def update_network(self, user_id, network_id, data: Dict[str, Any]):
        """Returns the updated network, None when missing, False on a duplicate"""
        fields = {key: data[key] for key in ('platform', 'username', 'profile_url', 'is_active') if key in data}
        assignments = [f'{key} = ?' for key in fields] + ['updated_at = ?']
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(
                    f"UPDATE social_networks SET {', '.join(assignments)} WHERE id = ? AND user_id = ?",
                    list(fields.values()) + [now_str(), network_id, user_id]
                )
                conn.commit()
            except sqlite3.IntegrityError:
                return False
            if cursor.rowcount == 0:
                return None
        return self.get_network(user_id, network_id)

    def delete_network(self, user_id, network_id) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute(
                'DELETE FROM social_networks WHERE id = ? AND user_id = ?', (network_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def upsert_growth_data(self, user_id, network_id, record_date, data: Dict[str, Any]):
        """Insert or update the record for (network, date); returns (record, created)"""
        fields = {key: data[key] for key in GROWTH_FIELDS if key in data}
        with self.get_connection() as conn:
            existing = conn.execute(
                'SELECT id FROM social_growth_data WHERE network_id = ? AND record_date = ?',
                (network_id, record_date)
            ).fetchone()

            if existing:
                assignments = [f'{key} = ?' for key in fields] + ['updated_at = ?']
                conn.execute(
                    f"UPDATE social_growth_data SET {', '.join(assignments)} WHERE id = ?",
                    list(fields.values()) + [now_str(), existing['id']]
                )
                record_id = existing['id']
            else:
                columns = ['network_id', 'user_id', 'record_date'] + list(fields)
                cursor = conn.execute(
                    f"INSERT INTO social_growth_data ({', '.join(columns)}) VALUES ({', '.join('?' * len(columns))})",
                    [network_id, user_id, record_date] + list(fields.values())
                )
                record_id = cursor.lastrowid
            conn.commit()

            record = _to_dict(conn.execute(
                'SELECT * FROM social_growth_data WHERE id = ?', (record_id,)
            ).fetchone())
            return record, not existing

    def get_growth_record(self, user_id, record_id):
        with self.get_connection() as conn:
            return _to_dict(conn.execute(
                'SELECT * FROM social_growth_data WHERE id = ? AND user_id = ?', (record_id, user_id)
            ).fetchone())

    def update_growth_data(self, user_id, record_id, data: Dict[str, Any]):
        fields = {key: data[key] for key in GROWTH_FIELDS + ('record_date',) if key in data}
        assignments = [f'{key} = ?' for key in fields] + ['updated_at = ?']
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(
                    f"UPDATE social_growth_data SET {', '.join(assignments)} WHERE id = ? AND user_id = ?",
                    list(fields.values()) + [now_str(), record_id, user_id]
                )
                conn.commit()
            except sqlite3.IntegrityError:
                return False
            if cursor.rowcount == 0:
                return None
        return self.get_growth_record(user_id, record_id)

    def delete_growth_data(self, user_id, record_id) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute(
                'DELETE FROM social_growth_data WHERE id = ? AND user_id = ?', (record_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def list_growth_data(self, user_id, network_id=None, since=None) -> List[Dict]:
        """Growth records joined with their network, newest first"""
        conditions = ['d.user_id = ?']
        params = [user_id]
        if network_id is not None:
            conditions.append('d.network_id = ?')
            params.append(network_id)
        if since:
            conditions.append('d.record_date >= ?')
            params.append(since)
        with self.get_connection() as conn:
            rows = conn.execute(f'''
                SELECT d.*, n.platform, n.username
                FROM social_growth_data d
                JOIN social_networks n ON n.id = d.network_id
                WHERE {' AND '.join(conditions)}
                ORDER BY d.record_date DESC, d.id DESC
            ''', params).fetchall()
            return _to_dicts(rows)

    def list_goals(self, user_id, active_only=True) -> List[Dict]:
        condition = 'AND g.is_active = 1' if active_only else ''
        with self.get_connection() as conn:
            rows = conn.execute(f'''
                SELECT g.*, n.platform, n.username
                FROM social_goals g
                JOIN social_networks n ON n.id = g.network_id
                WHERE g.user_id = ? {condition}
                ORDER BY g.deadline, g.id
            ''', (user_id,)).fetchall()
            return _to_dicts(rows)

    def get_goal(self, user_id, goal_id):
        with self.get_connection() as conn:
            return _to_dict(conn.execute(
                'SELECT * FROM social_goals WHERE id = ? AND user_id = ?', (goal_id, user_id)
            ).fetchone())

    def active_goal_exists(self, user_id, network_id, goal_type, exclude_id=None) -> bool:
        query = '''
            SELECT COUNT(*) FROM social_goals
            WHERE user_id = ? AND network_id = ? AND goal_type = ? AND is_active = 1
        '''
        params = [user_id, network_id, goal_type]
        if exclude_id is not None:
            query += ' AND id != ?'
            params.append(exclude_id)
        with self.get_connection() as conn:
            return conn.execute(query, params).fetchone()[0] > 0

    def create_goal(self, user_id, network_id, goal_type, target_value, deadline, description=None):
        with self.get_connection() as conn:
            try:
                cursor = conn.execute('''
                    INSERT INTO social_goals (user_id, network_id, goal_type, target_value, deadline, description)
                    VALUES (?, ?, ?, ?, ?, ?)
                ''', (user_id, network_id, goal_type, target_value, deadline, description))
                conn.commit()
                return cursor.lastrowid
            except sqlite3.Error as e:
                logger.error(f"❌ Error creating goal: {e}")
                return None

    def update_goal(self, user_id, goal_id, data: Dict[str, Any]):
        allowed = ('goal_type', 'target_value', 'deadline', 'description', 'is_active')
        fields = {key: data[key] for key in allowed if key in data}
        assignments = [f'{key} = ?' for key in fields] + ['updated_at = ?']
        with self.get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE social_goals SET {', '.join(assignments)} WHERE id = ? AND user_id = ?",
                list(fields.values()) + [now_str(), goal_id, user_id]
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
        return self.get_goal(user_id, goal_id)

    def delete_goal(self, user_id, goal_id) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM social_goals WHERE id = ? AND user_id = ?', (goal_id, user_id))
            conn.commit()
            return cursor.rowcount > 0

    def count_active_goals(self, user_id, today) -> int:
        with self.get_connection() as conn:
            return conn.execute('''
                SELECT COUNT(*) FROM social_goals
                WHERE user_id = ? AND is_active = 1 AND deadline >= ?
            ''', (user_id, today)).fetchone()[0]

    # ---------------------------------------------------------- subscriptions

    def list_product_mappings(self) -> List[Dict]:
        with self.get_connection() as conn:
            rows = conn.execute('SELECT * FROM product_mappings ORDER BY product_name, offer_id').fetchall()
            return _to_dicts(rows)

    def get_product_mapping(self, mapping_id):
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM product_mappings WHERE id = ?', (mapping_id,)).fetchone()
            return _to_dict(row)

    def find_product_mapping(self, product_id, offer_id=None):
        """The mapping for this exact offer, else the product-wide one (empty offer)"""
        if not product_id:
            return None
        with self.get_connection() as conn:
            row = conn.execute('''
                SELECT * FROM product_mappings
                WHERE product_id = ? AND offer_id IN (?, '')
                ORDER BY CASE WHEN offer_id = ? THEN 0 ELSE 1 END
                LIMIT 1
            ''', (str(product_id), offer_id or '', offer_id or '')).fetchone()
            return _to_dict(row)

    def create_product_mapping(self, data: Dict[str, Any]):
        """Returns the id, None when the product/offer pair is already mapped"""
        with self.get_connection() as conn:
            try:
                cursor = conn.execute('''
                    INSERT INTO product_mappings
                        (product_id, offer_id, product_name, plan_type, duration_days, is_lifetime)
                    VALUES (?, ?, ?, ?, ?, ?)
                ''', (data['product_id'], data.get('offer_id', ''), data['product_name'], data['plan_type'],
                      data.get('duration_days'), int(bool(data.get('is_lifetime')))))
                conn.commit()
                return cursor.lastrowid
            except sqlite3.IntegrityError:
                return None

    def update_product_mapping(self, mapping_id, data: Dict[str, Any]):
        """Returns the updated mapping, None when missing, False on a duplicate"""
        fields = {key: data[key] for key in PRODUCT_MAPPING_FIELDS if key in data}
        assignments = [f'{key} = ?' for key in fields] + ['updated_at = ?']
        with self.get_connection() as conn:
            try:
                cursor = conn.execute(
                    f"UPDATE product_mappings SET {', '.join(assignments)} WHERE id = ?",
                    list(fields.values()) + [now_str(), mapping_id]
                )
                conn.commit()
            except sqlite3.IntegrityError:
                return False
            if cursor.rowcount == 0:
                return None
        return self.get_product_mapping(mapping_id)

    def delete_product_mapping(self, mapping_id) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM product_mappings WHERE id = ?', (mapping_id,))
            conn.commit()
            return cursor.rowcount > 0

    def create_webhook_log(self, provider, event_type, email=None, transaction_id=None, payload_data=None,
                           source_ip=None) -> int:
        with self.get_connection() as conn:
            cursor = conn.execute('''
                INSERT INTO webhook_logs (provider, event_type, email, transaction_id, payload_data, source_ip)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (provider, event_type, email, transaction_id, payload_data, source_ip))
            conn.commit()
            return cursor.lastrowid

    def update_webhook_log(self, log_id, status, user_id=None, error_message=None) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute('''
                UPDATE webhook_logs SET status = ?, user_id = ?, error_message = ?, updated_at = ?
                WHERE id = ?
            ''', (status, user_id, error_message, now_str(), log_id))
            conn.commit()
            return cursor.rowcount > 0

    def get_webhook_log(self, log_id):
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM webhook_logs WHERE id = ?', (log_id,)).fetchone()
            return _to_dict(row)

    def list_webhook_logs(self, status=None, email=None, limit=50, offset=0) -> Tuple[List[Dict], int]:
        conditions = []
        params = []
        if status:
            conditions.append('status = ?')
            params.append(status)
        if email:
            conditions.append('email LIKE ?')
            params.append(f'%{email}%')
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ''

        with self.get_connection() as conn:
            total = conn.execute(f'SELECT COUNT(*) FROM webhook_logs {where}', params).fetchone()[0]
            rows = conn.execute(f'''
                SELECT id, provider, event_type, status, email, transaction_id, error_message,
                       user_id, source_ip, created_at, updated_at
                FROM webhook_logs {where}
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
            ''', params + [limit, offset]).fetchall()
            return _to_dicts(rows), total

    # ---------------------------------------------------------- activity logs

    def log_activity(self, user_id, action_type, action_description, target_type=None, target_id=None,
                     target_name=None, old_value=None, new_value=None, ip_address=None, user_agent=None,
                     username=None) -> bool:
        """Log an action performed through the API"""
        if username is None and user_id is not None:
            user = self.get_user_by_id(user_id)
            username = user['username'] if user else None

        with self.get_connection() as conn:
            try:
                conn.execute('''
                    INSERT INTO activity_logs
                    (user_id, username, action_type, action_description, target_type, target_id,
                     target_name, old_value, new_value, ip_address, user_agent)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', (user_id, username, action_type, action_description, target_type, target_id,
                      target_name, old_value, new_value, ip_address, user_agent))
                conn.commit()
                logger.debug(f"✅ Logged activity: {action_type} by {username}")
                return True
            except sqlite3.Error as e:
                logger.error(f"❌ Error logging activity: {e}")
                return False

    def get_activity_logs(self, user_id=None, action_type=None, start_date=None, end_date=None,
                          limit=100, offset=0) -> List[Dict]:
        """Get activity logs with optional filters"""
        where, params = self._activity_filters(user_id, action_type, start_date, end_date)
        query = f'SELECT * FROM activity_logs {where} ORDER BY created_at DESC, id DESC'
        if limit is not None:
            query += ' LIMIT ? OFFSET ?'
            params.extend([limit, offset])

        with self.get_connection() as conn:
            return _to_dicts(conn.execute(query, params).fetchall())

    def count_activity_logs(self, user_id=None, action_type=None, start_date=None, end_date=None) -> int:
        where, params = self._activity_filters(user_id, action_type, start_date, end_date)
        with self.get_connection() as conn:
            return conn.execute(f'SELECT COUNT(*) FROM activity_logs {where}', params).fetchone()[0]

    @staticmethod
    def _activity_filters(user_id, action_type, start_date, end_date):
        where = 'WHERE 1=1'
        params = []
        if user_id:
            where += ' AND user_id = ?'
            params.append(user_id)
        if action_type:
            where += ' AND action_type = ?'
            params.append(action_type)
        if start_date:
            where += ' AND date(created_at) >= date(?)'
            params.append(start_date)
        if end_date:
            where += ' AND date(created_at) <= date(?)'
            params.append(end_date)
        return where, params

    def get_action_types(self) -> List[str]:
        with self.get_connection() as conn:
            rows = conn.execute('SELECT DISTINCT action_type FROM activity_logs ORDER BY action_type').fetchall()
            return [row[0] for row in rows]

    def get_activity_stats(self, days: int = 30) -> Dict[str, Any]:
        """Get statistics about logged activities"""
        since = (datetime.now(timezone.utc) - timedelta(days=days)).strftime('%Y-%m-%d %H:%M:%S')
        with self.get_connection() as conn:
            total = conn.execute(
                'SELECT COUNT(*) FROM activity_logs WHERE created_at >= ?', (since,)
            ).fetchone()[0]

            by_type = conn.execute('''
                SELECT action_type, COUNT(*) AS count
                FROM activity_logs
                WHERE created_at >= ?
                GROUP BY action_type
                ORDER BY count DESC
            ''', (since,)).fetchall()

            by_user = conn.execute('''
                SELECT user_id, username, COUNT(*) AS count
                FROM activity_logs
                WHERE created_at >= ?
                GROUP BY user_id, username
                ORDER BY count DESC
                LIMIT 10
            ''', (since,)).fetchall()

            return {
                'total_activities': total,
                'by_type': [dict(row) for row in by_type],
                'by_user': [dict(row) for row in by_user]
            }

    # -------------------------------------------------------------- dashboard

    def get_dashboard_stats(self) -> Dict[str, Any]:
        since = (datetime.now(timezone.utc) - timedelta(days=30)).strftime('%Y-%m-%d %H:%M:%S')
        now = now_str()
        with self.get_connection() as conn:
            users_by_level = {
                row['nivelacesso']: row['count'] for row in conn.execute(
                    'SELECT nivelacesso, COUNT(*) AS count FROM users GROUP BY nivelacesso'
                ).fetchall()
            }
            stats = {
                'users_by_level': users_by_level,
                'total_users': sum(users_by_level.values()),
                'art_groups': conn.execute('SELECT COUNT(*) FROM art_groups').fetchone()[0],
                'art_variations': conn.execute('SELECT COUNT(*) FROM art_variations').fetchone()[0],
                'downloads_last_30_days': conn.execute(
                    'SELECT COUNT(*) FROM downloads WHERE created_at >= ?', (since,)
                ).fetchone()[0],
                'active_popups': conn.execute(
                    'SELECT COUNT(*) FROM popups WHERE is_active = 1 AND start_date <= ? AND end_date >= ?',
                    (now, now)
                ).fetchone()[0],
            }
            stats['top_groups'] = _to_dicts(conn.execute('''
                SELECT id, title, download_count, view_count, like_count
                FROM art_groups
                ORDER BY download_count DESC, view_count DESC, id
                LIMIT 5
            ''').fetchall())
            return stats


# Global database instance, bound by db.init_app(app)
db = Database()
