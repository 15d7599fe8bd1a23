"""Shared test case for the API tests.

Every test gets a fresh sqlite database and upload folder inside a temporary
directory, plus the default admin account (admin / admin123).

"""
import io
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from PIL import Image

from app import create_app
from database import db

PASSWORD = 'secret123'


def make_image(width=120, height=80, fmt='PNG', color=(200, 30, 30)):
    buffer = io.BytesIO()
    mode = 'RGBA' if fmt == 'PNG' else 'RGB'
    Image.new(mode, (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def upload(data=None, filename='art.png'):
    return (io.BytesIO(data or make_image()), filename)


def utc_offset(**kwargs):
    moment = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(**kwargs)
    return moment.strftime('%Y-%m-%d %H:%M:%S')


class BaseCase(unittest.TestCase):
    """Creates the sandbox app used by the API tests."""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp(prefix='designauto_')
        self.app = create_app({
            'TESTING': True,
            'SECRET_KEY': 'test-secret',
            'DATABASE_PATH': f'{self.tmp_dir}/test.db',
            'UPLOAD_FOLDER': f'{self.tmp_dir}/uploads',
            'STORAGE_BACKEND': 'local',
            'PUBLIC_UPLOADS_URL': '/uploads',
            'DEFAULT_ADMIN_USERNAME': 'admin',
            'DEFAULT_ADMIN_EMAIL': 'admin@example.com',
            'DEFAULT_ADMIN_PASSWORD': 'admin123',
            'HOTMART_SECRET': 'test-hottok',
        })
        self.client = self.app.test_client()
        self._admin_client = None

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    @property
    def admin_client(self):
        if self._admin_client is None:
            self._admin_client = self.login('admin', 'admin123')
        return self._admin_client

    def login(self, username, password=PASSWORD):
        client = self.app.test_client()
        response = client.post('/api/auth/login', json={'username': username, 'password': password})
        self.assertEqual(response.status_code, 200, response.get_json())
        return client

    def make_user(self, username, nivelacesso='usuario', password=PASSWORD, **extra):
        """Create a user directly in the database and return its row"""
        user_id = db.create_user(username, f'{username}@example.com', password,
                                 name=username.title(), nivelacesso=nivelacesso, **extra)
        return db.get_user_by_id(user_id)

    def login_as(self, username, nivelacesso='usuario', **extra):
        """A test client logged in as a fresh user of the given level"""
        self.make_user(username, nivelacesso, **extra)
        return self.login(username)

    def make_catalog(self):
        return {
            'category': db.create_catalog_item('categories', 'Vendas', 'vendas'),
            'other_category': db.create_catalog_item('categories', 'Lavagem', 'lavagem'),
            'feed': db.create_catalog_item('formats', 'Feed', 'feed'),
            'stories': db.create_catalog_item('formats', 'Stories', 'stories'),
            'canva': db.create_catalog_item('file_types', 'Canva', 'canva'),
        }
