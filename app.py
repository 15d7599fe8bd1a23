# app.py - Application factory, upload serving and CLI commands
import os
import logging
from datetime import timedelta

import click
from flask import Flask, send_from_directory, abort

import config
from api import api_bp
from api.utils import slugify
from database import db
from storage import get_storage

logger = logging.getLogger(__name__)

CONFIG_KEYS = (
    'SECRET_KEY', 'MAX_CONTENT_LENGTH', 'DATABASE_PATH', 'LOG_LEVEL',
    'DEFAULT_ADMIN_USERNAME', 'DEFAULT_ADMIN_EMAIL', 'DEFAULT_ADMIN_PASSWORD',
    'STORAGE_BACKEND', 'UPLOAD_FOLDER', 'PUBLIC_UPLOADS_URL',
    'R2_ACCOUNT_ID', 'R2_ACCESS_KEY_ID', 'R2_SECRET_ACCESS_KEY', 'R2_BUCKET_NAME', 'R2_PUBLIC_URL',
    'IMAGE_QUALITY', 'POPUP_IMAGE_MAX_WIDTH',
    'ART_GROUPS_PAGE_SIZE', 'ART_GROUPS_MAX_PAGE_SIZE', 'RELATED_GROUPS_LIMIT', 'USERS_PAGE_SIZE', 'LOGS_PAGE_SIZE',
    'VIMEO_OEMBED_URL', 'HTTP_TIMEOUT_SECONDS', 'HOTMART_SECRET', 'WEBHOOK_LOGS_PAGE_SIZE',
)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_mapping({key: getattr(config, key) for key in CONFIG_KEYS})
    app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=config.SESSION_LIFETIME_DAYS)
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    db.init_app(app)

    # Register the API blueprint
    app.register_blueprint(api_bp)

    @app.route('/uploads/<path:filename>')
    def serve_upload(filename):
        """Serve files stored by the local storage backend"""
        if app.config['STORAGE_BACKEND'] != 'local':
            abort(404)
        return send_from_directory(os.path.abspath(app.config['UPLOAD_FOLDER']), filename)

    register_commands(app)
    logger.info(f"🚀 DesignAuto API ready (database: {app.config['DATABASE_PATH']}, "
                f"storage: {app.config['STORAGE_BACKEND']})")
    return app


def register_commands(app):
    @app.cli.command('init-db')
    def init_db_command():
        """Create tables and the default admin"""
        db.init_db()
        db.update_schema(
            admin_username=app.config['DEFAULT_ADMIN_USERNAME'],
            admin_email=app.config['DEFAULT_ADMIN_EMAIL'],
            admin_password=app.config['DEFAULT_ADMIN_PASSWORD']
        )
        get_storage(app)
        click.echo('✅ Database initialized')

    @app.cli.command('create-admin')
    @click.argument('username')
    @click.argument('email')
    @click.argument('password')
    def create_admin_command(username, email, password):
        """Create an admin account"""
        if len(password) < config.PASSWORD_MIN_LENGTH:
            raise click.ClickException(f'Password must have at least {config.PASSWORD_MIN_LENGTH} characters')
        user_id = db.create_user(username, email, password, name=username, nivelacesso='admin')
        if not user_id:
            raise click.ClickException('Username or email already exists')
        click.echo(f'✅ Admin {username} created (id {user_id})')

    @app.cli.command('seed-catalog')
    def seed_catalog_command():
        """Insert the default categories, formats and file types"""
        added = db.seed_catalog(config.DEFAULT_CATEGORIES, config.DEFAULT_FORMATS, config.DEFAULT_FILE_TYPES, slugify)
        click.echo(f'✅ {added} catalog item(s) added')

    @app.cli.command('expire-subscriptions')
    def expire_subscriptions_command():
        """Downgrade premium users whose subscription has expired"""
        count = db.expire_subscriptions()
        click.echo(f'✅ {count} subscription(s) expired')


if __name__ == '__main__':
    app = create_app()
    logger.info("📊 API: http://localhost:5000/api/health")
    app.run(debug=True, host='0.0.0.0', port=5000)
