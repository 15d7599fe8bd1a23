# storage.py - Image transcoding and object storage backends
import io
import os
import logging
import random
import time
from collections import namedtuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

ImageResult = namedtuple('ImageResult', [
    'data', 'width', 'height', 'aspect_ratio', 'format', 'original_size', 'optimized_size'
])

CONTENT_TYPES = {
    'webp': 'image/webp',
    'jpeg': 'image/jpeg',
    'jpg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
}


class InvalidImageError(ValueError):
    """Raised when uploaded bytes cannot be decoded as an image"""


class StorageError(RuntimeError):
    """Raised when an upload to the storage backend fails"""


def optimize_image(data, quality=85, max_width=None, fmt='webp'):
    """Decode ``data``, optionally shrink it to ``max_width`` and re-encode it.

    Returns an ``ImageResult`` with the encoded bytes and the final
    dimensions; ``aspect_ratio`` is kept as the ``"W/H"`` string stored on
    art variations.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            if fmt == 'jpeg' and img.mode != 'RGB':
                img = img.convert('RGB')
            elif img.mode not in ('RGB', 'RGBA'):
                img = img.convert('RGBA' if 'transparency' in img.info or img.mode in ('LA', 'PA') else 'RGB')

            if max_width and img.width > max_width:
                height = max(1, round(img.height * max_width / img.width))
                img = img.resize((max_width, height), Image.LANCZOS)

            output = io.BytesIO()
            if fmt == 'png':
                img.save(output, format='PNG', optimize=True)
            else:
                img.save(output, format=fmt.upper(), quality=quality)
            width, height = img.size
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(f'Imagem inválida: {e}')

    encoded = output.getvalue()
    logger.debug(f"🖼️ Optimized image {len(data)} -> {len(encoded)} bytes ({width}x{height})")
    return ImageResult(
        data=encoded,
        width=width,
        height=height,
        aspect_ratio=f'{width}/{height}',
        format=fmt,
        original_size=len(data),
        optimized_size=len(encoded)
    )


def make_object_key(folder, ext='webp'):
    """Unique key like ``designer/7/1718000000000-123456789.webp``"""
    filename = f"{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}.{ext}"
    return f"{folder.strip('/')}/{filename}" if folder else filename


class BaseStorage:
    name = 'base'

    def __init__(self, base_url):
        self.base_url = base_url.rstrip('/')

    def public_url(self, key):
        return f"{self.base_url}/{key}"

    def key_from_url(self, url):
        prefix = f"{self.base_url}/"
        if not url or not url.startswith(prefix):
            return None
        return url[len(prefix):] or None

    def upload(self, data, key, content_type='image/webp'):
        raise NotImplementedError

    def delete(self, url):
        key = self.key_from_url(url)
        if not key:
            logger.warning(f"⚠️ Not a {self.name} storage URL, skipping delete: {url}")
            return False
        return self._delete_key(key)

    def _delete_key(self, key):
        raise NotImplementedError

    def upload_image(self, result, folder):
        """Upload an ``ImageResult`` under ``folder`` and return its public URL"""
        key = make_object_key(folder, 'jpg' if result.format == 'jpeg' else result.format)
        return self.upload(result.data, key, CONTENT_TYPES.get(result.format, 'application/octet-stream'))


class LocalStorage(BaseStorage):
    """Files under UPLOAD_FOLDER, served by the /uploads route"""
    name = 'local'

    def __init__(self, root, base_url='/uploads'):
        super().__init__(base_url)
        self.root = root
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key):
        path = os.path.abspath(os.path.join(self.root, key))
        if not path.startswith(os.path.abspath(self.root) + os.sep):
            raise StorageError(f'Chave inválida: {key}')
        return path

    def upload(self, data, key, content_type='image/webp'):
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, 'wb') as f:
                f.write(data)
        except OSError as e:
            raise StorageError(str(e))
        logger.info(f"✅ Stored {key} ({len(data)} bytes)")
        return self.public_url(key)

    def _delete_key(self, key):
        try:
            os.remove(self._path(key))
            logger.info(f"🗑️ Deleted {key}")
            return True
        except (OSError, StorageError) as e:
            logger.error(f"❌ Error deleting {key}: {e}")
            return False


class R2Storage(BaseStorage):
    """Cloudflare R2 through its S3-compatible API"""
    name = 'r2'

    def __init__(self, account_id, access_key_id, secret_access_key, bucket, public_url, client=None):
        super().__init__(public_url)
        self.bucket = bucket
        self.client = client or boto3.client(
            's3',
            endpoint_url=f'https://{account_id}.r2.cloudflarestorage.com',
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(signature_version='s3v4'),
            region_name='auto'
        )

    def upload(self, data, key, content_type='image/webp'):
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"❌ R2 upload error for {key}: {e}")
            raise StorageError(str(e))
        logger.info(f"✅ Uploaded {key} to R2 ({len(data)} bytes)")
        return self.public_url(key)

    def _delete_key(self, key):
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            logger.info(f"🗑️ Deleted {key} from R2")
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"❌ R2 delete error for {key}: {e}")
            return False


def create_storage(config):
    backend = config.get('STORAGE_BACKEND', 'local')
    if backend == 'r2':
        if not (config.get('R2_ACCOUNT_ID') and config.get('R2_ACCESS_KEY_ID')
                and config.get('R2_SECRET_ACCESS_KEY') and config.get('R2_PUBLIC_URL')):
            raise RuntimeError('R2 credentials missing: set R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, '
                               'R2_SECRET_ACCESS_KEY and R2_PUBLIC_URL')
        return R2Storage(
            config['R2_ACCOUNT_ID'],
            config['R2_ACCESS_KEY_ID'],
            config['R2_SECRET_ACCESS_KEY'],
            config.get('R2_BUCKET_NAME', 'designauto-images'),
            config['R2_PUBLIC_URL']
        )
    if backend == 'local':
        return LocalStorage(config.get('UPLOAD_FOLDER', 'uploads'), config.get('PUBLIC_UPLOADS_URL', '/uploads'))
    raise RuntimeError(f'Unknown STORAGE_BACKEND: {backend}')


def get_storage(app):
    """Storage backend for ``app``, built on first use"""
    storage = app.extensions.get('storage')
    if storage is None:
        storage = create_storage(app.config)
        app.extensions['storage'] = storage
        logger.info(f"✅ Storage backend initialized: {storage.name}")
    return storage
