"""Image transcoding and storage backends."""
import io
import os
import re
import shutil
import tempfile
import unittest

from botocore.exceptions import ClientError
from PIL import Image

from storage import (
    optimize_image, make_object_key, LocalStorage, R2Storage, create_storage,
    InvalidImageError, StorageError
)
from tests.base import make_image


class FakeS3Client:
    def __init__(self, fail=False):
        self.fail = fail
        self.objects = {}
        self.deleted = []

    def put_object(self, Bucket, Key, Body, ContentType):
        if self.fail:
            raise ClientError({'Error': {'Code': '500', 'Message': 'boom'}}, 'PutObject')
        self.objects[Key] = (Bucket, Body, ContentType)

    def delete_object(self, Bucket, Key):
        self.deleted.append(Key)


class OptimizeImageTest(unittest.TestCase):

    def test_converts_to_webp(self):
        result = optimize_image(make_image(300, 200))
        self.assertEqual(result.format, 'webp')
        self.assertEqual((result.width, result.height), (300, 200))
        self.assertEqual(result.aspect_ratio, '300/200')
        self.assertEqual(Image.open(io.BytesIO(result.data)).format, 'WEBP')

    def test_resizes_proportionally(self):
        result = optimize_image(make_image(1600, 900, fmt='JPEG'), max_width=800)
        self.assertEqual((result.width, result.height), (800, 450))

    def test_keeps_small_images(self):
        self.assertEqual(optimize_image(make_image(400, 300), max_width=800).width, 400)

    def test_rejects_garbage(self):
        with self.assertRaises(InvalidImageError):
            optimize_image(b'not an image')

    def test_make_object_key(self):
        self.assertTrue(re.match(r'^designer/7/\d+-\d+\.webp$', make_object_key('designer/7')))


class LocalStorageTest(unittest.TestCase):

    def setUp(self):
        self.root = tempfile.mkdtemp(prefix='storage_')

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def test_upload_and_delete(self):
        storage = LocalStorage(self.root, '/uploads')
        url = storage.upload(b'abc', 'popups/a.webp')
        self.assertEqual(url, '/uploads/popups/a.webp')

        path = os.path.join(self.root, 'popups', 'a.webp')
        with open(path, 'rb') as f:
            self.assertEqual(f.read(), b'abc')

        self.assertTrue(storage.delete(url))
        self.assertFalse(os.path.exists(path))

    def test_ignores_foreign_urls(self):
        storage = LocalStorage(self.root, '/uploads')
        self.assertFalse(storage.delete('https://elsewhere.example.com/x.webp'))

    def test_rejects_path_traversal(self):
        storage = LocalStorage(os.path.join(self.root, 'root'), '/uploads')
        with self.assertRaises(StorageError):
            storage.upload(b'x', '../escape.webp')

    def test_create_storage_local(self):
        storage = create_storage({'STORAGE_BACKEND': 'local', 'UPLOAD_FOLDER': self.root})
        self.assertEqual(storage.name, 'local')


class R2StorageTest(unittest.TestCase):

    def test_uses_public_url_prefix(self):
        client = FakeS3Client()
        storage = R2Storage('acc', 'key', 'secret', 'bucket', 'https://cdn.example.com/', client=client)

        url = storage.upload(b'data', 'designer/1/a.webp')
        self.assertEqual(url, 'https://cdn.example.com/designer/1/a.webp')
        self.assertEqual(client.objects['designer/1/a.webp'], ('bucket', b'data', 'image/webp'))

        self.assertTrue(storage.delete(url))
        self.assertEqual(client.deleted, ['designer/1/a.webp'])
        self.assertFalse(storage.delete('https://other.example.com/designer/1/a.webp'))
        self.assertEqual(client.deleted, ['designer/1/a.webp'])

    def test_upload_failure_raises(self):
        storage = R2Storage('acc', 'key', 'secret', 'bucket', 'https://cdn.example.com',
                            client=FakeS3Client(fail=True))
        with self.assertRaises(StorageError):
            storage.upload(b'data', 'a.webp')

    def test_create_storage_requires_credentials(self):
        with self.assertRaises(RuntimeError):
            create_storage({'STORAGE_BACKEND': 'r2', 'R2_ACCOUNT_ID': 'acc'})


if __name__ == '__main__':
    unittest.main()
