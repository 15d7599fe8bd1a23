import unittest
from unittest import mock

import requests

from api import routes_courses
from database import db
from tests.base import BaseCase


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f'{self.status} error')

    def json(self):
        return self.payload


class VideoUrlTest(unittest.TestCase):

    def test_youtube_video_id(self):
        self.assertEqual(routes_courses.youtube_video_id('https://youtu.be/dQw4w9WgXcQ'), 'dQw4w9WgXcQ')
        self.assertEqual(routes_courses.youtube_video_id('https://www.youtube.com/embed/dQw4w9WgXcQ?rel=0'),
                         'dQw4w9WgXcQ')
        self.assertIsNone(routes_courses.youtube_video_id('https://example.com/video'))


class CourseCase(BaseCase):

    def setUp(self):
        super().setUp()
        free = self.admin_client.post('/api/courses/modules', json={
            'title': 'Introdução', 'level': 'iniciante', 'sort_order': 2
        }).get_json()
        premium = self.admin_client.post('/api/courses/modules', json={
            'title': 'Avançado', 'level': 'avancado', 'sort_order': 1, 'is_premium': True
        }).get_json()
        self.free_module = free['id']
        self.premium_module = premium['id']

    def create_lesson(self, module_id, **overrides):
        payload = {
            'module_id': module_id,
            'title': 'Aula 1',
            'video_url': 'https://www.youtube.com/watch?v=dQw4w9WgXcQ',
            'video_provider': 'youtube',
        }
        payload.update(overrides)
        return self.admin_client.post('/api/courses/lessons', json=payload)


class ModuleTest(CourseCase):

    def test_module_validation(self):
        for payload in ({'title': ''}, {'title': 'X', 'level': 'expert'}, {'title': 'X', 'sort_order': 0}):
            self.assertEqual(self.admin_client.post('/api/courses/modules', json=payload).status_code, 400)
        student = self.login_as('aluno')
        self.assertEqual(student.post('/api/courses/modules', json={'title': 'X'}).status_code, 403)

    def test_premium_modules_are_hidden(self):
        self.create_lesson(self.free_module)
        self.create_lesson(self.premium_module, title='Segredos')

        public = self.client.get('/api/courses/modules').get_json()
        self.assertEqual([m['id'] for m in public], [self.free_module])
        self.assertEqual(len(public[0]['lessons']), 1)
        self.assertEqual(self.client.get(f'/api/courses/modules/{self.premium_module}').status_code, 404)

        subscriber = self.login_as('vip', 'premium')
        ordered = subscriber.get('/api/courses/modules').get_json()
        self.assertEqual([m['id'] for m in ordered], [self.premium_module, self.free_module])

        lessons = self.client.get('/api/courses/lessons').get_json()
        self.assertEqual([lesson['title'] for lesson in lessons], ['Aula 1'])
        hidden = self.client.get(f'/api/courses/lessons?module_id={self.premium_module}')
        self.assertEqual(hidden.status_code, 404)

    def test_inactive_modules_only_for_managers(self):
        self.admin_client.put(f'/api/courses/modules/{self.free_module}', json={'is_active': False})
        self.assertEqual(self.client.get('/api/courses/modules').get_json(), [])
        self.assertEqual(len(self.admin_client.get('/api/courses/modules').get_json()), 2)

    def test_delete_module_with_lessons(self):
        lesson = self.create_lesson(self.free_module).get_json()
        url = f'/api/courses/modules/{self.free_module}'
        self.assertEqual(self.admin_client.delete(url).status_code, 400)

        self.assertEqual(self.admin_client.delete(f"/api/courses/lessons/{lesson['id']}").status_code, 200)
        self.assertEqual(self.admin_client.delete(url).status_code, 200)
        self.assertEqual(self.admin_client.delete(url).status_code, 404)


class LessonTest(CourseCase):

    def test_premium_lesson_needs_access(self):
        lesson = self.create_lesson(self.free_module, is_premium=True).get_json()
        url = f"/api/courses/lessons/{lesson['id']}"
        self.assertEqual(self.client.get(url).status_code, 403)
        self.assertEqual(self.login_as('vip', 'premium').get(url).status_code, 200)
        self.assertEqual(self.client.get('/api/courses/lessons/999').status_code, 404)

    def test_lesson_creation_rules(self):
        self.assertEqual(self.create_lesson(999).status_code, 400)
        self.assertEqual(self.create_lesson(self.free_module, video_provider='dailymotion').status_code, 400)
        self.assertEqual(self.create_lesson(self.free_module, video_url='').status_code, 400)

        lesson = self.create_lesson(self.free_module).get_json()
        self.assertEqual(lesson['thumbnail_url'], 'https://img.youtube.com/vi/dQw4w9WgXcQ/hqdefault.jpg')

        custom = self.create_lesson(self.free_module, thumbnail_url='https://cdn.example.com/t.jpg').get_json()
        self.assertEqual(custom['thumbnail_url'], 'https://cdn.example.com/t.jpg')

    def test_vimeo_thumbnail_lookup(self):
        fake = FakeResponse({'thumbnail_url': 'https://i.vimeocdn.com/video/1.jpg'})
        with mock.patch.object(routes_courses.requests, 'get', return_value=fake) as fake_get:
            lesson = self.create_lesson(self.free_module, video_url='https://vimeo.com/76979871',
                                        video_provider='vimeo').get_json()

        self.assertEqual(lesson['thumbnail_url'], 'https://i.vimeocdn.com/video/1.jpg')
        self.assertEqual(fake_get.call_count, 1)
        self.assertEqual(fake_get.call_args.kwargs['params']['url'], 'https://vimeo.com/76979871')

    def test_vimeo_failure_leaves_thumbnail_empty(self):
        offline = requests.ConnectionError('offline')
        with mock.patch.object(routes_courses.requests, 'get', side_effect=offline):
            response = self.create_lesson(self.free_module, video_url='https://vimeo.com/1',
                                          video_provider='vimeo')
        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.get_json()['thumbnail_url'])


class ProgressAndRatingTest(CourseCase):

    def test_progress_tracking(self):
        first = self.create_lesson(self.free_module, sort_order=1).get_json()
        self.create_lesson(self.free_module, title='Aula 2', sort_order=2)
        student = self.login_as('aluno')
        url = f"/api/courses/lessons/{first['id']}/progress"

        response = student.put(url, json={'progress': 40, 'notes': 'ok'})
        self.assertIs(response.get_json()['is_completed'], False)

        record = student.put(url, json={'progress': 100}).get_json()
        self.assertIs(record['is_completed'], True)
        self.assertEqual(record['notes'], 'ok')

        self.assertEqual(student.put(url, json={'progress': 150}).status_code, 400)

        summary = student.get(f'/api/courses/modules/{self.free_module}/progress').get_json()
        self.assertEqual(summary['total_lessons'], 2)
        self.assertEqual(summary['completed_lessons'], 1)
        self.assertEqual(summary['percent'], 50)
        self.assertEqual(summary['lessons'][1]['progress'], 0)

    def test_ratings(self):
        lesson = self.create_lesson(self.free_module).get_json()
        url = f"/api/courses/lessons/{lesson['id']}/ratings"

        first = self.login_as('aluno1')
        second = self.login_as('aluno2')
        self.assertEqual(first.post(url, json={'rating': 6}).status_code, 400)
        first.post(url, json={'rating': 5, 'comment': 'Ótima'})
        first.post(url, json={'rating': 4})
        second.post(url, json={'rating': 3})

        body = self.client.get(url).get_json()
        self.assertEqual(body['count'], 2)
        self.assertEqual(body['average'], 3.5)

        self.assertEqual(second.delete(url).status_code, 200)
        self.assertEqual(second.delete(url).status_code, 404)
        self.assertEqual(db.get_lesson_ratings(lesson['id'])[0]['username'], 'aluno1')


if __name__ == '__main__':
    unittest.main()
