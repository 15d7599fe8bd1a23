import unittest
from datetime import date, datetime, timedelta

from api.analytics import growth_analytics, goal_current_value, goal_progress, period_start
from tests.base import BaseCase

NETWORKS = [
    {'id': 1, 'platform': 'instagram', 'username': 'loja'},
    {'id': 2, 'platform': 'tiktok', 'username': 'loja_tt'},
]


def record(record_id, network_id, record_date, followers, sales=0, likes=0, comments=0):
    return {
        'id': record_id, 'network_id': network_id, 'record_date': record_date, 'followers': followers,
        'average_likes': likes, 'average_comments': comments, 'sales_from_platform': sales
    }


RECORDS = [
    record(1, 1, '2024-01-10', 100, sales=2),
    record(2, 1, '2024-02-10', 150, sales=3, likes=10, comments=2),
    record(3, 2, '2024-01-15', 50),
    record(4, 2, '2024-02-20', 50, sales=1),
    record(5, 1, '2024-02-25', 200, likes=20, comments=4),
]


class AnalyticsTest(unittest.TestCase):

    def test_growth_uses_latest_record_per_network(self):
        analytics = growth_analytics(NETWORKS, RECORDS, active_goals=2)

        self.assertEqual(analytics['total_networks'], 2)
        self.assertEqual(analytics['total_followers'], 250)
        self.assertEqual(analytics['total_sales'], 6)
        self.assertEqual(analytics['active_goals'], 2)
        self.assertEqual(analytics['growth_trend'], [
            {'month': '2024-01', 'followers': 150, 'sales': 2},
            {'month': '2024-02', 'followers': 250, 'sales': 4},
        ])
        self.assertEqual(analytics['monthly_growth'], 66.67)
        self.assertEqual([p['platform'] for p in analytics['platforms']], ['instagram', 'tiktok'])
        self.assertEqual(analytics['platform_specific']['instagram'], 200)
        self.assertEqual(analytics['platform_specific']['youtube'], 0)

    def test_growth_without_records(self):
        analytics = growth_analytics(NETWORKS, [])
        self.assertEqual(analytics['total_followers'], 0)
        self.assertEqual(analytics['monthly_growth'], 0)
        self.assertEqual(analytics['growth_trend'], [])

    def test_goal_current_value(self):
        now = datetime(2024, 3, 1)
        network_records = [r for r in RECORDS if r['network_id'] == 1]
        self.assertEqual(goal_current_value('followers', network_records, now), 200)
        self.assertEqual(goal_current_value('sales', network_records, now), 5)
        self.assertEqual(goal_current_value('engagement', network_records, now), 18)
        self.assertEqual(goal_current_value('followers', [], now), 0)

    def test_goal_progress(self):
        now = datetime(2024, 3, 1, 12)
        goal = goal_progress({'deadline': '2024-03-11', 'target_value': 1000}, 200, now)
        self.assertEqual(goal['progress'], 20.0)
        self.assertEqual(goal['days_remaining'], 10)
        self.assertIs(goal['needs_attention'], True)

        reached = goal_progress({'deadline': '2024-03-11', 'target_value': 100}, 250, now)
        self.assertEqual(reached['progress'], 100)
        self.assertIs(reached['needs_attention'], False)

        overdue = goal_progress({'deadline': '2024-02-01', 'target_value': 1000}, 10, now)
        self.assertLess(overdue['days_remaining'], 0)
        self.assertIs(overdue['needs_attention'], False)

    def test_period_start(self):
        self.assertEqual(period_start(6, date(2024, 8, 31)), '2024-02-29')


class SocialGrowthTest(BaseCase):

    def setUp(self):
        super().setUp()
        self.owner = self.login_as('influencer')
        response = self.owner.post('/api/social-growth/networks', json={'platform': 'instagram', 'username': '@loja'})
        self.assertEqual(response.status_code, 201)
        self.network_id = response.get_json()['id']

    def add_data(self, record_date, followers, network_id=None, **extra):
        payload = dict(network_id=network_id or self.network_id, record_date=record_date, followers=followers, **extra)
        return self.owner.post('/api/social-growth/data', json=payload)

    def test_network_crud(self):
        self.assertEqual(self.owner.get('/api/social-growth/networks').get_json()[0]['username'], 'loja')
        duplicate = self.owner.post('/api/social-growth/networks', json={'platform': 'instagram', 'username': 'loja'})
        self.assertEqual(duplicate.status_code, 400)
        unknown = self.owner.post('/api/social-growth/networks', json={'platform': 'orkut', 'username': 'x'})
        self.assertEqual(unknown.status_code, 400)

        url = f'/api/social-growth/networks/{self.network_id}'
        stranger = self.login_as('stranger')
        self.assertEqual(stranger.put(url, json={'username': 'x'}).status_code, 404)
        self.assertEqual(stranger.delete(url).status_code, 404)

        updated = self.owner.put(url, json={'profile_url': 'https://instagram.com/loja'})
        self.assertEqual(updated.get_json()['profile_url'], 'https://instagram.com/loja')

    def test_growth_data_upsert(self):
        today = date.today().isoformat()

        created = self.add_data(today, 1000, sales_from_platform=3)
        self.assertEqual(created.status_code, 201)
        updated = self.add_data(today, 1200, sales_from_platform=3)
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.get_json()['id'], created.get_json()['id'])
        self.assertEqual(updated.get_json()['followers'], 1200)

        history = self.owner.get('/api/social-growth/history').get_json()
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]['platform'], 'instagram')

        record_id = created.get_json()['id']
        stranger = self.login_as('stranger')
        payload = {'network_id': self.network_id, 'record_date': today, 'followers': 1}
        self.assertEqual(stranger.post('/api/social-growth/data', json=payload).status_code, 404)
        self.assertEqual(stranger.get(f'/api/social-growth/data/{self.network_id}').status_code, 404)
        self.assertEqual(stranger.delete(f'/api/social-growth/data/{record_id}').status_code, 404)
        self.assertEqual(self.owner.delete(f'/api/social-growth/data/{record_id}').status_code, 200)

    def test_analytics_endpoint(self):
        tiktok = self.owner.post('/api/social-growth/networks', json={
            'platform': 'tiktok', 'username': 'loja'
        }).get_json()['id']
        yesterday = (date.today() - timedelta(days=1)).isoformat()
        today = date.today().isoformat()
        self.add_data(yesterday, 900)
        self.add_data(today, 1000, sales_from_platform=4)
        self.add_data(today, 500, network_id=tiktok)

        analytics = self.owner.get('/api/social-growth/analytics?period=3').get_json()
        self.assertEqual(analytics['total_networks'], 2)
        self.assertEqual(analytics['total_followers'], 1500)
        self.assertEqual(analytics['total_sales'], 4)
        self.assertEqual(analytics['platforms'][0]['platform'], 'instagram')
        self.assertEqual(analytics['period'], 3)

    def test_goals(self):
        self.add_data(date.today().isoformat(), 500)
        deadline = (date.today() + timedelta(days=20)).isoformat()
        payload = {'network_id': self.network_id, 'goal_type': 'followers', 'target_value': 1000,
                   'deadline': deadline}

        created = self.owner.post('/api/social-growth/goals', json=payload)
        self.assertEqual(created.status_code, 201)
        goal = created.get_json()
        self.assertEqual(goal['current_value'], 500)
        self.assertEqual(goal['progress'], 50.0)
        self.assertIs(goal['needs_attention'], True)

        self.assertEqual(self.owner.post('/api/social-growth/goals', json=payload).status_code, 400)
        zero_target = dict(payload, goal_type='sales', target_value=0)
        self.assertEqual(self.owner.post('/api/social-growth/goals', json=zero_target).status_code, 400)
        stranger = self.login_as('stranger')
        self.assertEqual(stranger.post('/api/social-growth/goals', json=payload).status_code, 404)

        goals = self.owner.get('/api/social-growth/goals').get_json()
        self.assertEqual([g['id'] for g in goals], [goal['id']])

        self.owner.put(f"/api/social-growth/goals/{goal['id']}", json={'is_active': False})
        self.assertEqual(self.owner.get('/api/social-growth/goals').get_json(), [])
        self.assertEqual(self.owner.post('/api/social-growth/goals', json=payload).status_code, 201)

    def test_empty_dates_are_rejected(self):
        self.assertEqual(self.add_data('', 100).status_code, 400)
        missing = self.owner.post('/api/social-growth/data', json={'network_id': self.network_id, 'followers': 1})
        self.assertEqual(missing.status_code, 400)

        record_id = self.add_data(date.today().isoformat(), 100).get_json()['id']
        response = self.owner.put(f'/api/social-growth/data/{record_id}', json={'record_date': ''})
        self.assertEqual(response.status_code, 400)
        self.assertIn('record_date', response.get_json()['message'])

        deadline = (date.today() + timedelta(days=20)).isoformat()
        goal = self.owner.post('/api/social-growth/goals', json={
            'network_id': self.network_id, 'goal_type': 'followers', 'target_value': 1000, 'deadline': deadline
        }).get_json()
        response = self.owner.put(f"/api/social-growth/goals/{goal['id']}", json={'deadline': ''})
        self.assertEqual(response.status_code, 400)
        self.assertIn('deadline', response.get_json()['message'])
        self.assertEqual(self.owner.get('/api/social-growth/goals').get_json()[0]['deadline'], deadline)


if __name__ == '__main__':
    unittest.main()
