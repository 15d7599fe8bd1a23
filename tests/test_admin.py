import io
import unittest

import pandas as pd

from database import db
from tests.base import BaseCase, utc_offset


class HealthTest(BaseCase):

    def test_health(self):
        body = self.client.get('/api/health').get_json()
        self.assertEqual(body, {'status': 'healthy', 'database': 'ok', 'storage': 'local'})

    def test_unknown_route_is_json(self):
        response = self.client.get('/api/nothing-here')
        self.assertEqual(response.status_code, 404)
        self.assertIs(response.get_json()['success'], False)


class AdminUsersTest(BaseCase):

    def test_list_users_with_filters(self):
        self.make_user('alice', 'premium')
        bob = self.make_user('bob')
        db.update_user_fields(bob['id'], {'is_active': 0})

        body = self.admin_client.get('/api/admin/users').get_json()
        self.assertEqual(body['pagination']['total'], 3)
        self.assertEqual(body['stats'], {'total_users': 3, 'active_users': 2, 'premium_users': 1, 'designers': 0})
        self.assertTrue(all('password_hash' not in user for user in body['users']))

        inactive = self.admin_client.get('/api/admin/users?status=inactive').get_json()
        self.assertEqual([u['username'] for u in inactive['users']], ['bob'])

        premium = self.admin_client.get('/api/admin/users?nivelacesso=premium').get_json()
        self.assertEqual([u['username'] for u in premium['users']], ['alice'])

        searched = self.admin_client.get('/api/admin/users?search=alice@').get_json()
        self.assertEqual(searched['pagination']['total'], 1)

        self.assertEqual(self.login_as('curious').get('/api/admin/users').status_code, 403)

    def test_support_can_manage_users(self):
        self.assertEqual(self.login_as('helpdesk', 'suporte').get('/api/admin/users').status_code, 200)

    def test_support_cannot_touch_privileged_accounts(self):
        support = self.login_as('helpdesk', 'suporte')
        me = db.list_users(search='helpdesk')[0][0]
        admin = db.list_users(nivelacesso='admin')[0][0]
        manager = self.make_user('chefe', 'designer_adm')

        self.assertEqual(support.patch(f"/api/admin/users/{me['id']}", json={'nivelacesso': 'admin'}).status_code, 403)
        self.assertEqual(db.get_user_by_id(me['id'])['nivelacesso'], 'suporte')
        self.assertEqual(support.delete(f"/api/admin/users/{admin['id']}").status_code, 403)
        self.assertIsNotNone(db.get_user_by_id(admin['id']))
        self.assertEqual(support.patch(f"/api/admin/users/{admin['id']}", json={'is_active': False}).status_code, 403)
        self.assertEqual(support.patch(f"/api/admin/users/{manager['id']}", json={'observacaoadmin': 'x'}).status_code,
                         403)
        reset = support.post(f"/api/admin/users/{admin['id']}/password", json={'new_password': 'takeover1'})
        self.assertEqual(reset.status_code, 403)
        self.assertIsNotNone(db.authenticate_user('admin', 'admin123'))

    def test_support_manages_regular_accounts(self):
        support = self.login_as('helpdesk', 'suporte')
        user = self.make_user('ivan')
        url = f"/api/admin/users/{user['id']}"

        self.assertEqual(support.patch(url, json={'nivelacesso': 'designer_adm'}).status_code, 403)
        self.assertEqual(support.patch(url, json={'nivelacesso': 'premium'}).status_code, 200)
        self.assertEqual(db.get_user_by_id(user['id'])['nivelacesso'], 'premium')
        self.assertEqual(support.delete(url).status_code, 200)

    def test_admin_grants_privileged_levels(self):
        user = self.make_user('julia')
        response = self.admin_client.patch(f"/api/admin/users/{user['id']}", json={'nivelacesso': 'designer_adm'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['nivelacesso'], 'designer_adm')

    def test_patch_only_accepts_admin_fields(self):
        user = self.make_user('carol')
        url = f"/api/admin/users/{user['id']}"

        self.assertEqual(self.admin_client.patch(url, json={'username': 'hacked'}).status_code, 400)
        self.assertEqual(self.admin_client.patch(url, json={'nivelacesso': 'superuser'}).status_code, 400)
        missing = self.admin_client.patch('/api/admin/users/999', json={'nivelacesso': 'premium'})
        self.assertEqual(missing.status_code, 404)

        expiry = utc_offset(days=30)
        response = self.admin_client.patch(url, json={
            'nivelacesso': 'premium', 'dataexpiracao': expiry, 'observacaoadmin': 'pagou via pix', 'name': 'ignored'
        })
        self.assertEqual(response.status_code, 200)
        updated = response.get_json()
        self.assertEqual(updated['nivelacesso'], 'premium')
        self.assertEqual(updated['dataexpiracao'], expiry)
        self.assertIs(updated['is_premium'], True)
        self.assertEqual(updated['name'], 'Carol')

        log = db.get_activity_logs(action_type='update_user')[0]
        self.assertEqual(log['target_id'], user['id'])
        self.assertEqual(log['username'], 'admin')

    def test_level_change_applies_to_existing_session(self):
        designer = self.login_as('dani', 'designer')
        self.assertEqual(designer.get('/api/admin/users').status_code, 403)

        dani = db.list_users(search='dani')[0][0]
        self.admin_client.patch(f"/api/admin/users/{dani['id']}", json={'nivelacesso': 'admin'})
        self.assertEqual(designer.get('/api/admin/users').status_code, 200)

    def test_delete_user(self):
        admin = db.list_users(nivelacesso='admin')[0][0]
        self.assertEqual(self.admin_client.delete(f"/api/admin/users/{admin['id']}").status_code, 400)

        user = self.make_user('dave')
        url = f"/api/admin/users/{user['id']}"
        self.assertEqual(self.admin_client.delete(url).status_code, 200)
        self.assertIsNone(db.get_user_by_id(user['id']))
        self.assertEqual(self.admin_client.delete(url).status_code, 404)

    def test_reset_password(self):
        user = self.make_user('erin')
        url = f"/api/admin/users/{user['id']}/password"
        self.assertEqual(self.admin_client.post(url, json={'new_password': '123'}).status_code, 400)
        self.assertEqual(self.admin_client.post(url, json={'new_password': 'brandnew1'}).status_code, 200)
        self.assertIsNotNone(db.authenticate_user('erin', 'brandnew1'))

    def test_export_users(self):
        self.make_user('frank', 'premium')

        csv_response = self.admin_client.get('/api/admin/users/export?format=csv&nivelacesso=premium')
        self.assertEqual(csv_response.status_code, 200)
        frame = pd.read_csv(io.BytesIO(csv_response.data), encoding='utf-8-sig')
        self.assertEqual(list(frame['username']), ['frank'])

        xlsx_response = self.admin_client.get('/api/admin/users/export?format=xlsx')
        self.assertEqual(xlsx_response.status_code, 200)
        self.assertEqual(len(pd.read_excel(io.BytesIO(xlsx_response.data))), 2)

        self.assertEqual(self.admin_client.get('/api/admin/users/export?format=pdf').status_code, 400)


class ActivityLogTest(BaseCase):

    def test_logs_and_export(self):
        admin = self.admin_client  # logs in before gina
        self.login_as('gina')

        body = admin.get('/api/admin/logs').get_json()
        self.assertEqual(body['pagination']['total'], 2)
        self.assertEqual(set(body['action_types']), {'login'})
        self.assertEqual(body['stats']['total_activities'], 2)

        filtered = admin.get('/api/admin/logs?action_type=login&user_id=1').get_json()
        self.assertEqual([log['username'] for log in filtered['logs']], ['admin'])

        export = admin.get('/api/admin/logs/export')
        self.assertEqual(export.status_code, 200)
        sheet = pd.read_excel(io.BytesIO(export.data), header=2)
        self.assertEqual(len(sheet), 2)
        self.assertIn('Tipo de ação', sheet.columns)

        self.assertEqual(self.login_as('designer1', 'designer').get('/api/admin/logs').status_code, 403)


class DashboardTest(BaseCase):

    def test_admin_dashboard(self):
        self.make_user('henry', 'premium')
        stats = self.admin_client.get('/api/admin/dashboard').get_json()
        self.assertEqual(stats['users_by_level'], {'admin': 1, 'premium': 1})
        self.assertEqual(stats['premium_users'], 1)
        self.assertEqual(stats['art_groups'], 0)
        self.assertEqual(stats['top_groups'], [])

    def test_cli_commands(self):
        runner = self.app.test_cli_runner()
        result = runner.invoke(args=['create-admin', 'root', 'root@example.com', 'rootpass'])
        self.assertIn('created', result.output)
        self.assertEqual(db.authenticate_user('root', 'rootpass')['nivelacesso'], 'admin')

        duplicate = runner.invoke(args=['create-admin', 'root', 'root@example.com', 'rootpass'])
        self.assertNotEqual(duplicate.exit_code, 0)

        self.assertIn('subscription(s) expired', runner.invoke(args=['expire-subscriptions']).output)


if __name__ == '__main__':
    unittest.main()
