import unittest
from datetime import datetime

from api.subscriptions import extract_purchase, process_hotmart_event
from database import db
from tests.base import BaseCase

NOW = datetime(2024, 5, 1, 12, 0, 0)


def hotmart_event(event='PURCHASE_APPROVED', email='cliente@example.com', transaction='HP123',
                  product_id=1001, offer='oferta1', subscriber_code='SUB1'):
    return {
        'event': event,
        'data': {
            'buyer': {'email': email, 'name': 'Cliente Teste'},
            'product': {'id': product_id, 'name': 'DesignAuto'},
            'purchase': {'transaction': transaction, 'offer': {'code': offer}},
            'subscription': {'subscriber': {'code': subscriber_code}},
        },
    }


class ExtractPurchaseTest(unittest.TestCase):

    def test_reads_nested_fields(self):
        purchase = extract_purchase(hotmart_event(email=' Cliente@Example.com '))
        self.assertEqual(purchase['event'], 'PURCHASE_APPROVED')
        self.assertEqual(purchase['email'], 'cliente@example.com')
        self.assertEqual(purchase['transaction'], 'HP123')
        self.assertEqual(purchase['subscriber_code'], 'SUB1')
        self.assertEqual(purchase['product_id'], '1001')
        self.assertEqual(purchase['offer_id'], 'oferta1')

    def test_flat_subscription_payload(self):
        purchase = extract_purchase({'event': 'subscription_cancellation',
                                     'subscriber': {'email': 'a@b.com', 'code': 'SUB9'}})
        self.assertEqual(purchase['event'], 'SUBSCRIPTION_CANCELLATION')
        self.assertEqual(purchase['email'], 'a@b.com')
        self.assertEqual(purchase['subscriber_code'], 'SUB9')
        self.assertIsNone(purchase['transaction'])


class SubscriptionProcessingTest(BaseCase):

    def test_purchase_creates_premium_user(self):
        outcome = process_hotmart_event(hotmart_event(), now=NOW)
        self.assertEqual(outcome['status'], 'processed')

        user = db.get_user_by_email('cliente@example.com')
        self.assertEqual(user['id'], outcome['user_id'])
        self.assertTrue(user['username'].startswith('cliente_'))
        self.assertEqual(user['nivelacesso'], 'premium')
        self.assertEqual(user['tipoplano'], 'anual')
        self.assertEqual(user['origemassinatura'], 'hotmart')
        self.assertEqual(user['codigoassinante'], 'SUB1')
        self.assertEqual(user['dataassinatura'], '2024-05-01 12:00:00')
        self.assertEqual(user['dataexpiracao'], '2025-05-01 12:00:00')

    def test_mapped_product_sets_plan(self):
        db.create_product_mapping({'product_id': '1001', 'offer_id': '', 'product_name': 'Mensal',
                                   'plan_type': 'mensal', 'duration_days': 30})
        db.create_product_mapping({'product_id': '1001', 'offer_id': 'vip', 'product_name': 'Vitalício',
                                   'plan_type': 'vitalicio', 'is_lifetime': True})

        process_hotmart_event(hotmart_event(email='mensal@example.com'), now=NOW)
        monthly = db.get_user_by_email('mensal@example.com')
        self.assertEqual(monthly['tipoplano'], 'mensal')
        self.assertEqual(monthly['dataexpiracao'], '2024-05-31 12:00:00')

        process_hotmart_event(hotmart_event(email='vip@example.com', offer='vip'), now=NOW)
        lifetime = db.get_user_by_email('vip@example.com')
        self.assertEqual(lifetime['tipoplano'], 'vitalicio')
        self.assertIs(lifetime['acessovitalicio'], True)
        self.assertIsNone(lifetime['dataexpiracao'])

    def test_renewal_extends_remaining_time(self):
        user = self.make_user('renova', 'premium', dataexpiracao='2024-05-11 12:00:00')
        process_hotmart_event(hotmart_event(email='renova@example.com'), now=NOW)

        renewed = db.get_user_by_id(user['id'])
        self.assertEqual(renewed['dataexpiracao'], '2025-05-11 12:00:00')
        self.assertEqual(renewed['dataassinatura'], '2024-05-01 12:00:00')

    def test_purchase_keeps_staff_level(self):
        designer = self.make_user('artista', 'designer')
        process_hotmart_event(hotmart_event(email='artista@example.com'), now=NOW)
        self.assertEqual(db.get_user_by_id(designer['id'])['nivelacesso'], 'designer')

        free = self.make_user('gratis')
        db.update_user_fields(free['id'], {'is_active': 0})
        process_hotmart_event(hotmart_event(email='gratis@example.com'), now=NOW)
        upgraded = db.get_user_by_id(free['id'])
        self.assertEqual(upgraded['nivelacesso'], 'premium')
        self.assertIs(upgraded['is_active'], True)

    def test_cancellation_needs_matching_transaction(self):
        process_hotmart_event(hotmart_event(), now=NOW)

        other = process_hotmart_event(hotmart_event('PURCHASE_REFUNDED', transaction='HP999',
                                                    subscriber_code='SUB9'), now=NOW)
        self.assertEqual(other['status'], 'ignored')
        self.assertEqual(db.get_user_by_email('cliente@example.com')['nivelacesso'], 'premium')

        cancelled = process_hotmart_event(hotmart_event('SUBSCRIPTION_CANCELLATION'), now=NOW)
        self.assertEqual(cancelled['status'], 'processed')
        user = db.get_user_by_email('cliente@example.com')
        self.assertEqual(user['nivelacesso'], 'usuario')
        self.assertEqual(user['dataexpiracao'], '2024-05-01 12:00:00')

    def test_other_events(self):
        self.assertEqual(process_hotmart_event(hotmart_event('PURCHASE_DELAYED'))['status'], 'ignored')
        self.assertEqual(process_hotmart_event(hotmart_event('CLUB_FIRST_ACCESS'))['status'], 'ignored')
        self.assertEqual(process_hotmart_event(hotmart_event('PURCHASE_CANCELED', email='x@y.com'))['status'],
                         'ignored')
        self.assertEqual(process_hotmart_event({'data': {}})['status'], 'error')
        self.assertEqual(process_hotmart_event(hotmart_event(email=None))['status'], 'error')
        self.assertIsNone(db.get_user_by_email('cliente@example.com'))


class HotmartWebhookTest(BaseCase):

    def post_event(self, payload, token='test-hottok'):
        headers = {'X-Hotmart-Hottok': token} if token else {}
        return self.client.post('/api/webhooks/hotmart', json=payload, headers=headers)

    def test_valid_event_is_processed_and_logged(self):
        response = self.post_event(hotmart_event())
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body['status'], 'processed')

        log = db.get_webhook_log(body['log_id'])
        self.assertEqual(log['status'], 'processed')
        self.assertEqual(log['event_type'], 'PURCHASE_APPROVED')
        self.assertEqual(log['email'], 'cliente@example.com')
        self.assertEqual(log['transaction_id'], 'HP123')
        self.assertEqual(log['user_id'], db.get_user_by_email('cliente@example.com')['id'])

    def test_token_in_body(self):
        payload = dict(hotmart_event(), hottok='test-hottok')
        response = self.post_event(payload, token=None)
        self.assertEqual(response.status_code, 200)
        self.assertNotIn('hottok', db.get_webhook_log(response.get_json()['log_id'])['payload_data'])

    def test_invalid_token_is_rejected_but_logged(self):
        self.assertEqual(self.post_event(hotmart_event(), token='wrong').status_code, 401)
        self.assertEqual(self.post_event(hotmart_event(), token=None).status_code, 401)
        self.assertIsNone(db.get_user_by_email('cliente@example.com'))

        logs, total = db.list_webhook_logs(status='error')
        self.assertEqual(total, 2)
        self.assertEqual(logs[0]['error_message'], 'Token inválido')

    def test_missing_secret(self):
        self.app.config['HOTMART_SECRET'] = ''
        self.assertEqual(self.post_event(hotmart_event()).status_code, 503)

    def test_bad_payload(self):
        response = self.client.post('/api/webhooks/hotmart', data='nope', content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.post_event(hotmart_event(email=None)).status_code, 400)


class WebhookAdminTest(BaseCase):

    def post_event(self, payload):
        return self.client.post('/api/webhooks/hotmart', json=payload, headers={'X-Hotmart-Hottok': 'test-hottok'})

    def test_logs_listing_and_reprocess(self):
        ignored = self.post_event(hotmart_event('PURCHASE_CANCELED')).get_json()
        self.post_event(hotmart_event())

        body = self.admin_client.get('/api/admin/webhook-logs').get_json()
        self.assertEqual(body['pagination']['total'], 2)
        self.assertNotIn('payload_data', body['logs'][0])
        filtered = self.admin_client.get('/api/admin/webhook-logs?status=ignored').get_json()
        self.assertEqual([log['id'] for log in filtered['logs']], [ignored['log_id']])
        self.assertEqual(self.admin_client.get('/api/admin/webhook-logs?status=odd').status_code, 400)

        detail = self.admin_client.get(f"/api/admin/webhook-logs/{ignored['log_id']}").get_json()
        self.assertEqual(detail['payload_data']['event'], 'PURCHASE_CANCELED')
        self.assertEqual(self.admin_client.get('/api/admin/webhook-logs/999').status_code, 404)

        # the purchase has landed now, so the stored cancellation applies
        reprocessed = self.admin_client.post(f"/api/admin/webhook-logs/{ignored['log_id']}/reprocess")
        self.assertEqual(reprocessed.get_json()['status'], 'processed')
        self.assertEqual(db.get_webhook_log(ignored['log_id'])['status'], 'processed')
        self.assertEqual(db.get_user_by_email('cliente@example.com')['nivelacesso'], 'usuario')

    def test_requires_permission(self):
        support = self.login_as('helpdesk', 'suporte')
        self.assertEqual(support.get('/api/admin/webhook-logs').status_code, 403)
        self.assertEqual(support.get('/api/admin/product-mappings').status_code, 403)
        self.assertEqual(self.client.get('/api/admin/webhook-logs').status_code, 401)

    def test_product_mapping_crud(self):
        url = '/api/admin/product-mappings'
        payload = {'product_id': '1001', 'product_name': 'Plano Semestral', 'plan_type': 'semestral'}

        created = self.admin_client.post(url, json=payload)
        self.assertEqual(created.status_code, 201)
        mapping = created.get_json()
        self.assertEqual(mapping['duration_days'], 180)
        self.assertEqual(mapping['offer_id'], '')
        self.assertIs(mapping['is_lifetime'], False)

        self.assertEqual(self.admin_client.post(url, json=payload).status_code, 409)
        self.assertEqual(self.admin_client.post(url, json=dict(payload, plan_type='diario')).status_code, 400)
        self.assertEqual(self.admin_client.post(url, json=dict(payload, product_id='')).status_code, 400)
        lifetime = self.admin_client.post(url, json=dict(payload, offer_id='vip', plan_type='vitalicio'))
        self.assertIs(lifetime.get_json()['is_lifetime'], True)

        item_url = f"{url}/{mapping['id']}"
        updated = self.admin_client.put(item_url, json={'duration_days': 200, 'product_name': 'Semestral+'})
        self.assertEqual(updated.get_json()['duration_days'], 200)
        self.assertEqual(updated.get_json()['product_name'], 'Semestral+')
        self.assertEqual(self.admin_client.put(item_url, json={'offer_id': 'vip'}).status_code, 409)
        self.assertEqual(self.admin_client.put(f'{url}/999', json={'duration_days': 10}).status_code, 404)

        self.assertEqual(len(self.admin_client.get(url).get_json()), 2)
        self.assertEqual(self.admin_client.delete(item_url).status_code, 200)
        self.assertEqual(self.admin_client.delete(item_url).status_code, 404)

        self.post_event(hotmart_event(product_id=1001, offer='vip', email='vip@example.com'))
        self.assertIs(db.get_user_by_email('vip@example.com')['acessovitalicio'], True)


if __name__ == '__main__':
    unittest.main()
