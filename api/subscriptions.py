# api/subscriptions.py - Turns Hotmart webhook events into subscription changes
import logging
import re
import secrets
from datetime import timedelta
from database import db
from config import DEFAULT_PLAN, PLAN_DURATION_DAYS
from .utils import TIMESTAMP_FORMAT, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

ACTIVATION_EVENTS = ('PURCHASE_APPROVED', 'PURCHASE_COMPLETE', 'SUBSCRIPTION_REACTIVATION')
CANCELLATION_EVENTS = ('PURCHASE_CANCELED', 'PURCHASE_REFUNDED', 'SUBSCRIPTION_CANCELLATION')
# Payment problems are only recorded; Hotmart follows up with a cancellation
PAYMENT_ISSUE_EVENTS = ('PURCHASE_DELAYED', 'PURCHASE_CHARGEBACK', 'PURCHASE_PROTEST')

# Levels a purchase may move to premium; staff keep their own level
SUBSCRIBER_LEVELS = ('usuario', 'premium')

EMAIL_PATHS = ('data.buyer.email', 'buyer.email', 'data.subscriber.email', 'subscriber.email')
NAME_PATHS = ('data.buyer.name', 'buyer.name', 'data.subscriber.name', 'subscriber.name')
TRANSACTION_PATHS = ('data.purchase.transaction', 'purchase.transaction', 'data.subscription.code')
SUBSCRIBER_CODE_PATHS = ('data.subscription.subscriber.code', 'data.subscriber.code', 'subscriber.code')
PRODUCT_PATHS = ('data.product.id', 'product.id')
OFFER_PATHS = ('data.purchase.offer.code', 'purchase.offer.code')


def _dig(payload, paths):
    """First non-empty value found along the dotted paths"""
    for path in paths:
        value = payload
        for key in path.split('.'):
            value = value.get(key) if isinstance(value, dict) else None
        if value not in (None, ''):
            return str(value).strip()
    return None


def extract_purchase(payload):
    email = _dig(payload, EMAIL_PATHS)
    return {
        'event': str(payload.get('event') or '').upper() or None,
        'email': email.lower() if email else None,
        'name': _dig(payload, NAME_PATHS),
        'transaction': _dig(payload, TRANSACTION_PATHS),
        'subscriber_code': _dig(payload, SUBSCRIBER_CODE_PATHS),
        'product_id': _dig(payload, PRODUCT_PATHS),
        'offer_id': _dig(payload, OFFER_PATHS),
    }


def resolve_plan(product_id, offer_id=None):
    """Plan type and duration for a purchased product; None days means lifetime"""
    mapping = db.find_product_mapping(product_id, offer_id)
    if not mapping:
        if product_id:
            logger.warning(f"⚠️ No product mapping for {product_id}/{offer_id}, using {DEFAULT_PLAN}")
        return {'plan_type': DEFAULT_PLAN, 'duration_days': PLAN_DURATION_DAYS[DEFAULT_PLAN], 'is_lifetime': False}

    if mapping['is_lifetime']:
        return {'plan_type': mapping['plan_type'], 'duration_days': None, 'is_lifetime': True}
    days = mapping['duration_days'] or PLAN_DURATION_DAYS.get(mapping['plan_type'], PLAN_DURATION_DAYS[DEFAULT_PLAN])
    return {'plan_type': mapping['plan_type'], 'duration_days': days, 'is_lifetime': False}


def _outcome(status, message, user_id=None):
    return {'status': status, 'message': message, 'user_id': user_id}


def _new_username(email):
    local = re.sub(r'[^a-z0-9_]+', '', email.split('@')[0].lower()) or 'assinante'
    return f'{local}_{secrets.token_hex(3)}'


def _activate(purchase, now):
    plan = resolve_plan(purchase['product_id'], purchase['offer_id'])
    user = db.get_user_by_email(purchase['email'])

    fields = {
        'tipoplano': plan['plan_type'],
        'origemassinatura': 'hotmart',
        'dataassinatura': now.strftime(TIMESTAMP_FORMAT),
        'codigoassinante': purchase['subscriber_code'] or purchase['transaction'],
    }
    if plan['is_lifetime'] or (user and user['acessovitalicio']):
        fields['acessovitalicio'] = 1
        fields['dataexpiracao'] = None
    else:
        # a renewal stacks on top of the time still left
        current = parse_timestamp(user['dataexpiracao']) if user else None
        start = current if current and current > now else now
        fields['acessovitalicio'] = 0
        fields['dataexpiracao'] = (start + timedelta(days=plan['duration_days'])).strftime(TIMESTAMP_FORMAT)

    if user is None:
        user_id = db.create_user(_new_username(purchase['email']), purchase['email'], secrets.token_urlsafe(16),
                                 name=purchase['name'], nivelacesso='premium', **fields)
        if user_id is None:
            return _outcome('error', f"Não foi possível criar o usuário {purchase['email']}")
        logger.info(f"✅ Subscriber created from Hotmart: {purchase['email']}")
        return _outcome('processed', f"Usuário criado com plano {plan['plan_type']}", user_id)

    fields['is_active'] = 1
    if user['nivelacesso'] in SUBSCRIBER_LEVELS:
        fields['nivelacesso'] = 'premium'
    if not db.update_user_fields(user['id'], fields):
        return _outcome('error', f"Erro ao atualizar o usuário {user['username']}", user['id'])

    logger.info(f"✅ Subscription activated for {user['username']} until {fields['dataexpiracao'] or 'lifetime'}")
    return _outcome('processed', f"Assinatura {plan['plan_type']} ativada", user['id'])


def _cancel(purchase, now):
    user = db.get_user_by_email(purchase['email'])
    if user is None:
        return _outcome('ignored', 'Usuário não encontrado')

    codes = {purchase['transaction'], purchase['subscriber_code']} - {None}
    if user['codigoassinante'] not in codes:
        logger.warning(f"⚠️ Cancellation for {user['username']} does not match its subscription")
        return _outcome('ignored', 'Transação não corresponde à assinatura do usuário', user['id'])

    fields = {'dataexpiracao': now.strftime(TIMESTAMP_FORMAT), 'acessovitalicio': 0}
    if user['nivelacesso'] == 'premium':
        fields['nivelacesso'] = 'usuario'
    if not db.update_user_fields(user['id'], fields):
        return _outcome('error', f"Erro ao atualizar o usuário {user['username']}", user['id'])

    logger.info(f"🔄 Subscription cancelled for {user['username']}")
    return _outcome('processed', 'Assinatura cancelada', user['id'])


def process_hotmart_event(payload, now=None):
    """Apply one Hotmart event and return its outcome.

    The outcome is a dict with ``status`` (processed, ignored or error), a
    human readable ``message`` and the affected ``user_id`` when known.
    Purchases and reactivations grant premium access, creating the account
    when the buyer has none. Cancellations and refunds only apply when the
    transaction matches the subscription stored on the user.
    """
    now = now or utcnow()
    purchase = extract_purchase(payload)
    event = purchase['event']

    if not event:
        return _outcome('error', 'Evento ausente')
    if event in PAYMENT_ISSUE_EVENTS:
        return _outcome('ignored', f'Problema de pagamento registrado: {event}')
    if event not in ACTIVATION_EVENTS and event not in CANCELLATION_EVENTS:
        return _outcome('ignored', f'Evento não tratado: {event}')
    if not purchase['email']:
        return _outcome('error', 'Email do comprador ausente')

    if event in ACTIVATION_EVENTS:
        return _activate(purchase, now)
    return _cancel(purchase, now)
