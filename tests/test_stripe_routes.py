"""HTTP surface of the billing API: CORS, method handling and error mapping."""
import time
from unittest.mock import MagicMock, patch

import jwt
import pytest

from pulsemetrics.system.services.profile_store import InMemoryProfileStore, set_profile_store

from conftest import sign_payload, webhook_payload

CHECKOUT = '/api/stripe/create-checkout-session'
PORTAL = '/api/stripe/create-portal-session'
STATUS = '/api/stripe/subscription-status'
WEBHOOK = '/api/stripe/webhook'


@pytest.mark.parametrize('path', [CHECKOUT, PORTAL, STATUS])
def test_preflight(client, path):
    response = client.options(path)
    assert response.status_code == 200
    assert response.headers['Access-Control-Allow-Origin'] == '*'
    assert response.headers['Access-Control-Allow-Credentials'] == 'true'
    assert response.headers['Access-Control-Allow-Headers'] == 'Content-Type'


@pytest.mark.parametrize('method,path,allowed', [
    ('get', CHECKOUT, 'POST'),
    ('put', PORTAL, 'POST'),
    ('post', STATUS, 'GET'),
    ('get', WEBHOOK, 'POST'),
])
def test_method_mismatch(client, method, path, allowed):
    response = getattr(client, method)(path)
    assert response.status_code == 405
    assert response.headers['Allow'] == allowed
    assert response.get_json() == {'error': 'Method not allowed'}


def test_webhook_has_no_cors(client):
    response = client.options(WEBHOOK)
    assert response.status_code == 405
    assert 'Access-Control-Allow-Origin' not in response.headers


def test_checkout_missing_price(client):
    response = client.post(CHECKOUT, json={'userId': 'user-1'})
    assert response.status_code == 400
    assert response.get_json() == {'error': 'Price ID is required'}
    assert response.headers['Access-Control-Allow-Origin'] == '*'


def test_checkout_without_stripe(client):
    response = client.post(CHECKOUT, json={'priceId': 'price_pro_m'})
    assert response.status_code == 500
    assert 'Stripe not configured' in response.get_json()['error']


def test_checkout_success(client, stripe_env):
    session = MagicMock(id='cs_1', url='https://checkout.stripe.test/cs_1')
    with patch('stripe.checkout.Session.create', return_value=session) as create:
        response = client.post(CHECKOUT, json={
            'priceId': 'price_pro_m', 'userId': 'user-1', 'customerEmail': 'a@b.test',
        })

    assert response.status_code == 200
    assert response.get_json() == {'sessionId': 'cs_1', 'url': 'https://checkout.stripe.test/cs_1'}
    assert create.call_args.kwargs['metadata'] == {'userId': 'user-1'}


def test_portal_missing_customer(client, stripe_env):
    response = client.post(PORTAL, json={})
    assert response.status_code == 400
    assert response.get_json() == {'error': 'Customer ID is required'}


def test_status_free_when_unconfigured(client):
    response = client.get(STATUS, query_string={'userId': 'user-1'})
    assert response.status_code == 200
    assert response.get_json() == {'plan': 'free', 'status': 'active', 'customerId': None, 'subscription': None}


def test_status_requires_identifier(client):
    response = client.get(STATUS)
    assert response.status_code == 400
    assert response.get_json() == {'error': 'User ID or Customer ID is required'}


def test_status_uses_bearer_token_subject(client, configure_env):
    configure_env(SUPABASE_JWT_SECRET='jwt-secret')
    token = jwt.encode({'sub': 'user-9', 'aud': 'authenticated', 'exp': int(time.time()) + 60},
                       'jwt-secret', algorithm='HS256')
    free = {'plan': 'free', 'status': 'active', 'customerId': None, 'subscription': None}

    with patch('pulsemetrics.routes.stripe.routes.StripeService.get_subscription_status',
               return_value=free) as get_status:
        response = client.get(STATUS, headers={'Authorization': f'Bearer {token}'})

    assert response.status_code == 200
    get_status.assert_called_once_with(user_id='user-9', customer_id=None)


def test_status_ignores_invalid_token(client, configure_env):
    configure_env(SUPABASE_JWT_SECRET='jwt-secret')
    response = client.get(STATUS, headers={'Authorization': 'Bearer not-a-real-token'})
    assert response.status_code == 400


def test_webhook_not_configured(client):
    response = client.post(WEBHOOK, data='{}', headers={'Stripe-Signature': 't=1,v1=abc'})
    assert response.status_code == 500
    assert response.get_json() == {'error': 'Webhook not configured'}


def test_webhook_bad_signature(client, stripe_env):
    payload = webhook_payload('customer.subscription.deleted', {'customer': 'cus_1'})
    response = client.post(WEBHOOK, data=payload,
                           headers={'Stripe-Signature': sign_payload(payload, 'whsec_other')})
    assert response.status_code == 400
    assert response.get_json()['error'].startswith('Webhook Error:')


def test_webhook_subscription_deleted(client, stripe_env):
    store = InMemoryProfileStore({'user-1': {'stripe_customer_id': 'cus_1', 'plan': 'agency'}})
    set_profile_store(store)
    payload = webhook_payload('customer.subscription.deleted', {'id': 'sub_1', 'customer': 'cus_1'})

    response = client.post(WEBHOOK, data=payload, content_type='application/json',
                           headers={'Stripe-Signature': sign_payload(payload, stripe_env)})

    assert response.status_code == 200
    assert response.get_json() == {'received': True}
    assert store.get_profile('user-1')['plan'] == 'free'
    assert store.get_profile('user-1')['subscription_status'] == 'cancelled'


def test_webhook_handler_failure(client, stripe_env):
    payload = webhook_payload('checkout.session.completed', {'customer': 'cus_1', 'subscription': 'sub_1'})
    with patch('stripe.Subscription.retrieve', side_effect=RuntimeError('boom')):
        response = client.post(WEBHOOK, data=payload,
                               headers={'Stripe-Signature': sign_payload(payload, stripe_env)})
    assert response.status_code == 500
    assert response.get_json() == {'error': 'Webhook handler failed'}


def test_unknown_route_is_json(client):
    response = client.get('/api/nope')
    assert response.status_code == 404
    assert response.get_json() == {'error': 'Not found'}
