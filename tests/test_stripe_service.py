"""StripeService: checkout, portal, subscription status and webhook handling."""
from unittest.mock import MagicMock, patch

import pytest
import stripe

from pulsemetrics.errors import ConfigurationError, ValidationError, UpstreamError, SignatureError
from pulsemetrics.routes.stripe.service import StripeService
from pulsemetrics.system.services.profile_store import InMemoryProfileStore, set_profile_store, get_profile_store

from conftest import sign_payload, webhook_payload


def _subscription(price_id='price_pro_m', status='active', period_end=1706000000, on_item=False, **extra):
    item = {'price': {'id': price_id}}
    subscription = {
        'id': 'sub_123',
        'customer': 'cus_123',
        'status': status,
        'cancel_at_period_end': False,
        'trial_end': None,
        'items': {'data': [item]},
    }
    if on_item:
        item['current_period_end'] = period_end
    else:
        subscription['current_period_end'] = period_end
    subscription.update(extra)
    return subscription


@pytest.fixture
def profiles():
    store = InMemoryProfileStore({
        'user-1': {'stripe_customer_id': 'cus_123', 'plan': 'pro', 'subscription_status': 'active'},
        'user-2': {},
    })
    set_profile_store(store)
    return store


class TestCheckoutSession:
    def test_price_required(self, stripe_env):
        with pytest.raises(ValidationError) as exc:
            StripeService.create_checkout_session(None)
        assert exc.value.message == 'Price ID is required'

    def test_requires_secret_key(self):
        with pytest.raises(ConfigurationError):
            StripeService.create_checkout_session('price_pro_m')

    def test_session_parameters(self, stripe_env):
        session = MagicMock(id='cs_test_1', url='https://checkout.stripe.test/cs_test_1')
        with patch('stripe.checkout.Session.create', return_value=session) as create:
            result = StripeService.create_checkout_session(
                'price_pro_m', user_id='user-1', customer_email='a@b.test')

        assert result == {'sessionId': 'cs_test_1', 'url': 'https://checkout.stripe.test/cs_test_1'}
        params = create.call_args.kwargs
        assert params['mode'] == 'subscription'
        assert params['line_items'] == [{'price': 'price_pro_m', 'quantity': 1}]
        assert params['subscription_data']['trial_period_days'] == 14
        assert params['subscription_data']['metadata'] == {'userId': 'user-1'}
        assert params['allow_promotion_codes'] is True
        assert params['customer_email'] == 'a@b.test'
        assert 'customer' not in params
        assert params['success_url'] == 'https://app.pulsemetrics.test/dashboard?checkout=success'
        assert params['cancel_url'] == 'https://app.pulsemetrics.test/pricing?checkout=cancelled'
        assert stripe.api_key == 'sk_test_123'

    def test_existing_customer(self, stripe_env):
        session = MagicMock(id='cs_2', url='https://x')
        with patch('stripe.checkout.Session.create', return_value=session) as create:
            StripeService.create_checkout_session('price_pro_m', customer_id='cus_9',
                                                  customer_email='ignored@b.test',
                                                  success_url='https://s', cancel_url='https://c')
        params = create.call_args.kwargs
        assert params['customer'] == 'cus_9'
        assert 'customer_email' not in params
        assert params['success_url'] == 'https://s'

    def test_stripe_error_becomes_upstream(self, stripe_env):
        with patch('stripe.checkout.Session.create', side_effect=stripe.InvalidRequestError('No such price', 'price')):
            with pytest.raises(UpstreamError) as exc:
                StripeService.create_checkout_session('price_missing')
        assert 'No such price' in exc.value.message


class TestPortalSession:
    def test_customer_required(self, stripe_env):
        with pytest.raises(ValidationError):
            StripeService.create_portal_session(None)

    def test_portal_url(self, stripe_env):
        portal = MagicMock(url='https://billing.stripe.test/p/1')
        with patch('stripe.billing_portal.Session.create', return_value=portal) as create:
            assert StripeService.create_portal_session('cus_123') == {'url': 'https://billing.stripe.test/p/1'}
        create.assert_called_once_with(customer='cus_123', return_url='https://app.pulsemetrics.test/dashboard')


class TestSubscriptionStatus:
    def test_unconfigured_returns_free(self):
        assert StripeService.get_subscription_status(user_id='user-1') == {
            'plan': 'free', 'status': 'active', 'customerId': None, 'subscription': None,
        }

    def test_requires_an_id(self):
        with pytest.raises(ValidationError):
            StripeService.get_subscription_status()

    def test_user_without_customer(self, stripe_env, profiles):
        with patch('stripe.Subscription.list') as list_subscriptions:
            result = StripeService.get_subscription_status(user_id='user-2')
        assert result['plan'] == 'free'
        assert result['customerId'] is None
        list_subscriptions.assert_not_called()

    def test_customer_without_subscription(self, stripe_env, profiles):
        with patch('stripe.Subscription.list', return_value={'data': []}):
            result = StripeService.get_subscription_status(user_id='user-1')
        assert result == {'plan': 'free', 'status': 'active', 'customerId': 'cus_123', 'subscription': None}

    def test_active_subscription(self, stripe_env, profiles):
        with patch('stripe.Subscription.list', return_value={'data': [_subscription(trial_end=1705000000)]}) as lst:
            result = StripeService.get_subscription_status(user_id='user-1')

        lst.assert_called_once_with(customer='cus_123', status='all', limit=1)
        assert result['plan'] == 'pro'
        assert result['status'] == 'active'
        assert result['subscription'] == {
            'id': 'sub_123',
            'status': 'active',
            'currentPeriodEnd': 1706000000000,
            'cancelAtPeriodEnd': False,
            'trialEnd': 1705000000000,
        }

    def test_period_end_on_subscription_item(self, stripe_env):
        subscription = _subscription('price_agency_y', on_item=True)
        with patch('stripe.Subscription.list', return_value={'data': [subscription]}):
            result = StripeService.get_subscription_status(customer_id='cus_123')
        assert result['plan'] == 'agency'
        assert result['subscription']['currentPeriodEnd'] == 1706000000000

    def test_unmapped_price_is_free(self, stripe_env):
        with patch('stripe.Subscription.list', return_value={'data': [_subscription('price_legacy')]}):
            assert StripeService.get_subscription_status(customer_id='cus_123')['plan'] == 'free'


class TestWebhook:
    def test_not_configured(self):
        with pytest.raises(ConfigurationError):
            StripeService.handle_webhook_event(b'{}', 't=1,v1=abc')

    def test_bad_signature_mutates_nothing(self, stripe_env, profiles):
        payload = webhook_payload('customer.subscription.deleted', {'customer': 'cus_123'})
        with pytest.raises(SignatureError):
            StripeService.handle_webhook_event(payload.encode(), sign_payload(payload, 'whsec_wrong'))
        assert profiles.get_profile('user-1')['plan'] == 'pro'

    def test_missing_signature(self, stripe_env):
        with pytest.raises(SignatureError):
            StripeService.handle_webhook_event(b'{}', None)

    def test_subscription_deleted(self, stripe_env, profiles):
        payload = webhook_payload('customer.subscription.deleted', _subscription(status='canceled'))

        event_type = StripeService.handle_webhook_event(payload.encode(), sign_payload(payload, stripe_env))

        assert event_type == 'customer.subscription.deleted'
        row = profiles.get_by_customer_id('cus_123')
        assert row['plan'] == 'free'
        assert row['subscription_status'] == 'cancelled'
        assert row['updated_at']

    def test_subscription_updated(self, stripe_env, profiles):
        payload = webhook_payload('customer.subscription.updated', _subscription('price_agency_m', status='past_due'))
        StripeService.handle_webhook_event(payload.encode(), sign_payload(payload, stripe_env))

        row = profiles.get_profile('user-1')
        assert row['plan'] == 'agency'
        assert row['subscription_status'] == 'past_due'

    def test_checkout_completed(self, stripe_env, profiles):
        session = {
            'id': 'cs_1',
            'customer': 'cus_new',
            'subscription': 'sub_new',
            'metadata': {'userId': 'user-2'},
        }
        payload = webhook_payload('checkout.session.completed', session)
        with patch('stripe.Subscription.retrieve', return_value=_subscription('price_creator_y')) as retrieve:
            StripeService.handle_webhook_event(payload.encode(), sign_payload(payload, stripe_env))

        retrieve.assert_called_once_with('sub_new')
        row = profiles.get_profile('user-2')
        assert row['stripe_customer_id'] == 'cus_new'
        assert row['plan'] == 'creator'
        assert row['subscription_status'] == 'active'

    @pytest.mark.parametrize('event_type,status', [
        ('invoice.payment_succeeded', 'active'),
        ('invoice.payment_failed', 'past_due'),
    ])
    def test_invoice_events(self, stripe_env, profiles, event_type, status):
        payload = webhook_payload(event_type, {'id': 'in_1', 'customer': 'cus_123'})
        StripeService.handle_webhook_event(payload.encode(), sign_payload(payload, stripe_env))
        assert profiles.get_profile('user-1')['subscription_status'] == status

    def test_unknown_event_is_acknowledged(self, stripe_env, profiles):
        payload = webhook_payload('customer.created', {'id': 'cus_999'})
        assert StripeService.handle_webhook_event(payload, sign_payload(payload, stripe_env)) == 'customer.created'

    def test_in_memory_store_used_without_supabase(self):
        assert isinstance(get_profile_store(), InMemoryProfileStore)
