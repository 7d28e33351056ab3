import json
import logging

import stripe

from pulsemetrics.config import get_config
from pulsemetrics.errors import ConfigurationError, ValidationError, UpstreamError, SignatureError
from pulsemetrics.system.services.profile_store import get_profile_store
from pulsemetrics.system.subscription.plans import plan_for_price_id, FREE_PLAN

# Setup logger
logger = logging.getLogger('stripe_service')

TRIAL_PERIOD_DAYS = 14

"""
WEBHOOK HANDLING:
1. checkout.session.completed - links the Stripe customer to the user and activates the plan
2. customer.subscription.created/updated - stores the mapped plan and Stripe status
3. customer.subscription.deleted - resets to the free plan
4. invoice.payment_succeeded / invoice.payment_failed - keeps subscription_status in step
"""


def _field(obj, key, default=None):
    """Subscript access that works for dicts and StripeObjects alike."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, IndexError, TypeError):
        return default
    return default if value is None else value


def _first_price_id(subscription):
    items = _field(_field(subscription, 'items'), 'data', [])
    if not items:
        return None
    return _field(_field(items[0], 'price'), 'id')


def _free_status(customer_id=None):
    return {
        'plan': FREE_PLAN,
        'status': 'active',
        'customerId': customer_id,
        'subscription': None,
    }


class StripeService:
    @staticmethod
    def _configure():
        """Point the Stripe SDK at the configured secret key."""
        secret_key = get_config().get('stripe_secret_key')
        if not secret_key:
            raise ConfigurationError('Stripe not configured. Add STRIPE_SECRET_KEY to environment variables.')
        stripe.api_key = secret_key
        logger.debug(f"Stripe configured with API key: {secret_key[:4]}...{secret_key[-4:]}")

    @staticmethod
    def create_checkout_session(price_id, customer_id=None, success_url=None, cancel_url=None,
                                user_id=None, customer_email=None):
        """Create a subscription checkout session. Returns {'sessionId', 'url'}."""
        if not price_id:
            raise ValidationError('Price ID is required')

        StripeService._configure()

        app_url = get_config().get('app_url')
        session_params = {
            'mode': 'subscription',
            'payment_method_types': ['card'],
            'line_items': [{
                'price': price_id,
                'quantity': 1,
            }],
            'success_url': success_url or f"{app_url}/dashboard?checkout=success",
            'cancel_url': cancel_url or f"{app_url}/pricing?checkout=cancelled",
            'subscription_data': {
                'trial_period_days': TRIAL_PERIOD_DAYS,
                'metadata': {'userId': user_id or ''},
            },
            'allow_promotion_codes': True,
            'metadata': {'userId': user_id or ''},
        }

        # Add customer info
        if customer_id:
            session_params['customer'] = customer_id
        elif customer_email:
            session_params['customer_email'] = customer_email

        logger.info(f"Creating checkout session for user {user_id or '-'}, price {price_id}")
        try:
            session = stripe.checkout.Session.create(**session_params)
        except stripe.StripeError as e:
            logger.error(f"Error creating checkout session: {str(e)}")
            raise UpstreamError(str(e) or 'Failed to create checkout session') from e

        logger.info(f"Created checkout session: {session.id}")
        return {'sessionId': session.id, 'url': session.url}

    @staticmethod
    def create_portal_session(customer_id, return_url=None):
        """Create a customer portal session for managing subscriptions."""
        if not customer_id:
            raise ValidationError('Customer ID is required')

        StripeService._configure()

        return_url = return_url or f"{get_config().get('app_url')}/dashboard"
        logger.info(f"Creating Stripe portal session with customer ID {customer_id}")
        try:
            portal_session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url
            )
        except stripe.StripeError as e:
            logger.error(f"Error creating portal session: {str(e)}")
            raise UpstreamError(str(e) or 'Failed to create portal session') from e

        return {'url': portal_session.url}

    @staticmethod
    def get_subscription_status(user_id=None, customer_id=None):
        """
        Current plan for a user or Stripe customer

        Returns the free/active default when Stripe is unconfigured or no
        customer/subscription can be found.
        """
        if not user_id and not customer_id:
            raise ValidationError('User ID or Customer ID is required')

        if not get_config().get('stripe_secret_key'):
            logger.info("Stripe not configured - reporting free plan")
            return _free_status()

        stripe_customer_id = customer_id

        # If we have userId but no customerId, look it up in the profile store
        if user_id and not customer_id:
            profile = get_profile_store().get_profile(user_id)
            if profile and profile.get('stripe_customer_id'):
                stripe_customer_id = profile['stripe_customer_id']

        if not stripe_customer_id:
            logger.info(f"No Stripe customer for user {user_id} - reporting free plan")
            return _free_status()

        StripeService._configure()
        try:
            subscriptions = stripe.Subscription.list(customer=stripe_customer_id, status='all', limit=1)
        except stripe.StripeError as e:
            logger.error(f"Error listing subscriptions for {stripe_customer_id}: {str(e)}")
            raise UpstreamError(str(e) or 'Failed to get subscription status') from e

        data = _field(subscriptions, 'data', [])
        if not data:
            return _free_status(stripe_customer_id)

        subscription = data[0]
        plan = plan_for_price_id(_first_price_id(subscription))

        # Newer API versions report the period end on the subscription item
        period_end = _field(subscription, 'current_period_end')
        if period_end is None:
            items = _field(_field(subscription, 'items'), 'data', [])
            period_end = _field(items[0], 'current_period_end') if items else None
        trial_end = _field(subscription, 'trial_end')

        return {
            'plan': plan,
            'status': _field(subscription, 'status'),
            'customerId': stripe_customer_id,
            'subscription': {
                'id': _field(subscription, 'id'),
                'status': _field(subscription, 'status'),
                'currentPeriodEnd': period_end * 1000 if period_end else None,
                'cancelAtPeriodEnd': bool(_field(subscription, 'cancel_at_period_end', False)),
                'trialEnd': trial_end * 1000 if trial_end else None,
            },
        }

    @staticmethod
    def handle_webhook_event(payload, signature):
        """
        Verify and apply a Stripe webhook event.

        Returns:
            str: the event type

        Raises:
            ConfigurationError: Stripe or the webhook secret is not configured
            SignatureError: signature missing/invalid or payload unreadable
        """
        config = get_config()
        webhook_secret = config.get('stripe_webhook_secret')
        if not config.get('stripe_secret_key') or not webhook_secret:
            logger.error("Stripe not configured for webhooks")
            raise ConfigurationError('Webhook not configured')

        if not payload or not signature:
            raise SignatureError('Missing payload or signature')

        if isinstance(payload, bytes):
            payload = payload.decode('utf-8')

        try:
            stripe.WebhookSignature.verify_header(payload, signature, webhook_secret,
                                                  stripe.Webhook.DEFAULT_TOLERANCE)
            event = json.loads(payload)
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid signature: {str(e)}")
            raise SignatureError(f"Webhook Error: {str(e)}") from e
        except ValueError as e:
            logger.error(f"Invalid payload: {str(e)}")
            raise SignatureError(f"Webhook Error: {str(e)}") from e

        event_type = event.get('type')
        obj = (event.get('data') or {}).get('object') or {}
        logger.info(f"Processing webhook event: {event_type}")

        StripeService._configure()
        handler = WEBHOOK_HANDLERS.get(event_type)
        if handler:
            handler(obj)
        else:
            logger.info(f"Unhandled event type: {event_type}")

        return event_type

    @staticmethod
    def _handle_checkout_completed(session):
        customer_id = session.get('customer')
        subscription_id = session.get('subscription')
        user_id = (session.get('metadata') or {}).get('userId')
        store = get_profile_store()

        if user_id:
            store.update_by_user_id(user_id, {'stripe_customer_id': customer_id})

        if subscription_id:
            try:
                subscription = stripe.Subscription.retrieve(subscription_id)
            except stripe.StripeError as e:
                logger.error(f"Error retrieving subscription {subscription_id}: {str(e)}")
                raise UpstreamError(str(e)) from e
            plan = plan_for_price_id(_first_price_id(subscription))

            if user_id:
                store.update_by_user_id(user_id, {
                    'plan': plan,
                    'subscription_status': 'active',
                })

        logger.info(f"Checkout completed for customer: {customer_id}")

    @staticmethod
    def _handle_subscription_changed(subscription):
        customer_id = subscription.get('customer')
        plan = plan_for_price_id(_first_price_id(subscription))
        status = subscription.get('status')

        get_profile_store().update_by_customer_id(customer_id, {
            'plan': plan,
            'subscription_status': status,
        })
        logger.info(f"Subscription changed for customer: {customer_id} Plan: {plan} Status: {status}")

    @staticmethod
    def _handle_subscription_deleted(subscription):
        customer_id = subscription.get('customer')
        get_profile_store().update_by_customer_id(customer_id, {
            'plan': FREE_PLAN,
            'subscription_status': 'cancelled',
        })
        logger.info(f"Subscription cancelled for customer: {customer_id}")

    @staticmethod
    def _handle_invoice_payment_succeeded(invoice):
        customer_id = invoice.get('customer')
        get_profile_store().update_by_customer_id(customer_id, {'subscription_status': 'active'})
        logger.info(f"Payment succeeded for customer: {customer_id}")

    @staticmethod
    def _handle_invoice_payment_failed(invoice):
        customer_id = invoice.get('customer')
        get_profile_store().update_by_customer_id(customer_id, {'subscription_status': 'past_due'})
        logger.warning(f"Payment failed for customer: {customer_id}")


WEBHOOK_HANDLERS = {
    'checkout.session.completed': StripeService._handle_checkout_completed,
    'customer.subscription.created': StripeService._handle_subscription_changed,
    'customer.subscription.updated': StripeService._handle_subscription_changed,
    'customer.subscription.deleted': StripeService._handle_subscription_deleted,
    'invoice.payment_succeeded': StripeService._handle_invoice_payment_succeeded,
    'invoice.payment_failed': StripeService._handle_invoice_payment_failed,
}
