"""
Entitlement resolver

Works out which plan a user session is on and mediates plan changes.

Two backends:
- billing: subscription status is read from the billing collaborator (Stripe).
  Upgrades only hand back a checkout URL; the new plan is trusted once a later
  refresh reads it back from billing.
- local fallback: used when billing is not configured (or in demo mode). The
  subscription record lives in the local key-value store and upgrades apply
  immediately.

State reads never raise: any failure resolves to the free plan.
"""
import enum
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Optional

from pulsemetrics.config import get_config
from pulsemetrics.errors import ValidationError, PulseMetricsError
from pulsemetrics.system.storage.cache import MemoryStore
from pulsemetrics.system.subscription import plans
from pulsemetrics.system.subscription.billing_client import StripeBillingClient

logger = logging.getLogger('subscription_resolver')

LOCAL_SUBSCRIPTION_KEY = 'pulsemetrics_subscription'
LOCAL_PERIOD_MS = 30 * 24 * 60 * 60 * 1000
DAY_MS = 24 * 60 * 60 * 1000


class ResolverState(enum.Enum):
    UNRESOLVED = 'unresolved'
    RESOLVING = 'resolving'
    RESOLVED = 'resolved'


@dataclass(frozen=True)
class SubscriptionState:
    plan_id: str = plans.FREE_PLAN
    status: str = 'active'
    customer_id: Optional[str] = None
    current_period_end: Optional[int] = None  # epoch ms
    cancel_at_period_end: bool = False
    trial_end: Optional[int] = None  # epoch ms


FREE_STATE = SubscriptionState()


def _timer_scheduler(delay, callback):
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class EntitlementResolver:
    """
    Subscription state and plan limits for one user session.

    Args:
        billing: billing collaborator, a ``StripeBillingClient`` by default; an
            unconfigured client selects the local fallback path
        local_store: KeyValueStore holding the local fallback record
        user: dict with at least ``id`` (and optionally ``email``)
        demo_mode: force the local fallback path even if billing is configured
        scheduler: ``scheduler(delay_seconds, callback)`` used for the delayed
            refresh after a checkout redirect
        clock: returns the current time in seconds
    """

    def __init__(self, billing=None, local_store=None, user=None, demo_mode=False,
                 scheduler=None, clock=time.time, checkout_refresh_delay=None):
        self.billing = billing if billing is not None else StripeBillingClient()
        self.local_store = local_store if local_store is not None else MemoryStore(clock)
        self.user = user
        self.demo_mode = demo_mode
        self.scheduler = scheduler or _timer_scheduler
        self.clock = clock
        if checkout_refresh_delay is None:
            checkout_refresh_delay = get_config().get('checkout_refresh_delay', 2.0)
        self.checkout_refresh_delay = checkout_refresh_delay

        self.state = ResolverState.UNRESOLVED
        self.subscription = FREE_STATE
        self._lock = threading.RLock()

    @property
    def uses_billing(self):
        return (not self.demo_mode and self.billing is not None
                and bool(getattr(self.billing, 'is_configured', False)))

    def _now_ms(self):
        return int(self.clock() * 1000)

    def set_user(self, user):
        """Switch the session user and resolve again."""
        self.user = user
        return self.refresh()

    # Resolution

    def refresh(self):
        """Resolve the current subscription. Never raises; failures resolve to free/active."""
        with self._lock:
            self.state = ResolverState.RESOLVING
        try:
            subscription = self._read_subscription()
        except Exception as e:
            logger.error(f"Failed to fetch subscription, falling back to free plan: {str(e)}")
            subscription = FREE_STATE

        with self._lock:
            self.subscription = subscription
            self.state = ResolverState.RESOLVED
        logger.info(f"Resolved subscription: plan={subscription.plan_id} status={subscription.status}")
        return subscription

    def _read_subscription(self):
        if not self.user:
            return FREE_STATE

        if not self.uses_billing:
            return self._read_local()

        status = self.billing.get_subscription_status(user_id=self.user.get('id'))
        details = status.get('subscription') or {}
        return SubscriptionState(
            plan_id=status.get('plan') or plans.FREE_PLAN,
            status=status.get('status') or 'active',
            customer_id=status.get('customerId'),
            current_period_end=details.get('currentPeriodEnd'),
            cancel_at_period_end=bool(details.get('cancelAtPeriodEnd')),
            trial_end=details.get('trialEnd'),
        )

    def _read_local(self):
        record = self.local_store.get(LOCAL_SUBSCRIPTION_KEY)
        if not record:
            return FREE_STATE

        period_end = record.get('currentPeriodEnd')
        if period_end is not None and self._now_ms() > period_end:
            logger.info("Local subscription expired")
            return SubscriptionState(status='expired')

        return SubscriptionState(
            plan_id=record.get('plan') or plans.FREE_PLAN,
            status=record.get('status') or 'active',
            current_period_end=period_end,
        )

    def on_checkout_redirect(self, params):
        """
        Handle the query parameters of the checkout return URL.

        ``checkout=success`` schedules a refresh after ``checkout_refresh_delay``
        so the billing webhook has time to land. Returns True if one was scheduled.
        """
        if (params or {}).get('checkout') != 'success':
            return False
        logger.info(f"Checkout success observed, refreshing in {self.checkout_refresh_delay}s")
        self.scheduler(self.checkout_refresh_delay, self.refresh)
        return True

    # Limits

    @property
    def plan_id(self):
        return self.subscription.plan_id

    @property
    def limits(self):
        return plans.limits_for(self.subscription.plan_id)

    def has_feature(self, feature_key):
        return plans.has_feature(self.limits, feature_key)

    def within_limit(self, feature_key, current_usage):
        return plans.within_limit(self.limits, feature_key, current_usage)

    def remaining(self, feature_key, current_usage):
        return plans.remaining(self.limits, feature_key, current_usage)

    # Plan changes

    def request_upgrade(self, plan_id, billing_period='monthly'):
        """
        Start a move to ``plan_id``.

        Local path: the plan is applied at once. Billing path: returns the
        checkout URL; the plan is not applied until a later refresh confirms it.
        """
        if plan_id not in plans.PLAN_IDS or plan_id == plans.FREE_PLAN:
            raise ValidationError(f"Invalid plan: {plan_id}")
        if billing_period not in plans.BILLING_PERIODS:
            raise ValidationError(f"Invalid billing period: {billing_period}")

        if not self.uses_billing:
            now = self._now_ms()
            record = {
                'plan': plan_id,
                'status': 'active',
                'currentPeriodEnd': now + LOCAL_PERIOD_MS,
                'createdAt': now,
            }
            self.local_store.set(LOCAL_SUBSCRIPTION_KEY, record)
            with self._lock:
                self.subscription = SubscriptionState(plan_id=plan_id, status='active',
                                                      current_period_end=record['currentPeriodEnd'])
                self.state = ResolverState.RESOLVED
            logger.info(f"Local upgrade applied: {plan_id}")
            return {'success': True, 'plan': plan_id}

        price_id = plans.price_id_for(plan_id, billing_period)
        if not price_id:
            logger.error(f"No Stripe price configured for {plan_id}/{billing_period}")
            return {'success': False, 'error': 'Price not configured for this plan'}

        user = self.user or {}
        try:
            session = self.billing.create_checkout_session(
                price_id,
                customer_id=self.subscription.customer_id,
                user_id=user.get('id'),
                customer_email=user.get('email'),
            )
        except PulseMetricsError as e:
            logger.error(f"Checkout failed for {plan_id}: {e.message}")
            return {'success': False, 'error': e.message}

        url = session.get('url')
        if not url:
            logger.error(f"Checkout session for {plan_id} came back without a URL")
            return {'success': False, 'error': 'Failed to create checkout session'}
        return {'success': True, 'url': url, 'session_id': session.get('sessionId')}

    def request_cancellation(self):
        """Local path resets to free; billing path hands back the customer portal URL."""
        if not self.uses_billing:
            self.local_store.delete(LOCAL_SUBSCRIPTION_KEY)
            with self._lock:
                self.subscription = FREE_STATE
                self.state = ResolverState.RESOLVED
            logger.info("Local subscription cancelled")
            return {'success': True}

        if not self.subscription.customer_id:
            return {'success': False, 'error': 'No subscription to cancel'}
        return self.open_customer_portal()

    def open_customer_portal(self, return_url=None):
        customer_id = self.subscription.customer_id
        if not self.uses_billing or not customer_id:
            logger.error("No customer ID for portal")
            return {'success': False, 'error': 'No billing account found'}
        try:
            portal = self.billing.create_portal_session(customer_id, return_url=return_url)
        except PulseMetricsError as e:
            logger.error(f"Failed to open customer portal: {e.message}")
            return {'success': False, 'error': e.message}
        return {'success': True, 'url': portal.get('url')}

    # Conveniences

    @property
    def is_paid(self):
        return self.subscription.plan_id != plans.FREE_PLAN

    @property
    def is_on_trial(self):
        trial_end = self.subscription.trial_end
        return bool(trial_end and trial_end > self._now_ms())

    @property
    def trial_days_remaining(self):
        if not self.is_on_trial:
            return 0
        return math.ceil((self.subscription.trial_end - self._now_ms()) / DAY_MS)

    @property
    def is_expiring_soon(self):
        return bool(self.subscription.cancel_at_period_end and self.subscription.current_period_end)

    @property
    def days_until_expiry(self):
        if not self.is_expiring_soon:
            return None
        return math.ceil((self.subscription.current_period_end - self._now_ms()) / DAY_MS)

    @property
    def current_plan_details(self):
        return plans.get_tier(self.subscription.plan_id)

    def snapshot(self):
        """Plain-dict view of the session's entitlements"""
        with self._lock:
            subscription = self.subscription
            state = self.state
        return {
            'state': state.value,
            'plan': subscription.plan_id,
            'status': subscription.status,
            'customer_id': subscription.customer_id,
            'current_period_end': subscription.current_period_end,
            'cancel_at_period_end': subscription.cancel_at_period_end,
            'trial_end': subscription.trial_end,
            'limits': dict(plans.limits_for(subscription.plan_id)),
            'is_paid': subscription.plan_id != plans.FREE_PLAN,
        }
