"""
Billing collaborator used by the entitlement resolver.

Calls the Stripe service in-process, so the resolver and the HTTP endpoints
share one implementation of checkout, portal and status lookups.
"""
import logging

from pulsemetrics.config import is_stripe_configured
from pulsemetrics.routes.stripe.service import StripeService

logger = logging.getLogger('billing_client')


class StripeBillingClient:
    @property
    def is_configured(self):
        return is_stripe_configured()

    def create_checkout_session(self, price_id, customer_id=None, success_url=None, cancel_url=None,
                                user_id=None, customer_email=None):
        return StripeService.create_checkout_session(
            price_id,
            customer_id=customer_id,
            success_url=success_url,
            cancel_url=cancel_url,
            user_id=user_id,
            customer_email=customer_email,
        )

    def create_portal_session(self, customer_id, return_url=None):
        return StripeService.create_portal_session(customer_id, return_url=return_url)

    def get_subscription_status(self, user_id=None, customer_id=None):
        logger.debug(f"Fetching subscription status for user={user_id} customer={customer_id}")
        return StripeService.get_subscription_status(user_id=user_id, customer_id=customer_id)
