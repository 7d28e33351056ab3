"""
Plan limits, pricing tiers and the Stripe price-id -> plan mapping

This module is the single source of truth for which plan a Stripe price maps to
and what each plan is allowed to do. -1 means unlimited.
"""
import math

from pulsemetrics.config import get_config

FREE_PLAN = 'free'
PLAN_IDS = ('free', 'creator', 'pro', 'agency')
BILLING_PERIODS = ('monthly', 'yearly')
UNLIMITED = -1

PLAN_LIMITS = {
    'free': {
        'accounts': 1,
        'history_days': 7,
        'competitors': 0,
        'trending_sounds': 5,
        'hashtags': 5,
        'exports': False,
        'api_access': False,
        'best_times': False,
        'white_label': False,
        'team_seats': 1,
    },
    'creator': {
        'accounts': 1,
        'history_days': 90,
        'competitors': 0,
        'trending_sounds': UNLIMITED,
        'hashtags': UNLIMITED,
        'exports': False,
        'api_access': False,
        'best_times': True,
        'white_label': False,
        'team_seats': 1,
    },
    'pro': {
        'accounts': 3,
        'history_days': UNLIMITED,
        'competitors': 10,
        'trending_sounds': UNLIMITED,
        'hashtags': UNLIMITED,
        'exports': True,
        'api_access': True,
        'best_times': True,
        'white_label': False,
        'team_seats': 1,
    },
    'agency': {
        'accounts': 10,
        'history_days': UNLIMITED,
        'competitors': UNLIMITED,
        'trending_sounds': UNLIMITED,
        'hashtags': UNLIMITED,
        'exports': True,
        'api_access': True,
        'best_times': True,
        'white_label': True,
        'team_seats': 5,
    },
}

PRICING_TIERS = [
    {
        'id': 'free',
        'name': 'Free',
        'description': 'Get started with basic analytics',
        'price': {'monthly': 0, 'yearly': 0},
    },
    {
        'id': 'creator',
        'name': 'Creator',
        'description': 'Perfect for growing creators',
        'price': {'monthly': 15, 'yearly': 144},
    },
    {
        'id': 'pro',
        'name': 'Pro',
        'description': 'For serious content creators',
        'price': {'monthly': 39, 'yearly': 348},
    },
    {
        'id': 'agency',
        'name': 'Agency',
        'description': 'For teams and agencies',
        'price': {'monthly': 99, 'yearly': 948},
    },
]


def limits_for(plan_id):
    """PlanLimits row for a plan; unknown plans get the free row."""
    return PLAN_LIMITS.get(plan_id, PLAN_LIMITS[FREE_PLAN])


def has_feature(limits, feature_key):
    """Booleans as-is; quotas are available when unlimited or > 0."""
    value = limits.get(feature_key)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return value == UNLIMITED or value > 0


def within_limit(limits, feature_key, current_usage):
    limit = limits.get(feature_key, 0)
    if limit == UNLIMITED:
        return True
    return current_usage < limit


def remaining(limits, feature_key, current_usage):
    """Remaining quota; math.inf when unlimited."""
    limit = limits.get(feature_key, 0)
    if limit == UNLIMITED:
        return math.inf
    return max(0, limit - current_usage)


def get_tier(plan_id):
    """Pricing tier details (free tier for unknown ids), with configured price ids."""
    tier = next((t for t in PRICING_TIERS if t['id'] == plan_id), PRICING_TIERS[0])
    details = dict(tier)
    if tier['id'] != FREE_PLAN:
        details['price_ids'] = {period: price_id_for(tier['id'], period) for period in BILLING_PERIODS}
    return details


def price_id_for(plan_id, billing_period):
    """Configured Stripe price id for a paid plan, or None."""
    return get_config().get('price_ids', {}).get(f'{plan_id}_{billing_period}') or None


def plan_for_price_id(price_id):
    """Map a Stripe price id to a plan name; unmapped ids are 'free'."""
    if not price_id:
        return FREE_PLAN
    for key, configured_id in get_config().get('price_ids', {}).items():
        if configured_id and configured_id == price_id:
            return key.rsplit('_', 1)[0]
    return FREE_PLAN
