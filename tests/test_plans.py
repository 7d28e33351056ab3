import math

import pytest

from pulsemetrics.system.subscription import plans

from conftest import PRICE_IDS


@pytest.mark.parametrize('plan_id', ['enterprise', '', None, 'FREE'])
def test_unknown_plan_gets_free_limits(plan_id):
    assert plans.limits_for(plan_id) == plans.PLAN_LIMITS['free']


def test_has_feature():
    free = plans.limits_for('free')
    assert plans.has_feature(free, 'trending_sounds') is True
    assert plans.has_feature(free, 'competitors') is False
    assert plans.has_feature(free, 'exports') is False
    assert plans.has_feature(free, 'no_such_feature') is False

    agency = plans.limits_for('agency')
    assert plans.has_feature(agency, 'competitors') is True
    assert plans.has_feature(agency, 'white_label') is True


@pytest.mark.parametrize('usage', [0, 10, 10_000])
def test_unlimited_quota(usage):
    agency = plans.limits_for('agency')
    assert plans.within_limit(agency, 'competitors', usage) is True
    assert plans.remaining(agency, 'competitors', usage) == math.inf


def test_numeric_quota():
    pro = plans.limits_for('pro')
    assert plans.within_limit(pro, 'competitors', 9) is True
    assert plans.within_limit(pro, 'competitors', 10) is False
    assert plans.remaining(pro, 'competitors', 4) == 6
    assert plans.remaining(pro, 'competitors', 25) == 0


def test_price_id_mapping(configure_env):
    configure_env(**PRICE_IDS)

    assert plans.plan_for_price_id('price_pro_y') == 'pro'
    assert plans.plan_for_price_id('price_agency_m') == 'agency'
    assert plans.plan_for_price_id('price_unknown') == 'free'
    assert plans.plan_for_price_id(None) == 'free'
    assert plans.price_id_for('creator', 'monthly') == 'price_creator_m'


def test_unconfigured_prices_map_to_free():
    assert plans.price_id_for('pro', 'monthly') is None
    # empty configured ids must not match an empty lookup
    assert plans.plan_for_price_id('') == 'free'


def test_get_tier(configure_env):
    configure_env(**PRICE_IDS)

    tier = plans.get_tier('pro')
    assert tier['name'] == 'Pro'
    assert tier['price'] == {'monthly': 39, 'yearly': 348}
    assert tier['price_ids'] == {'monthly': 'price_pro_m', 'yearly': 'price_pro_y'}

    assert plans.get_tier('bogus')['id'] == 'free'
    assert 'price_ids' not in plans.get_tier('free')
