"""
Shared fixtures for the PulseMetrics test suite.

- Environment isolation: every test starts with no credentials configured, a
  fresh config cache and a fresh profile store.
- A fixed reference clock (Wednesday 2024-01-03 18:00 UTC).
- Record factories for videos and profiles.
- A Flask test client.
- Stripe-style webhook signatures built with the real ``t=...,v1=...`` scheme.
"""
import hashlib
import hmac
import json
import time

import pytest

from pulsemetrics import create_app
from pulsemetrics.config import reset_config, PRICE_ENV_KEYS
from pulsemetrics.scripts.tiktok.records import VideoRecord, VideoStats, ProfileRecord, ProfileStats
from pulsemetrics.system.services.profile_store import set_profile_store

# Wednesday 2024-01-03 18:00:00 UTC
FIXED_NOW = 1704304800
DAY = 86400

CONFIG_ENV_KEYS = [
    'SUPABASE_URL', 'SUPABASE_ANON_KEY', 'SUPABASE_SERVICE_KEY', 'SUPABASE_JWT_SECRET',
    'STRIPE_SECRET_KEY', 'STRIPE_PUBLISHABLE_KEY', 'STRIPE_WEBHOOK_SECRET',
    'RAPIDAPI_KEY', 'APP_URL', 'CACHE_TTL_SECONDS', 'CHECKOUT_REFRESH_DELAY', 'LOCAL_STORE_PATH',
] + list(PRICE_ENV_KEYS.values())

PRICE_IDS = {
    'STRIPE_PRICE_CREATOR_MONTHLY': 'price_creator_m',
    'STRIPE_PRICE_CREATOR_YEARLY': 'price_creator_y',
    'STRIPE_PRICE_PRO_MONTHLY': 'price_pro_m',
    'STRIPE_PRICE_PRO_YEARLY': 'price_pro_y',
    'STRIPE_PRICE_AGENCY_MONTHLY': 'price_agency_m',
    'STRIPE_PRICE_AGENCY_YEARLY': 'price_agency_y',
}


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    for key in CONFIG_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    set_profile_store(None)
    yield
    reset_config()
    set_profile_store(None)


@pytest.fixture
def configure_env(monkeypatch):
    """Set environment variables and drop the cached config."""
    def _configure(**values):
        for key, value in values.items():
            monkeypatch.setenv(key, value)
        reset_config()
    return _configure


@pytest.fixture
def stripe_env(configure_env):
    configure_env(STRIPE_SECRET_KEY='sk_test_123', STRIPE_WEBHOOK_SECRET='whsec_test_secret',
                  APP_URL='https://app.pulsemetrics.test', **PRICE_IDS)
    return 'whsec_test_secret'


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


def make_video(video_id='v1', views=1000, likes=0, comments=0, shares=0,
               create_time=FIXED_NOW, hashtags=(), description=''):
    return VideoRecord(
        id=video_id,
        description=description,
        create_time=create_time,
        stats=VideoStats(views=views, likes=likes, comments=comments, shares=shares),
        hashtags=tuple(hashtags),
    )


def make_profile(username='creator', followers=10000, likes=0):
    return ProfileRecord(username=username, stats=ProfileStats(followers=followers, likes=likes))


@pytest.fixture
def sample_videos():
    """Ten videos, one per day going back from FIXED_NOW, 5% engagement each"""
    return [
        make_video(f'v{i}', views=1000 * (i + 1), likes=50 * (i + 1),
                   create_time=FIXED_NOW - i * DAY, hashtags=('fyp', f'tag{i % 3}'),
                   description=f'Video number {i}')
        for i in range(10)
    ]


@pytest.fixture
def sample_profile():
    return make_profile(followers=10000, likes=2000)


@pytest.fixture
def client():
    app = create_app({'TESTING': True})
    return app.test_client()


def sign_payload(payload, secret, timestamp=None):
    """Stripe-Signature header for a payload string"""
    timestamp = int(timestamp if timestamp is not None else time.time())
    signed = f"{timestamp}.{payload}".encode('utf-8')
    signature = hmac.new(secret.encode('utf-8'), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def webhook_payload(event_type, obj):
    return json.dumps({
        'id': 'evt_test',
        'object': 'event',
        'type': event_type,
        'data': {'object': obj},
    })
