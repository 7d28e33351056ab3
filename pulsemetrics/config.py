"""
Configuration management.
"""
import os
import logging

logger = logging.getLogger('config')

# Configuration cache
_config_cache = {}

PRICE_ENV_KEYS = {
    'creator_monthly': 'STRIPE_PRICE_CREATOR_MONTHLY',
    'creator_yearly': 'STRIPE_PRICE_CREATOR_YEARLY',
    'pro_monthly': 'STRIPE_PRICE_PRO_MONTHLY',
    'pro_yearly': 'STRIPE_PRICE_PRO_YEARLY',
    'agency_monthly': 'STRIPE_PRICE_AGENCY_MONTHLY',
    'agency_yearly': 'STRIPE_PRICE_AGENCY_YEARLY',
}


def _float_env(name, default):
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {name}: {raw!r}")
        return default


def get_config():
    """Get configuration from environment variables."""
    global _config_cache

    # Return cached config if available
    if _config_cache:
        return _config_cache

    env_config = {
        "supabase_url": os.environ.get("SUPABASE_URL", ""),
        "supabase_anon_key": os.environ.get("SUPABASE_ANON_KEY", ""),
        "supabase_service_key": os.environ.get("SUPABASE_SERVICE_KEY", ""),
        "supabase_jwt_secret": os.environ.get("SUPABASE_JWT_SECRET", ""),
        "stripe_secret_key": os.environ.get("STRIPE_SECRET_KEY", ""),
        "stripe_publishable_key": os.environ.get("STRIPE_PUBLISHABLE_KEY", ""),
        "stripe_webhook_secret": os.environ.get("STRIPE_WEBHOOK_SECRET", ""),
        "price_ids": {
            name: os.environ.get(env_key, "") for name, env_key in PRICE_ENV_KEYS.items()
        },
        "rapidapi_key": os.environ.get("RAPIDAPI_KEY", ""),
        "app_url": os.environ.get("APP_URL", "http://localhost:8080").rstrip('/'),
        "cache_ttl_seconds": _float_env("CACHE_TTL_SECONDS", 300.0),
        "checkout_refresh_delay": _float_env("CHECKOUT_REFRESH_DELAY", 2.0),
        "local_store_path": os.environ.get("LOCAL_STORE_PATH", ""),
    }

    # Degraded mode is allowed, but say so once per load
    if not env_config["stripe_secret_key"]:
        logger.warning("STRIPE_SECRET_KEY not set - billing runs in local fallback mode")
    if not (env_config["supabase_url"] and env_config["supabase_service_key"]):
        logger.warning("Supabase not configured (SUPABASE_URL/SUPABASE_SERVICE_KEY) - using in-memory profile store")
    if not env_config["rapidapi_key"]:
        logger.warning("RAPIDAPI_KEY not set - TikTok data falls back to mock data")

    _config_cache = env_config
    return _config_cache


def reset_config():
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config_cache
    _config_cache = {}


def is_stripe_configured():
    return bool(get_config().get('stripe_secret_key'))


def is_supabase_configured():
    config = get_config()
    return bool(config.get('supabase_url') and config.get('supabase_service_key'))


def is_rapidapi_configured():
    return bool(get_config().get('rapidapi_key'))
