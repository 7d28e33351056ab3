"""
Supabase authentication utilities for PulseMetrics

This module verifies Supabase-issued JWT access tokens so API callers can be
identified without passing their user id explicitly.
"""

import jwt
import logging

from flask import request

logger = logging.getLogger('supabase_auth')


def get_supabase_config():
    """
    Get Supabase configuration from app config

    Returns:
        dict: Supabase configuration
    """
    from pulsemetrics.config import get_config
    config = get_config()
    return {
        'url': config.get('supabase_url', ''),
        'anon_key': config.get('supabase_anon_key', ''),
        'service_key': config.get('supabase_service_key', ''),
        'jwt_secret': config.get('supabase_jwt_secret', '')
    }


def verify_supabase_token(token):
    """
    Verify a Supabase JWT token

    Args:
        token (str): JWT token to verify

    Returns:
        dict or None: Token payload or None if invalid
    """
    if not token:
        return None

    jwt_secret = get_supabase_config()['jwt_secret']
    if not jwt_secret:
        logger.warning("SUPABASE_JWT_SECRET not configured - cannot verify tokens")
        return None

    try:
        return jwt.decode(
            token,
            jwt_secret,
            algorithms=["HS256"],
            audience="authenticated",
            options={"verify_exp": True}
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Token is expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Token verification failed: {str(e)}")
        return None


def get_token_from_header():
    """
    Get JWT token from Authorization header

    Returns:
        str or None: The token or None if header not found
    """
    auth_header = request.headers.get('Authorization')
    if auth_header and auth_header.startswith('Bearer '):
        return auth_header.split(' ', 1)[1]
    return None


def get_request_user_id():
    """User id (``sub`` claim) of the bearer token on the current request, or None"""
    payload = verify_supabase_token(get_token_from_header())
    if not payload:
        return None
    return payload.get('sub')
