"""
User profile store

Holds the billing fields of each user profile (``stripe_customer_id``, ``plan``,
``subscription_status``, ``updated_at``). Production uses the Supabase
``profiles`` table through the Supabase client; without Supabase credentials a
process-local in-memory store is used instead.
"""
import logging
from datetime import datetime, timezone
from threading import Lock

from supabase import create_client, Client

from pulsemetrics.config import get_config, is_supabase_configured
from pulsemetrics.errors import UpstreamError

logger = logging.getLogger('profile_store')

PROFILES_TABLE = 'profiles'
PROFILE_FIELDS = 'id,stripe_customer_id,plan,subscription_status,updated_at'


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat()


class SupabaseProfileStore:
    """Profiles table accessed through the Supabase client with the service key"""

    def __init__(self, url, service_key, client=None):
        self.url = url
        self.service_key = service_key
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = create_client(self.url, self.service_key)
        return self._client

    def _execute(self, action, query):
        try:
            response = query.execute()
        except Exception as e:
            raise UpstreamError(f"Supabase {action} profiles failed: {e}") from e
        return response.data or []

    def _select_one(self, column, value):
        query = self.client.table(PROFILES_TABLE).select(PROFILE_FIELDS).eq(column, value).limit(1)
        rows = self._execute('select', query)
        return rows[0] if rows else None

    def _update(self, column, value, updates):
        query = self.client.table(PROFILES_TABLE).update(self._stamp(updates)).eq(column, value)
        return self._execute('update', query)

    def get_profile(self, user_id):
        """Get a profile by user id, or None"""
        return self._select_one('id', user_id)

    def get_by_customer_id(self, customer_id):
        return self._select_one('stripe_customer_id', customer_id)

    def update_by_user_id(self, user_id, updates):
        logger.info(f"Updating profile {user_id} with {updates}")
        return self._update('id', user_id, updates)

    def update_by_customer_id(self, customer_id, updates):
        logger.info(f"Updating profile for customer {customer_id} with {updates}")
        return self._update('stripe_customer_id', customer_id, updates)

    @staticmethod
    def _stamp(updates):
        stamped = dict(updates)
        stamped['updated_at'] = utc_now_iso()
        return stamped


class InMemoryProfileStore:
    """Dict-backed profile store for local development"""

    def __init__(self, profiles=None):
        self._profiles = {user_id: dict(row) for user_id, row in (profiles or {}).items()}
        self._lock = Lock()

    def get_profile(self, user_id):
        with self._lock:
            row = self._profiles.get(user_id)
            return dict(row, id=user_id) if row else None

    def get_by_customer_id(self, customer_id):
        with self._lock:
            for user_id, row in self._profiles.items():
                if row.get('stripe_customer_id') == customer_id:
                    return dict(row, id=user_id)
        return None

    def update_by_user_id(self, user_id, updates):
        with self._lock:
            row = self._profiles.setdefault(user_id, {})
            row.update(updates)
            row['updated_at'] = utc_now_iso()
            return [dict(row, id=user_id)]

    def update_by_customer_id(self, customer_id, updates):
        updated = []
        with self._lock:
            for user_id, row in self._profiles.items():
                if row.get('stripe_customer_id') == customer_id:
                    row.update(updates)
                    row['updated_at'] = utc_now_iso()
                    updated.append(dict(row, id=user_id))
        if not updated:
            logger.warning(f"No profile found for customer {customer_id}")
        return updated


_profile_store = None


def get_profile_store():
    """Process-wide profile store (Supabase when configured)"""
    global _profile_store
    if _profile_store is None:
        if is_supabase_configured():
            config = get_config()
            _profile_store = SupabaseProfileStore(config['supabase_url'], config['supabase_service_key'])
            logger.info("Using Supabase profile store")
        else:
            logger.warning("Supabase not configured - using in-memory profile store")
            _profile_store = InMemoryProfileStore()
    return _profile_store


def set_profile_store(store):
    """Replace the process-wide profile store (None resets to lazy init)."""
    global _profile_store
    _profile_store = store
