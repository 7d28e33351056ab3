"""
Dashboard Service
Aggregates profile, videos, insights, trending data and competitors for one
dashboard session, shaped by the session's plan limits.
"""
import logging
import threading
import time
from datetime import tzinfo
from typing import Callable, Dict, List, Optional

from pulsemetrics.config import get_config
from pulsemetrics.scripts.analytics.analytics_engine import generate_insights, compare_with_competitors
from pulsemetrics.scripts.competitors.competitor_tracker import CompetitorTracker, clean_username
from pulsemetrics.scripts.tiktok.records import VideoRecord
from pulsemetrics.system.storage.cache import QueryCache, MemoryStore, create_local_store
from pulsemetrics.system.subscription.plans import UNLIMITED

logger = logging.getLogger(__name__)

ACCOUNT_VIDEO_COUNT = 50
MIN_SEARCH_LENGTH = 2
DAY_SECONDS = 86400


def apply_quota(items: List, limit: int) -> List:
    """First ``limit`` items; everything when unlimited."""
    if limit == UNLIMITED:
        return list(items)
    return list(items)[:max(0, limit)]


def filter_history(videos: List[VideoRecord], history_days: int, now: float) -> List[VideoRecord]:
    """Videos created within the last ``history_days`` days (all of them when unlimited)."""
    if history_days == UNLIMITED:
        return list(videos)
    cutoff = now - history_days * DAY_SECONDS
    return [v for v in videos if v.create_time >= cutoff]


class DashboardSession:
    """
    One user's dashboard.

    Fetches go through a read-through query cache. Each fetch slot (account,
    trending) carries a generation counter so a result for a superseded
    request is dropped instead of overwriting newer state.
    """

    def __init__(self, api, resolver, cache: Optional[QueryCache] = None, local_store=None,
                 tracker: Optional[CompetitorTracker] = None, tz: Optional[tzinfo] = None,
                 clock: Callable[[], float] = time.time):
        self.api = api
        self.resolver = resolver
        if cache is None:
            cache = QueryCache(MemoryStore(clock), ttl=get_config().get('cache_ttl_seconds', 300))
        self.cache = cache
        if local_store is None:
            local_store = create_local_store(get_config().get('local_store_path'))
        self.local_store = local_store
        self.tracker = tracker or CompetitorTracker(self.local_store, api, cache=cache, resolver=resolver)
        self.tz = tz
        self.clock = clock

        self.username = None
        self.account: Optional[Dict] = None
        self.trending: Optional[Dict] = None
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()

    def _begin(self, slot: str) -> int:
        with self._lock:
            generation = self._generations.get(slot, 0) + 1
            self._generations[slot] = generation
            return generation

    def _is_current(self, slot: str, generation: int) -> bool:
        with self._lock:
            return self._generations.get(slot) == generation

    # Cached provider reads

    def get_profile(self, username):
        return self.cache.get_or_fetch('profile', [username], lambda: self.api.get_user_profile(username))

    def get_videos(self, username, count=ACCOUNT_VIDEO_COUNT):
        return self.cache.get_or_fetch('videos', [username, count],
                                       lambda: self.api.get_user_videos(username, count))

    def get_trending_sounds(self, region='US'):
        return self.cache.get_or_fetch('trending-sounds', [region],
                                       lambda: self.api.get_trending_sounds(region))

    def get_trending_hashtags(self, region='US'):
        return self.cache.get_or_fetch('trending-hashtags', [region],
                                       lambda: self.api.get_trending_hashtags(region))

    def get_trending_videos(self, region='US', count=30):
        return self.cache.get_or_fetch('trending-videos', [region, count],
                                       lambda: self.api.get_trending_videos(region, count))

    def search_users(self, query):
        if not query or len(query) < MIN_SEARCH_LENGTH:
            return []
        return self.api.search_users(query)

    # Aggregates

    def load_account(self, username) -> Optional[Dict]:
        """
        Fetch and analyse an account.

        Returns the account view, or None when the request was superseded by a
        later ``load_account`` call before it finished.
        """
        username = clean_username(username)
        generation = self._begin('account')

        profile = self.get_profile(username)
        videos = self.get_videos(username)

        limits = self.resolver.limits
        visible = filter_history(videos, limits['history_days'], self.clock())
        insights = generate_insights(profile, visible, tz=self.tz)
        if insights is not None and not self.resolver.has_feature('best_times'):
            insights['posting_times'] = None

        if not self._is_current('account', generation):
            logger.info(f"Discarding superseded account data for @{username}")
            return None

        account = {
            'username': username,
            'profile': profile,
            'videos': visible,
            'insights': insights,
        }
        self.username = username
        self.account = account
        return account

    def load_trending(self, region='US') -> Optional[Dict]:
        generation = self._begin('trending')

        sounds = self.get_trending_sounds(region)
        hashtags = self.get_trending_hashtags(region)

        if not self._is_current('trending', generation):
            logger.info(f"Discarding superseded trending data for {region}")
            return None

        limits = self.resolver.limits
        self.trending = {
            'region': region,
            'sounds': apply_quota(sounds, limits['trending_sounds']),
            'hashtags': apply_quota(hashtags, limits['hashtags']),
        }
        return self.trending

    def competitor_report(self) -> Optional[Dict]:
        """Comparison against tracked competitors; None without an account or the feature."""
        if self.account is None or not self.resolver.has_feature('competitors'):
            return None
        data = self.tracker.fetch_data()
        summaries = [data[u] for u in self.tracker.competitors if u in data]
        return compare_with_competitors(self.account['profile'], self.account['videos'], summaries)

    def snapshot(self) -> Dict:
        """Everything the dashboard renders, as plain data"""
        account = self.account or {}
        profile = account.get('profile')
        return {
            'username': self.username,
            'profile': profile.to_dict() if profile else None,
            'videos': [v.to_dict() for v in account.get('videos', [])],
            'insights': account.get('insights'),
            'trending': self.trending,
            'competitors': self.tracker.competitors,
            'competitor_data': dict(self.tracker.data),
            'subscription': self.resolver.snapshot(),
        }
