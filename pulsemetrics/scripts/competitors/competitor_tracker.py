"""
Competitor tracking

Keeps the list of tracked competitor usernames in the local key-value store and
derives a summary (followers, average views, average engagement) for each one.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from pulsemetrics.errors import ValidationError
from pulsemetrics.scripts.analytics.analytics_engine import video_engagement, round2, round_int
from pulsemetrics.system.storage.cache import KeyValueStore, QueryCache

logger = logging.getLogger(__name__)

COMPETITORS_KEY = 'pulsemetrics_competitors'
COMPETITOR_VIDEO_COUNT = 10


def clean_username(username: str) -> str:
    return (username or '').replace('@', '').strip()


class CompetitorTracker:
    """Tracked competitors for one dashboard session"""

    def __init__(self, store: KeyValueStore, api, cache: Optional[QueryCache] = None,
                 resolver=None, max_workers: int = 3):
        self.store = store
        self.api = api
        self.cache = cache
        self.resolver = resolver
        self.max_workers = max_workers
        self.data: Dict[str, Dict] = {}

    @property
    def competitors(self) -> List[str]:
        return list(self.store.get(COMPETITORS_KEY) or [])

    def _save(self, competitors: List[str]) -> None:
        self.store.set(COMPETITORS_KEY, competitors)

    def add(self, username: str) -> bool:
        """
        Track a competitor. Returns False if already tracked.

        Raises:
            ValidationError: empty username or the plan's competitor quota is used up
        """
        cleaned = clean_username(username)
        if not cleaned:
            raise ValidationError('Username is required')

        competitors = self.competitors
        if cleaned in competitors:
            return False

        if self.resolver is not None and not self.resolver.within_limit('competitors', len(competitors)):
            logger.info(f"Competitor limit reached on plan {self.resolver.plan_id}")
            raise ValidationError('Competitor limit reached for your plan')

        competitors.append(cleaned)
        self._save(competitors)
        logger.info(f"Tracking competitor @{cleaned}")
        return True

    def remove(self, username: str) -> None:
        cleaned = clean_username(username)
        self._save([c for c in self.competitors if c != cleaned])
        self.data.pop(cleaned, None)

    def _fetch(self, operation, params, fetcher):
        if self.cache is None:
            return fetcher()
        return self.cache.get_or_fetch(operation, params, fetcher)

    def summarize(self, username: str) -> Dict:
        profile = self._fetch('profile', [username], lambda: self.api.get_user_profile(username))
        videos = self._fetch('videos', [username, COMPETITOR_VIDEO_COUNT],
                             lambda: self.api.get_user_videos(username, COMPETITOR_VIDEO_COUNT))

        avg_views = 0
        avg_engagement = 0.0
        if videos:
            avg_views = round_int(sum(v.stats.views for v in videos) / len(videos))
            avg_engagement = round2(sum(video_engagement(v) for v in videos) / len(videos))

        return {
            'username': username,
            'nickname': profile.nickname,
            'avatar': profile.avatar,
            'verified': profile.verified,
            'followers': profile.stats.followers,
            'avg_views': avg_views,
            'avg_engagement': avg_engagement,
        }

    def fetch_data(self) -> Dict[str, Dict]:
        """Summaries for every tracked competitor, keyed by username. Failures are skipped."""
        competitors = self.competitors
        if not competitors:
            self.data = {}
            return self.data

        data = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_username = {
                executor.submit(self.summarize, username): username
                for username in competitors
            }

            for future in as_completed(future_to_username):
                username = future_to_username[future]
                try:
                    data[username] = future.result()
                except Exception as e:
                    logger.error(f"Failed to fetch data for {username}: {e}")

        self.data = data
        return data
