"""
TikTok API Integration
Handles all TikTok data fetching via RapidAPI, with mock fallbacks
"""
import logging
import time
from typing import List, Dict, Optional, Callable

import requests

from pulsemetrics.config import get_config
from pulsemetrics.errors import ConfigurationError, UpstreamError
from pulsemetrics.scripts.tiktok import mock_data
from pulsemetrics.scripts.tiktok.normalizer import (
    normalize_profile, normalize_videos, normalize_video, normalize_sound,
    normalize_hashtag, normalize_search_user
)
from pulsemetrics.scripts.tiktok.records import ProfileRecord, VideoRecord

logger = logging.getLogger(__name__)

RAPIDAPI_HOSTS = {
    'primary': 'tiktok-scraper7.p.rapidapi.com',
    'trending': 'tiktok-trending-data.p.rapidapi.com',
}


class TikTokAPI:
    """TikTok API handler using RapidAPI"""

    def __init__(self, api_key: Optional[str] = None, clock: Callable[[], float] = time.time,
                 timeout: int = 15, session: Optional[requests.Session] = None):
        self.api_key = api_key if api_key is not None else get_config().get('rapidapi_key', '')
        self.clock = clock
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _request(self, endpoint: str, host: str = RAPIDAPI_HOSTS['primary'],
                 params: Optional[Dict] = None) -> Dict:
        """
        Make a GET request to a RapidAPI host

        Raises:
            ConfigurationError: no RapidAPI key configured
            UpstreamError: network failure, non-2xx status or non-JSON body
        """
        if not self.api_key:
            raise ConfigurationError('RapidAPI key not configured')

        url = f"https://{host}{endpoint}"
        headers = {
            "x-rapidapi-key": self.api_key,
            "x-rapidapi-host": host
        }

        try:
            response = self.session.get(url, headers=headers, params=params or {}, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"RapidAPI request to {endpoint} failed: {e}") from e

        logger.info(f"RapidAPI {endpoint} response status: {response.status_code}")

        if response.status_code == 429:
            raise UpstreamError(f"RapidAPI rate limit exceeded for {endpoint}")
        if not response.ok:
            raise UpstreamError(f"RapidAPI error for {endpoint}: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            logger.debug(f"Non-JSON body (first 200 chars): {response.text[:200] if response.text else 'EMPTY'}")
            raise UpstreamError(f"RapidAPI returned non-JSON response for {endpoint}") from e

        if not isinstance(data, dict):
            raise UpstreamError(f"RapidAPI returned unexpected payload for {endpoint}")
        return data

    def extract_username(self, url: str) -> Optional[str]:
        """Extract username from TikTok URL or @handle"""
        url = (url or '').strip()
        if not url:
            return None

        if '@' in url:
            return url.split('@')[1].split('/')[0].split('?')[0] or None

        # Already a username
        if '/' not in url and '.' not in url:
            return url

        return None

    def get_user_profile(self, username: str) -> ProfileRecord:
        """
        Get user profile by username

        Args:
            username: TikTok username (without @)

        Returns:
            ProfileRecord (mock profile when the API is unavailable)
        """
        try:
            data = self._request('/user/info', params={'unique_id': username})
            if not data.get('data'):
                raise UpstreamError(f"No profile data returned for {username}")
            return normalize_profile(data, username)
        except (ConfigurationError, UpstreamError) as e:
            logger.warning(f"Using mock profile for {username}: {e}")
            return mock_data.mock_user_profile(username)

    def get_user_videos(self, username: str, count: int = 30) -> List[VideoRecord]:
        """
        Get a user's recent videos

        Args:
            username: TikTok username (without @)
            count: Number of videos to fetch

        Returns:
            List of VideoRecord (mock videos when the API is unavailable)
        """
        try:
            data = self._request('/user/posts', params={'unique_id': username, 'count': str(count)})
            posts = data.get('data')
            videos = posts.get('videos') if isinstance(posts, dict) else posts
            if not videos:
                raise UpstreamError(f"No videos returned for {username}")
            return normalize_videos(videos)
        except (ConfigurationError, UpstreamError) as e:
            logger.warning(f"Using mock videos for {username}: {e}")
            return mock_data.mock_user_videos(username, self.clock(), count)

    def get_trending_videos(self, region: str = 'US', count: int = 30) -> List[VideoRecord]:
        try:
            data = self._request('/feed/list', params={'region': region, 'count': str(count)})
            if not data.get('data'):
                raise UpstreamError(f"No trending videos returned for {region}")
            return normalize_videos(data['data'])
        except (ConfigurationError, UpstreamError) as e:
            logger.warning(f"Using mock trending videos for {region}: {e}")
            return mock_data.mock_trending_videos(region, self.clock())

    def get_trending_sounds(self, region: str = 'US') -> List[Dict]:
        """Get trending sounds/music for a region"""
        try:
            data = self._request('/trending/sounds', RAPIDAPI_HOSTS['trending'], {'region': region})
            sounds = data.get('sounds') or data.get('data') or []
            return [normalize_sound(sound) for sound in sounds if isinstance(sound, dict)]
        except (ConfigurationError, UpstreamError) as e:
            logger.warning(f"Using mock trending sounds for {region}: {e}")
            return mock_data.mock_trending_sounds(region)

    def get_trending_hashtags(self, region: str = 'US') -> List[Dict]:
        """Get trending hashtags for a region"""
        try:
            data = self._request('/trending/hashtags', RAPIDAPI_HOSTS['trending'], {'region': region})
            hashtags = data.get('hashtags') or data.get('data') or []
            return [normalize_hashtag(tag) for tag in hashtags if isinstance(tag, dict)]
        except (ConfigurationError, UpstreamError) as e:
            logger.warning(f"Using mock trending hashtags for {region}: {e}")
            return mock_data.mock_trending_hashtags(region)

    def search_users(self, query: str, count: int = 20) -> List[Dict]:
        """Search for users. Falls back to an empty result list."""
        try:
            data = self._request('/search/user', params={'keywords': query, 'count': str(count)})
        except (ConfigurationError, UpstreamError) as e:
            logger.warning(f"User search unavailable for {query!r}: {e}")
            return []

        users = data.get('data') or []
        if isinstance(users, dict):
            users = users.get('user_list') or []
        return [normalize_search_user(user) for user in users if isinstance(user, dict)]

    def search_videos(self, query: str, count: int = 20) -> List[VideoRecord]:
        try:
            data = self._request('/search/video', params={'keywords': query, 'count': str(count)})
        except (ConfigurationError, UpstreamError) as e:
            logger.warning(f"Video search unavailable for {query!r}: {e}")
            return []

        videos = data.get('data') or []
        if isinstance(videos, dict):
            videos = videos.get('videos') or []
        return normalize_videos(videos)

    def get_video_details(self, video_url: str) -> Optional[VideoRecord]:
        try:
            data = self._request('/video/info', params={'url': video_url})
        except (ConfigurationError, UpstreamError) as e:
            logger.warning(f"Video details unavailable for {video_url}: {e}")
            return None

        if not isinstance(data.get('data'), dict):
            return None
        return normalize_video(data['data'])

    def get_hashtag_videos(self, hashtag: str, count: int = 30) -> Dict:
        """Get hashtag info and its videos"""
        empty = {'info': None, 'videos': []}
        try:
            data = self._request('/challenge/posts', params={'challenge_name': hashtag, 'count': str(count)})
        except (ConfigurationError, UpstreamError) as e:
            logger.warning(f"Hashtag videos unavailable for #{hashtag}: {e}")
            return empty

        posts = data.get('data')
        if not posts:
            return empty

        challenge_info = data.get('challengeInfo') or {}
        challenge = challenge_info.get('challenge') or {}
        stats = challenge_info.get('stats') or {}
        return {
            'info': {
                'id': challenge.get('id'),
                'name': challenge.get('title'),
                'description': challenge.get('desc'),
                'view_count': stats.get('viewCount', 0),
                'video_count': stats.get('videoCount', 0),
            },
            'videos': normalize_videos(posts.get('videos') if isinstance(posts, dict) else posts),
        }
