"""
Mock TikTok data used when RapidAPI is not configured or a call fails.

Values are pseudo-random but seeded from the request parameters, so the same
username/region always produces the same records for a given reference time.
"""
import random
from typing import List, Dict

from pulsemetrics.scripts.tiktok.records import (
    VideoRecord, VideoStats, ProfileRecord, ProfileStats
)

DAY_SECONDS = 86400
HOUR_SECONDS = 3600

MOCK_SOUNDS = [
    ('Original Sound - @musicmaker', 'musicmaker', 'Music'),
    ('Aesthetic vibes remix', 'dj_aesthetic', 'Ambient'),
    ('Voiceover trending clip', 'voiceguy', 'Voice'),
    ('Dance challenge beat', 'beatdrop', 'Dance'),
    ('ASMR cooking sounds', 'asmr_chef', 'ASMR'),
    ('Chill lo-fi beats', 'lofi_girl', 'Music'),
    ('Comedy skit audio', 'funnybone', 'Comedy'),
    ('Motivational speech', 'inspire_daily', 'Motivation'),
]

MOCK_HASHTAGS = [
    'fyp', 'viral', 'trending', 'foryou', 'dance',
    'comedy', 'food', 'travel', 'fashion', 'fitness',
    'makeup', 'pets', 'music', 'art', 'diy',
]


def _rng(*parts) -> random.Random:
    return random.Random(':'.join(str(p) for p in parts))


def mock_user_profile(username: str) -> ProfileRecord:
    rng = _rng('profile', username)
    return ProfileRecord(
        id=f'mock-{username}',
        username=username,
        nickname=username[:1].upper() + username[1:],
        avatar=None,
        bio='This is a mock profile for development',
        verified=False,
        stats=ProfileStats(
            followers=rng.randrange(1000000),
            following=rng.randrange(1000),
            likes=rng.randrange(5000000),
            videos=rng.randrange(500),
        ),
    )


def mock_user_videos(username: str, now: float, count: int = 10) -> List[VideoRecord]:
    rng = _rng('videos', username)
    base = int(now)
    return [
        VideoRecord(
            id=f'mock-video-{i}',
            description=f'Mock video {i + 1} by @{username}',
            create_time=base - i * DAY_SECONDS,
            stats=VideoStats(
                views=rng.randrange(500000),
                likes=rng.randrange(50000),
                comments=rng.randrange(2000),
                shares=rng.randrange(1000),
            ),
            hashtags=('fyp', 'viral', 'trending'),
            author_username=username,
            author_nickname=username,
            duration=rng.randrange(60) + 10,
        )
        for i in range(count)
    ]


def mock_trending_videos(region: str, now: float, count: int = 20) -> List[VideoRecord]:
    rng = _rng('trending-videos', region)
    base = int(now)
    return [
        VideoRecord(
            id=f'trending-{i}',
            description=f'Trending video #{i + 1}',
            create_time=base - i * HOUR_SECONDS,
            stats=VideoStats(
                views=rng.randrange(10000000),
                likes=rng.randrange(1000000),
                comments=rng.randrange(50000),
                shares=rng.randrange(100000),
            ),
            hashtags=('fyp', 'trending', 'viral'),
            author_username=f'creator{i}',
            author_nickname=f'Creator {i}',
            duration=30,
        )
        for i in range(count)
    ]


def mock_trending_sounds(region: str) -> List[Dict]:
    rng = _rng('trending-sounds', region)
    return [
        {
            'id': f'sound-{i}',
            'title': title,
            'author': author,
            'category': category,
            'play_url': None,
            'cover_url': None,
            'duration': rng.randrange(30) + 10,
            'usage_count': rng.randrange(5000000),
            'growth': f'+{rng.randrange(400)}%',
        }
        for i, (title, author, category) in enumerate(MOCK_SOUNDS)
    ]


def mock_trending_hashtags(region: str) -> List[Dict]:
    rng = _rng('trending-hashtags', region)
    return [
        {
            'id': f'hashtag-{i}',
            'name': tag,
            'description': f'Trending hashtag #{tag}',
            'view_count': rng.randrange(10000000000),
            'video_count': rng.randrange(10000000),
        }
        for i, tag in enumerate(MOCK_HASHTAGS)
    ]
