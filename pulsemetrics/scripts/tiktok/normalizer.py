"""
TikTok response normalization

Third-party TikTok APIs return the same values under different field names
(camelCase, snake_case, nested under ``stats`` or ``author``...). Each canonical
field has one alias table here; the first alias that resolves to a value wins
and anything unmapped falls back to a documented zero value.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pulsemetrics.scripts.tiktok.records import (
    VideoRecord, VideoStats, ProfileRecord, ProfileStats
)

logger = logging.getLogger(__name__)

VIDEO_ALIASES = {
    'id': ('id', 'video_id', 'aweme_id'),
    'description': ('desc', 'description', 'title'),
    'create_time': ('createTime', 'create_time'),
    'author_username': ('author.uniqueId', 'author.unique_id'),
    'author_nickname': ('author.nickname',),
    'cover': ('video.cover', 'cover', 'origin_cover'),
    'duration': ('video.duration', 'duration'),
}

VIDEO_STAT_ALIASES = {
    'views': ('stats.playCount', 'play_count', 'playCount'),
    'likes': ('stats.diggCount', 'digg_count', 'diggCount'),
    'comments': ('stats.commentCount', 'comment_count', 'commentCount'),
    'shares': ('stats.shareCount', 'share_count', 'shareCount'),
}

HASHTAG_LIST_ALIASES = ('challenges', 'textExtra')
HASHTAG_NAME_ALIASES = ('hashtagName', 'name', 'title')

PROFILE_ALIASES = {
    'id': ('data.user.id', 'user.id', 'id'),
    'username': ('data.user.uniqueId', 'user.uniqueId', 'uniqueId', 'unique_id'),
    'nickname': ('data.user.nickname', 'user.nickname', 'nickname'),
    'avatar': ('data.user.avatarLarger', 'data.user.avatarMedium', 'user.avatarLarger',
               'user.avatarMedium', 'avatarMedium'),
    'bio': ('data.user.signature', 'user.signature', 'signature'),
    'verified': ('data.user.verified', 'user.verified', 'verified'),
}

PROFILE_STAT_ALIASES = {
    'followers': ('data.stats.followerCount', 'data.statsV2.followerCount',
                  'stats.followerCount', 'statsV2.followerCount', 'followerCount'),
    'following': ('data.stats.followingCount', 'data.statsV2.followingCount',
                  'stats.followingCount', 'followingCount'),
    'likes': ('data.stats.heartCount', 'data.statsV2.heartCount',
              'stats.heartCount', 'heartCount'),
    'videos': ('data.stats.videoCount', 'data.statsV2.videoCount',
               'stats.videoCount', 'videoCount'),
}

SOUND_ALIASES = {
    'id': ('id', 'musicId'),
    'title': ('title', 'musicName'),
    'author': ('author', 'authorName'),
    'play_url': ('playUrl', 'musicUrl'),
    'cover_url': ('coverUrl', 'coverLarge'),
    'duration': ('duration',),
    'usage_count': ('usageCount', 'userCount'),
}

HASHTAG_ALIASES = {
    'id': ('id', 'challengeId'),
    'name': ('name', 'challengeName'),
    'description': ('description', 'desc'),
    'view_count': ('viewCount', 'stats.viewCount'),
    'video_count': ('videoCount', 'stats.videoCount'),
}

SEARCH_USER_ALIASES = {
    'id': ('user.id', 'id'),
    'username': ('user.uniqueId', 'uniqueId'),
    'nickname': ('user.nickname', 'nickname'),
    'avatar': ('user.avatarMedium', 'avatarMedium'),
    'followers': ('user.followerCount', 'followerCount', 'stats.followerCount'),
    'verified': ('user.verified', 'verified'),
}


def lookup(data: Any, path: str) -> Any:
    """Resolve a dotted path (``stats.playCount``) against nested dicts."""
    current = data
    for part in path.split('.'):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def first_value(data: Any, aliases: Sequence[str], default: Any = None) -> Any:
    """Return the first alias that resolves to a non-empty value."""
    for alias in aliases:
        value = lookup(data, alias)
        if value is not None and value != '':
            return value
    return default


def as_count(value: Any) -> int:
    """Coerce a provider count to a non-negative int (0 when missing/garbage)."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        count = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(count, 0)


def _as_text(value: Any) -> str:
    return '' if value is None else str(value)


def extract_hashtags(raw: Dict) -> List[str]:
    """Hashtag names in appearance order; duplicates are kept."""
    for list_key in HASHTAG_LIST_ALIASES:
        items = raw.get(list_key)
        if items:
            break
    else:
        items = []

    tags = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = first_value(item, HASHTAG_NAME_ALIASES)
        if name:
            tags.append(str(name))
    return tags


def normalize_video(raw: Dict) -> VideoRecord:
    """Map one provider video payload to a VideoRecord."""
    stats = VideoStats(**{
        field_name: as_count(first_value(raw, aliases))
        for field_name, aliases in VIDEO_STAT_ALIASES.items()
    })

    music = None
    if isinstance(raw.get('music'), dict):
        music_raw = raw['music']
        music = {
            'id': music_raw.get('id'),
            'title': music_raw.get('title'),
            'author': music_raw.get('authorName'),
            'play_url': music_raw.get('playUrl'),
        }

    return VideoRecord(
        id=_as_text(first_value(raw, VIDEO_ALIASES['id'])),
        description=_as_text(first_value(raw, VIDEO_ALIASES['description'], '')),
        create_time=as_count(first_value(raw, VIDEO_ALIASES['create_time'])),
        stats=stats,
        hashtags=tuple(extract_hashtags(raw)),
        author_username=first_value(raw, VIDEO_ALIASES['author_username']),
        author_nickname=first_value(raw, VIDEO_ALIASES['author_nickname']),
        cover=first_value(raw, VIDEO_ALIASES['cover']),
        duration=as_count(first_value(raw, VIDEO_ALIASES['duration'])),
        music=music,
    )


def normalize_videos(items: Optional[Iterable[Dict]]) -> List[VideoRecord]:
    videos = []
    for item in items or []:
        if not isinstance(item, dict):
            logger.warning(f"Skipping non-object video payload: {type(item).__name__}")
            continue
        videos.append(normalize_video(item))
    return videos


def normalize_profile(raw: Dict, username: str) -> ProfileRecord:
    """Map a provider user-info payload to a ProfileRecord."""
    stats = ProfileStats(**{
        field_name: as_count(first_value(raw, aliases))
        for field_name, aliases in PROFILE_STAT_ALIASES.items()
    })
    resolved_username = _as_text(first_value(raw, PROFILE_ALIASES['username'], username))

    return ProfileRecord(
        id=first_value(raw, PROFILE_ALIASES['id']),
        username=resolved_username,
        nickname=_as_text(first_value(raw, PROFILE_ALIASES['nickname'], resolved_username)),
        avatar=first_value(raw, PROFILE_ALIASES['avatar']),
        bio=_as_text(first_value(raw, PROFILE_ALIASES['bio'], '')),
        verified=bool(first_value(raw, PROFILE_ALIASES['verified'], False)),
        stats=stats,
    )


def _normalize_flat(raw: Dict, aliases: Dict, count_fields: Sequence[str]) -> Dict:
    result = {}
    for field_name, field_aliases in aliases.items():
        value = first_value(raw, field_aliases)
        result[field_name] = as_count(value) if field_name in count_fields else value
    return result


def normalize_sound(raw: Dict) -> Dict:
    return _normalize_flat(raw, SOUND_ALIASES, ('usage_count',))


def normalize_hashtag(raw: Dict) -> Dict:
    return _normalize_flat(raw, HASHTAG_ALIASES, ('view_count', 'video_count'))


def normalize_search_user(raw: Dict) -> Dict:
    user = _normalize_flat(raw, SEARCH_USER_ALIASES, ('followers',))
    user['verified'] = bool(user['verified'])
    return user
