"""
Canonical TikTok record shapes

Every provider response is mapped into these records by the normalizer before
the analytics engine sees it. Records are immutable once built.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple, Dict


@dataclass(frozen=True)
class VideoStats:
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0

    @property
    def interactions(self) -> int:
        """Likes + comments + shares"""
        return self.likes + self.comments + self.shares


@dataclass(frozen=True)
class VideoRecord:
    """One published video's stats snapshot."""
    id: str
    description: str = ''
    create_time: int = 0
    stats: VideoStats = field(default_factory=VideoStats)
    hashtags: Tuple[str, ...] = ()
    author_username: Optional[str] = None
    author_nickname: Optional[str] = None
    cover: Optional[str] = None
    duration: int = 0
    music: Optional[Dict] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'description': self.description,
            'create_time': self.create_time,
            'stats': {
                'views': self.stats.views,
                'likes': self.stats.likes,
                'comments': self.stats.comments,
                'shares': self.stats.shares,
            },
            'hashtags': list(self.hashtags),
            'author_username': self.author_username,
            'author_nickname': self.author_nickname,
            'cover': self.cover,
            'duration': self.duration,
            'music': self.music,
        }


@dataclass(frozen=True)
class ProfileStats:
    followers: int = 0
    following: int = 0
    likes: int = 0
    videos: int = 0


@dataclass(frozen=True)
class ProfileRecord:
    """An account snapshot."""
    username: str
    id: Optional[str] = None
    nickname: str = ''
    avatar: Optional[str] = None
    bio: str = ''
    verified: bool = False
    stats: ProfileStats = field(default_factory=ProfileStats)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'username': self.username,
            'nickname': self.nickname,
            'avatar': self.avatar,
            'bio': self.bio,
            'verified': self.verified,
            'stats': {
                'followers': self.stats.followers,
                'following': self.stats.following,
                'likes': self.stats.likes,
                'videos': self.stats.videos,
            },
        }
