"""
Analytics Engine

Pure functions that turn normalized TikTok records into dashboard insights:
- Engagement rates (account and per video)
- Best posting times heatmap
- Content growth trends
- Hashtag performance rankings
- Follower growth prediction
- Competitor comparison

Nothing in here performs I/O or raises on empty/partial input; every function
returns a documented "empty" result instead, because it runs on the rendering
path of the dashboard.
"""
import logging
import math
from datetime import datetime, tzinfo
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Dict, Optional, Sequence

from pulsemetrics.scripts.analytics.formatting import format_hour, hour_label, DAY_NAMES
from pulsemetrics.scripts.tiktok.normalizer import as_count
from pulsemetrics.scripts.tiktok.records import VideoRecord, VideoStats, ProfileRecord

logger = logging.getLogger(__name__)

TREND_THRESHOLD_PERCENT = 10
TOP_PERFORMER_COUNT = 5
BEST_TIME_COUNT = 5
BEST_DAY_COUNT = 3
HASHTAG_RANK_COUNT = 10
MIN_VIDEOS_FOR_PREDICTION = 3
DAILY_GROWTH_FACTOR = 0.001
DESCRIPTION_PREVIEW_CHARS = 50


def round2(value: float) -> float:
    """Round half-up to 2 decimals on the exact binary value."""
    return float(Decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def round_int(value: float) -> int:
    """Round half-up to the nearest integer."""
    return int(math.floor(value + 0.5))


def percent_label(value: float) -> str:
    return f"{round2(value):.2f}%"


def engagement_rate(stats: VideoStats, followers: int) -> float:
    """
    Account engagement rate: (likes + comments + shares) / followers * 100

    Returns 0 when followers is 0.
    """
    if not followers or followers <= 0:
        return 0.0
    return round2(stats.interactions / followers * 100)


def video_engagement(video: VideoRecord) -> float:
    """Video engagement rate with views as denominator; 0 when views is 0."""
    views = video.stats.views
    if views <= 0:
        return 0.0
    return round2(video.stats.interactions / views * 100)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def best_posting_times(videos: Sequence[VideoRecord], tz: Optional[tzinfo] = None) -> Dict:
    """
    Analyze best posting times based on video performance

    Args:
        videos: Videos to bucket
        tz: Timezone used for the local creation time (system local time when None)

    Returns:
        Dict with ``heatmap`` (24 rows, one per hour, day columns sun..sat holding
        average engagement x10), ``best_times`` (top 5 non-empty day/hour slots)
        and ``best_days`` (top 3 days that have at least one video)
    """
    # 7 days x 24 hours of [engagement total, video count]
    buckets = [[[0.0, 0] for _ in range(24)] for _ in range(7)]

    for video in videos:
        try:
            posted = datetime.fromtimestamp(video.create_time, tz=tz)
        except (OverflowError, OSError, ValueError) as e:
            logger.warning(f"Skipping video {video.id} with unusable create_time {video.create_time}: {e}")
            continue
        # isoweekday: Mon=1..Sun=7 -> Sun=0..Sat=6
        day = posted.isoweekday() % 7
        cell = buckets[day][posted.hour]
        cell[0] += video_engagement(video)
        cell[1] += 1

    def cell_average(day, hour):
        total, count = buckets[day][hour]
        return total / count if count else 0.0

    heatmap = []
    for hour in range(24):
        row = {'hour': hour_label(hour)}
        for day, day_name in enumerate(DAY_NAMES):
            row[day_name.lower()] = round_int(cell_average(day, hour) * 10)
        heatmap.append(row)

    # Bucket order is day-major; sorted() is stable so ties keep that order
    slots = [
        {'day': DAY_NAMES[day], 'hour': hour, 'avg': cell_average(day, hour)}
        for day in range(7)
        for hour in range(24)
        if buckets[day][hour][1] > 0
    ]
    slots = sorted(slots, key=lambda slot: slot['avg'], reverse=True)
    best_times = [
        {
            'day': slot['day'],
            'time': format_hour(slot['hour']),
            'engagement': percent_label(slot['avg']),
        }
        for slot in slots[:BEST_TIME_COUNT]
    ]

    # Each non-empty hour counts once towards its day's average
    days = []
    for day in range(7):
        hour_averages = [cell_average(day, hour) for hour in range(24) if buckets[day][hour][1] > 0]
        if hour_averages:
            days.append({'day': DAY_NAMES[day], 'avg_engagement': round2(_mean(hour_averages))})
    best_days = sorted(days, key=lambda d: d['avg_engagement'], reverse=True)[:BEST_DAY_COUNT]

    return {
        'heatmap': heatmap,
        'best_times': best_times,
        'best_days': best_days,
    }


def _preview(description: str) -> str:
    if len(description) <= DESCRIPTION_PREVIEW_CHARS:
        return description
    return description[:DESCRIPTION_PREVIEW_CHARS] + '...'


def content_trends(videos: Sequence[VideoRecord]) -> Dict:
    """
    Analyze content performance trends

    Videos are sorted newest-first and split at the midpoint; growth compares the
    average views of the recent half against the older half.
    """
    if not videos or all(video.stats.views == 0 for video in videos):
        return {'trend': 'neutral', 'growth': 0, 'avg_views': 0, 'top_performers': []}

    newest_first = sorted(videos, key=lambda v: v.create_time or 0, reverse=True)
    midpoint = len(newest_first) // 2
    recent = newest_first[:midpoint]
    older = newest_first[midpoint:]

    recent_avg = _mean([v.stats.views for v in recent])
    older_avg = _mean([v.stats.views for v in older])

    # A one-video list has no recent half to compare
    if recent and older_avg > 0:
        growth = round2((recent_avg - older_avg) / older_avg * 100)
    else:
        growth = 0

    trend = 'neutral'
    if growth > TREND_THRESHOLD_PERCENT:
        trend = 'growing'
    elif growth < -TREND_THRESHOLD_PERCENT:
        trend = 'declining'

    by_views = sorted(newest_first, key=lambda v: v.stats.views, reverse=True)
    top_performers = [
        {
            'id': video.id,
            'description': _preview(video.description),
            'views': video.stats.views,
            'engagement': percent_label(video_engagement(video)),
            'hashtags': list(video.hashtags),
        }
        for video in by_views[:TOP_PERFORMER_COUNT]
    ]

    return {
        'trend': trend,
        'growth': growth,
        'avg_views': round_int(recent_avg),
        'avg_views_older': round_int(older_avg),
        'top_performers': top_performers,
    }


def hashtag_performance(videos: Sequence[VideoRecord]) -> Dict:
    """
    Rank hashtags by average views and by use count (top 10 each).

    Tags are matched verbatim; a video counts once for every tag it lists.
    """
    hashtag_stats = {}

    for video in videos:
        engagement = video_engagement(video)
        for tag in video.hashtags:
            stats = hashtag_stats.setdefault(tag, {'count': 0, 'total_views': 0, 'total_engagement': 0.0})
            stats['count'] += 1
            stats['total_views'] += video.stats.views
            stats['total_engagement'] += engagement

    ranked = [
        {
            'tag': tag,
            'use_count': stats['count'],
            'avg_views': round_int(stats['total_views'] / stats['count']),
            'avg_engagement': percent_label(stats['total_engagement'] / stats['count']),
        }
        for tag, stats in hashtag_stats.items()
    ]
    ranked = sorted(ranked, key=lambda entry: entry['avg_views'], reverse=True)

    return {
        'top_by_views': ranked[:HASHTAG_RANK_COUNT],
        'top_by_usage': sorted(ranked, key=lambda entry: entry['use_count'], reverse=True)[:HASHTAG_RANK_COUNT],
    }


def predict_growth(followers: int, videos: Sequence[VideoRecord], timeframe_days: int = 30) -> Dict:
    """
    Naive follower projection: daily growth = average video engagement x 0.001.

    The factor is a placeholder heuristic, not a fitted model.
    """
    followers = max(int(followers or 0), 0)

    if not videos or len(videos) < MIN_VIDEOS_FOR_PREDICTION:
        return {
            'predicted_followers': followers,
            'change': 0,
            'change_percent': 0,
            'confidence': 'low',
            'timeframe_days': timeframe_days,
        }

    avg_engagement = _mean([video_engagement(v) for v in videos])
    daily_growth_rate = avg_engagement * DAILY_GROWTH_FACTOR
    change = round_int(followers * daily_growth_rate * timeframe_days)

    if len(videos) >= 20:
        confidence = 'high'
    elif len(videos) >= 10:
        confidence = 'medium'
    else:
        confidence = 'low'

    return {
        'predicted_followers': followers + change,
        'change': change,
        'change_percent': round2(change / followers * 100) if followers else 0,
        'confidence': confidence,
        'timeframe_days': timeframe_days,
    }


def _as_percent(value) -> float:
    """Numeric percentage from a number or a "3.20%" label; 0 when unreadable."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.strip().rstrip('%')
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _rank_first(values: List[float]) -> int:
    """1-based rank of values[0] in a stable descending sort."""
    order = sorted(range(len(values)), key=lambda i: values[i], reverse=True)
    return order.index(0) + 1


def compare_with_competitors(profile: ProfileRecord, videos: Sequence[VideoRecord],
                             competitors: Sequence[Dict]) -> Dict:
    """
    Compare the user's account against competitor summaries

    Args:
        profile: The user's profile
        videos: The user's videos
        competitors: Summaries with ``username``, ``followers``, ``avg_views`` and
            ``avg_engagement`` (a number or a ``'3.20%'`` label)

    Returns:
        Dict with the user's summary, the competitor summaries and 1-based rankings
        (ties go to the user, who is listed first)
    """
    user_engagement = _mean([video_engagement(v) for v in videos])
    user_views = _mean([v.stats.views for v in videos])

    user = {
        'username': profile.username,
        'followers': profile.stats.followers,
        'avg_views': round_int(user_views),
        'avg_engagement': percent_label(user_engagement),
    }

    rows = []
    for comp in competitors:
        rows.append({
            'username': comp.get('username'),
            'followers': as_count(comp.get('followers')),
            'avg_views': as_count(comp.get('avg_views')),
            'avg_engagement': _as_percent(comp.get('avg_engagement')),
        })

    rankings = {
        'followers': _rank_first([user['followers']] + [r['followers'] for r in rows]),
        'engagement': _rank_first([round2(user_engagement)] + [r['avg_engagement'] for r in rows]),
        'views': _rank_first([user['avg_views']] + [r['avg_views'] for r in rows]),
    }

    for row in rows:
        row['avg_engagement'] = percent_label(row['avg_engagement'])

    return {
        'user': user,
        'competitors': rows,
        'rankings': rankings,
    }


def generate_insights(profile: ProfileRecord, videos: Sequence[VideoRecord],
                      tz: Optional[tzinfo] = None) -> Optional[Dict]:
    """Full dashboard insight bundle for one account. None when there are no videos."""
    if not videos:
        return None

    account_stats = VideoStats(
        likes=profile.stats.likes,
        comments=sum(v.stats.comments for v in videos),
        shares=sum(v.stats.shares for v in videos),
    )
    total_views = sum(v.stats.views for v in videos)

    return {
        'engagement_rate': engagement_rate(account_stats, profile.stats.followers),
        'posting_times': best_posting_times(videos, tz=tz),
        'content_trends': content_trends(videos),
        'hashtag_performance': hashtag_performance(videos),
        'growth_prediction': predict_growth(profile.stats.followers, videos),
        'total_views': total_views,
        'avg_views': round_int(total_views / len(videos)),
    }
