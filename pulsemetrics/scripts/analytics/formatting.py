"""
Display helpers for dashboard numbers and times
"""
import time
from typing import Optional

DAY_NAMES = ['Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat']

TIME_AGO_UNITS = [
    ('year', 31536000),
    ('month', 2592000),
    ('week', 604800),
    ('day', 86400),
    ('hour', 3600),
    ('minute', 60),
]


def format_hour(hour: int) -> str:
    """Format hour for display, e.g. 18 -> '6:00 PM'"""
    if hour == 0:
        return '12:00 AM'
    if hour < 12:
        return f'{hour}:00 AM'
    if hour == 12:
        return '12:00 PM'
    return f'{hour - 12}:00 PM'


def hour_label(hour: int) -> str:
    """Short heatmap row label, e.g. 0 -> '12am', 18 -> '6pm'"""
    if hour == 0:
        return '12am'
    if hour < 12:
        return f'{hour}am'
    if hour == 12:
        return '12pm'
    return f'{hour - 12}pm'


def format_number(num: float) -> str:
    """Format count with K/M/B suffix"""
    if num >= 1000000000:
        return f"{num / 1000000000:.1f}B"
    elif num >= 1000000:
        return f"{num / 1000000:.1f}M"
    elif num >= 1000:
        return f"{num / 1000:.1f}K"
    else:
        return str(num)


def time_ago(timestamp: float, now: Optional[float] = None) -> str:
    """Relative time since a Unix timestamp, e.g. '3 days ago'"""
    if now is None:
        now = time.time()
    seconds = int(now - timestamp)

    for unit, unit_seconds in TIME_AGO_UNITS:
        interval = seconds // unit_seconds
        if interval >= 1:
            return f"{interval} {unit}{'s' if interval > 1 else ''} ago"

    return 'Just now'
