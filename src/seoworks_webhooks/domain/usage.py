"""Usage accounting: task-type mapping and billing periods."""

import calendar
from datetime import datetime, timezone

from seoworks_webhooks.domain.model import UsageKey

TASK_TYPE_USAGE_KEYS: dict[str, UsageKey] = {
    "page": UsageKey.PAGES,
    "blog": UsageKey.BLOGS,
    "gbp_post": UsageKey.GBP_POSTS,
    "improvement": UsageKey.IMPROVEMENTS,
    "maintenance": UsageKey.IMPROVEMENTS,
    "seochange": UsageKey.IMPROVEMENTS,
}


def task_type_to_usage_key(raw_type: str) -> UsageKey | None:
    """Map a vendor task type (case-insensitive) to its usage counter."""
    return TASK_TYPE_USAGE_KEYS.get(raw_type.strip().lower())


def billing_period(now: datetime) -> tuple[datetime, datetime]:
    """Calendar month (UTC) containing ``now`` as an inclusive [start, end] pair."""
    now = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
    last_day = calendar.monthrange(now.year, now.month)[1]
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    end = datetime(now.year, now.month, last_day, 23, 59, 59, 999999, tzinfo=timezone.utc)
    return start, end
