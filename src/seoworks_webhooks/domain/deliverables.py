"""Validation of untrusted vendor deliverable lists."""

from typing import Any

from seoworks_webhooks.domain.model import Deliverable


def validate_deliverables(deliverables: Any) -> bool:
    """Check that every deliverable is an object with a string title.

    A missing or non-list value is considered valid so vendors may omit the
    field. A present ``url`` must be a string.
    """
    if not deliverables or not isinstance(deliverables, list):
        return True
    return all(_is_valid_deliverable(d) for d in deliverables)


def _is_valid_deliverable(deliverable: Any) -> bool:
    if not isinstance(deliverable, dict):
        return False
    if not isinstance(deliverable.get("title"), str):
        return False
    url = deliverable.get("url")
    return url is None or isinstance(url, str)


def parse_deliverables(deliverables: Any) -> list[Deliverable]:
    """Turn raw deliverables into value objects, or [] when they fail validation."""
    if not isinstance(deliverables, list) or not validate_deliverables(deliverables):
        return []
    return [
        Deliverable(type=str(d.get("type") or ""), title=d["title"], url=d.get("url"))
        for d in deliverables
    ]
