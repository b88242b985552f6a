"""Completion policy for package requests."""

from dataclasses import dataclass
from typing import Mapping

from seoworks_webhooks.domain.model import PackageType, SeoRequest


@dataclass(frozen=True)
class PackageRequirements:
    """Minimum deliverable counts before a package request counts as done."""

    pages: int
    blogs: int
    gbp_posts: int


PACKAGE_REQUIREMENTS: Mapping[PackageType, PackageRequirements] = {
    PackageType.SILVER: PackageRequirements(pages=2, blogs=2, gbp_posts=4),
    PackageType.GOLD: PackageRequirements(pages=4, blogs=4, gbp_posts=8),
    PackageType.PLATINUM: PackageRequirements(pages=8, blogs=8, gbp_posts=16),
}


def should_complete(
    request: SeoRequest,
    requirements: Mapping[PackageType, PackageRequirements] = PACKAGE_REQUIREMENTS,
) -> bool:
    """Decide from current counters whether the request is complete.

    Requests without a package are single-deliverable orders and complete on
    any event. Improvements are tracked but deliberately not gated on.
    """
    if request.package_type is None:
        return True
    required = requirements.get(request.package_type)
    if required is None:
        return False
    return (
        request.pages_completed >= required.pages
        and request.blogs_completed >= required.blogs
        and request.gbp_posts_completed >= required.gbp_posts
    )
