import pytest

from seoworks_webhooks.domain.deliverables import parse_deliverables, validate_deliverables
from seoworks_webhooks.domain.model import Deliverable


@pytest.mark.parametrize("deliverables", [None, [], "not-a-list", {"title": "x"}])
def test_missing_or_non_list_deliverables_are_valid(deliverables):
    assert validate_deliverables(deliverables) is True


def test_well_formed_deliverables_are_valid():
    deliverables = [
        {"type": "blog_post", "title": "Winter Tires Guide", "url": "https://d.example/blog"},
        {"type": "page", "title": "Service Specials"},
    ]

    assert validate_deliverables(deliverables) is True


@pytest.mark.parametrize(
    "deliverables",
    [
        [{"title": 123}],
        [{"type": "page"}],
        [None],
        ["Winter Tires Guide"],
        [{"title": "ok"}, {"title": "bad url", "url": 42}],
    ],
)
def test_malformed_deliverables_are_invalid(deliverables):
    assert validate_deliverables(deliverables) is False


def test_parse_returns_value_objects():
    parsed = parse_deliverables(
        [{"type": "blog_post", "title": "Winter Tires Guide", "url": "https://d.example/blog"}]
    )

    assert parsed == [
        Deliverable(type="blog_post", title="Winter Tires Guide", url="https://d.example/blog")
    ]


def test_parse_falls_back_to_empty_list_when_any_element_is_malformed():
    assert parse_deliverables([{"title": "ok"}, {"title": 123}]) == []
    assert parse_deliverables("garbage") == []
