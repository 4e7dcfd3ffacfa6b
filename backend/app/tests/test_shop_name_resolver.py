"""Tests for shop name resolution.

REFERENCES:
    - app/services/shop_name_resolver.py
"""

import pytest

from app.services.shop_name_resolver import (
    UNKNOWN_SHOP_NAME,
    first_pass_shop_name,
    is_gid,
    resolve_metaobject_name,
)

GID = "gid://shopify/Metaobject/55"


class TestResolveMetaobjectName:
    """Strategies are tried in priority order until one yields a value."""

    @pytest.mark.parametrize("metaobject, expected", [
        ({"id": GID, "displayName": "Display", "fields": [{"key": "name", "value": "Field"}]}, "Display"),
        ({"id": GID, "fields": [{"key": "color", "value": "Red"}, {"key": "Shop", "value": "Named"}]}, "Named"),
        ({"id": GID, "type": "brand_shop_north", "fields": [{"key": "color", "value": "Red"}]}, "north"),
        ({"id": GID, "fields": [{"key": "region", "value": "North"}], "handle": "north-handle"}, "North"),
        ({"id": GID, "fields": [], "handle": "south-handle"}, "south-handle"),
        ({"id": GID}, GID),
    ])
    def test_priority(self, metaobject, expected):
        assert resolve_metaobject_name(metaobject) == expected

    def test_blank_values_fall_through(self):
        metaobject = {
            "id": GID,
            "displayName": "  ",
            "fields": [{"key": "name", "value": ""}, {"key": "shop", "value": "Ignored"}],
            "handle": "fallback",
        }
        # Only the first name-like field counts; the empty one falls through to the first field, also empty.
        assert resolve_metaobject_name(metaobject) == "fallback"

    def test_never_empty(self):
        assert resolve_metaobject_name({}) == UNKNOWN_SHOP_NAME
        assert resolve_metaobject_name({"fields": "not-a-list"}) == UNKNOWN_SHOP_NAME


class TestFirstPass:
    def test_reference_display_name_wins(self):
        assert first_pass_shop_name({"value": GID, "reference": {"displayName": "Alpha"}}) == ("Alpha", None)

    def test_raw_gid_is_pending(self):
        assert first_pass_shop_name({"value": GID, "reference": None}) == (GID, GID)

    def test_plain_text_value_used_as_is(self):
        assert first_pass_shop_name({"value": "Corner Shop"}) == ("Corner Shop", None)

    @pytest.mark.parametrize("metafield", [None, {}, {"value": "", "reference": {"displayName": ""}}])
    def test_missing_is_unknown(self, metafield):
        assert first_pass_shop_name(metafield) == (UNKNOWN_SHOP_NAME, None)

    def test_is_gid(self):
        assert is_gid(GID)
        assert not is_gid("Alpha")
        assert not is_gid(None)
