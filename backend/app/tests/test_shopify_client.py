"""Unit tests for ShopifyClient.

WHAT:
    Tests retry/backoff classification, pagination and batched metaobject
    lookups against an httpx.MockTransport.

WHY:
    Shopify throttles aggressively; the backoff schedule and the fatal/retry
    split have to be right without ever calling the real API.

REFERENCES:
    - app/services/shopify_client.py (module under test)
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.services.shopify_client import (
    RESOLVE_METAOBJECTS_QUERY,
    ShopifyAPIError,
    ShopifyClient,
    ShopifyDataShapeError,
    ShopifyRetriesExhausted,
    backoff_delay,
    is_throttle_error,
    normalize_store_domain,
)

OK = {"data": {"shop": {"name": "Test"}}}
THROTTLED = {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}


def _sleeps(mock_sleep) -> list:
    return [call.args[0] for call in mock_sleep.await_args_list]


def _page(nodes, has_next=False, cursor=None, key="metaobjects"):
    return {
        "data": {
            key: {
                "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                "edges": [{"node": node} for node in nodes],
            }
        }
    }


class TestBackoffHelpers:
    """Pure helpers used by the retry loop."""

    def test_backoff_is_exponential_and_capped(self):
        """WHAT: min(base * 2^attempt, 15).
        WHY: Shared schedule for throttle (base 2s) and HTTP (base 1s) retries.
        """
        assert [backoff_delay(a, 1.0) for a in range(6)] == [1, 2, 4, 8, 15, 15]
        assert [backoff_delay(a, 2.0) for a in range(4)] == [2, 4, 8, 15]

    def test_throttle_detected_from_extension_code(self):
        assert is_throttle_error([{"message": "slow down", "extensions": {"code": "THROTTLED"}}])

    def test_code_takes_precedence_over_message(self):
        """WHAT: An error with a non-throttle code is not a throttle, whatever the text says.
        WHY: Message text is only a fallback for errors without a code.
        """
        assert not is_throttle_error([{"message": "Throttled?", "extensions": {"code": "ACCESS_DENIED"}}])

    def test_message_fallback_when_code_absent(self):
        assert is_throttle_error([{"message": "Request was THROTTLED"}])
        assert not is_throttle_error([{"message": "Field 'foo' doesn't exist"}])

    def test_normalize_store_domain(self):
        assert normalize_store_domain("https://demo.myshopify.com/") == "demo.myshopify.com"
        assert normalize_store_domain(" demo.myshopify.com ") == "demo.myshopify.com"


class TestExecuteRetries:
    """Retry classification in ShopifyClient.execute."""

    def test_success_sends_token_and_query(self, make_shopify_client):
        client, requests = make_shopify_client([(200, OK)])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            data = asyncio.run(client.execute("{ shop { name } }", {"a": 1}))

        assert data == OK
        assert len(requests) == 1
        request = requests[0]
        assert str(request.url) == "https://test-store.myshopify.com/admin/api/2025-01/graphql.json"
        assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
        assert json.loads(request.content) == {"query": "{ shop { name } }", "variables": {"a": 1}}
        mock_sleep.assert_not_awaited()

    @pytest.mark.parametrize("failures", [1, 3, 5])
    def test_http_429_then_success(self, make_shopify_client, failures):
        """WHAT: N x 429 then 200 -> N+1 calls, sleeps min(2^k, 15) seconds.
        WHY: Transient upstream failures must be retried with backoff.
        """
        client, requests = make_shopify_client([(429, {})] * failures + [(200, OK)])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            data = asyncio.run(client.execute("{ shop { name } }"))

        assert data == OK
        assert len(requests) == failures + 1
        assert _sleeps(mock_sleep) == [min(2 ** k, 15) for k in range(failures)]

    def test_retry_after_header_wins(self, make_shopify_client):
        client, _ = make_shopify_client([(503, {}, {"Retry-After": "7"}), (200, OK)])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            asyncio.run(client.execute("{ shop { name } }"))

        assert _sleeps(mock_sleep) == [7.0]

    def test_non_positive_retry_after_falls_back_to_backoff(self, make_shopify_client):
        client, _ = make_shopify_client([(500, {}, {"Retry-After": "0"}), (200, OK)])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            asyncio.run(client.execute("{ shop { name } }"))

        assert _sleeps(mock_sleep) == [1]

    def test_graphql_throttle_uses_two_second_base(self, make_shopify_client):
        client, requests = make_shopify_client([(200, THROTTLED), (200, THROTTLED), (200, OK)])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            data = asyncio.run(client.execute("{ shop { name } }"))

        assert data == OK
        assert len(requests) == 3
        assert _sleeps(mock_sleep) == [2, 4]

    def test_transport_error_is_retried(self, make_shopify_client):
        client, requests = make_shopify_client([
            (0, httpx.ConnectError("connection reset")),
            (200, OK),
        ])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            data = asyncio.run(client.execute("{ shop { name } }"))

        assert data == OK
        assert len(requests) == 2
        assert _sleeps(mock_sleep) == [1]

    def test_non_throttle_graphql_errors_are_returned(self, make_shopify_client):
        """WHAT: Other GraphQL errors come back as-is, not retried.
        WHY: Callers decide whether a partial payload is usable.
        """
        payload = {"data": None, "errors": [{"message": "Field 'x' doesn't exist"}]}
        client, requests = make_shopify_client([(200, payload)])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock):
            data = asyncio.run(client.execute("{ x }"))

        assert data == payload
        assert len(requests) == 1

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_other_http_status_is_fatal(self, make_shopify_client, status):
        client, requests = make_shopify_client([(status, {"errors": "Invalid API key"})])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(ShopifyAPIError) as exc_info:
                asyncio.run(client.execute("{ shop { name } }"))

        assert not isinstance(exc_info.value, ShopifyRetriesExhausted)
        assert exc_info.value.status_code == status
        assert str(exc_info.value).startswith(f"Shopify GraphQL error: {status}")
        assert len(requests) == 1
        mock_sleep.assert_not_awaited()

    def test_non_json_success_body_is_api_error(self):
        """WHAT: A 200 carrying an HTML maintenance page raises ShopifyAPIError.
        WHY: Routers only translate ShopifyAPIError into a 500 with a message.
        """
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, text="<html>maintenance</html>")

        client = ShopifyClient(
            shop_domain="test-store.myshopify.com",
            access_token="shpat_test",
            transport=httpx.MockTransport(handler),
        )

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(ShopifyAPIError) as exc_info:
                asyncio.run(client.execute("{ shop { name } }"))

        assert exc_info.value.status_code == 200
        assert "invalid JSON" in str(exc_info.value)
        assert len(requests) == 1
        mock_sleep.assert_not_awaited()

    def test_retries_exhausted_after_seven_attempts(self, make_shopify_client):
        """WHAT: With the default 6 retries, the 7th throttled response gives up.
        WHY: Bounded retries; the last error payload is attached.
        """
        client, requests = make_shopify_client([(200, THROTTLED)] * 7)

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(ShopifyRetriesExhausted) as exc_info:
                asyncio.run(client.execute("{ shop { name } }"))

        assert len(requests) == 7
        assert exc_info.value.attempts == 7
        assert exc_info.value.last_error == THROTTLED["errors"]
        assert _sleeps(mock_sleep) == [2, 4, 8, 15, 15, 15, 15]


class TestPagination:
    """Cursor pagination shared by products and metaobjects."""

    def test_shop_listing_follows_cursor_with_pause(self, make_shopify_client):
        shop_a = {"id": "gid://shopify/Metaobject/1", "displayName": "Alpha", "handle": "alpha",
                  "type": "shop_name", "fields": [{"key": "name", "value": "Alpha"}]}
        shop_b = {"id": "gid://shopify/Metaobject/2", "displayName": "Beta", "handle": "beta",
                  "type": "shop_name", "fields": []}
        client, requests = make_shopify_client([
            (200, _page([shop_a], has_next=True, cursor="c1")),
            (200, _page([shop_b])),
        ])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            shops = asyncio.run(client.get_shop_name_metaobjects())

        assert shops == [shop_a, shop_b]
        assert json.loads(requests[0].content)["variables"] == {"cursor": None}
        assert json.loads(requests[1].content)["variables"] == {"cursor": "c1"}
        assert _sleeps(mock_sleep) == [0.4]

    def test_missing_connection_without_errors_is_empty(self, make_shopify_client):
        client, requests = make_shopify_client([(200, {"data": {}})])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock):
            shops = asyncio.run(client.get_shop_name_metaobjects())

        assert shops == []
        assert len(requests) == 1

    def test_missing_connection_with_errors_is_fatal(self, make_shopify_client):
        errors = [{"message": "Access denied for metaobjects", "extensions": {"code": "ACCESS_DENIED"}}]
        client, _ = make_shopify_client([(200, {"data": None, "errors": errors})])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock):
            with pytest.raises(ShopifyDataShapeError) as exc_info:
                asyncio.run(client.get_shop_name_metaobjects())

        assert exc_info.value.errors == errors


class TestMetaobjectLookup:
    """Batched nodes(ids:) resolution."""

    def test_batches_of_fifty_with_pause_between(self, make_shopify_client):
        ids = [f"gid://shopify/Metaobject/{i}" for i in range(120)]
        responses = [
            (200, {"data": {"nodes": [{"id": gid, "displayName": gid[-3:]} for gid in ids[s:s + 50]]}})
            for s in (0, 50, 100)
        ]
        client, requests = make_shopify_client(responses)

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock) as mock_sleep:
            found = asyncio.run(client.get_metaobjects_by_ids(ids))

        assert len(found) == 120
        assert [len(json.loads(r.content)["variables"]["ids"]) for r in requests] == [50, 50, 20]
        assert _sleeps(mock_sleep) == [0.15, 0.15]

    def test_unresolved_nodes_are_omitted(self, make_shopify_client):
        client, _ = make_shopify_client([
            (200, {"data": {"nodes": [None, {"id": "gid://shopify/Metaobject/2", "displayName": "Two"}, {}]}}),
        ])

        with patch("app.services.shopify_client.sleep", new_callable=AsyncMock):
            found = asyncio.run(client.get_metaobjects_by_ids(["a", "gid://shopify/Metaobject/2", "c"]))

        assert found == [{"id": "gid://shopify/Metaobject/2", "displayName": "Two"}]

    def test_lookup_does_not_request_metaobject_type(self):
        """WHAT: The nodes query asks for displayName, handle and fields only.
        WHY: A shop_name type would name every shop "name" via the type suffix.
        """
        selection = RESOLVE_METAOBJECTS_QUERY.split("... on Metaobject")[1]
        assert "type" not in selection
        assert "displayName" in selection
