"""Shopify GraphQL Admin API client.

WHAT:
    Wrapper for the Shopify Admin GraphQL API with:
    - Access token authentication
    - Retry with exponential backoff on HTTP 429/5xx, transport errors and
      GraphQL-level throttling
    - Cursor-based pagination with a fixed pause between pages
    - Batched `nodes(ids:)` lookups for metaobject references

WHY:
    Encapsulates all Shopify API interaction for the product sync and the
    shop metaobject listing, so both share one retry/backoff policy.

REFERENCES:
    - Shopify GraphQL Admin API: https://shopify.dev/docs/api/admin-graphql
    - Rate limits: https://shopify.dev/docs/api/usage/rate-limits
    - Pagination: https://shopify.dev/docs/api/usage/pagination-graphql
"""

import json
import logging
import math
from asyncio import sleep
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2025-01"
DEFAULT_MAX_RETRIES = 6
DEFAULT_TIMEOUT = 30.0

# Backoff schedule (seconds): min(base * 2^attempt, cap)
BACKOFF_CAP = 15.0
THROTTLE_BACKOFF_BASE = 2.0
HTTP_BACKOFF_BASE = 1.0

PAGE_SIZE = 100
PAGE_DELAY = 0.4
NODE_BATCH_SIZE = 50
NODE_BATCH_DELAY = 0.15


PRODUCTS_QUERY = """
query ProductsWithShopName($cursor: String) {
    products(first: 100, after: $cursor) {
        pageInfo {
            hasNextPage
            endCursor
        }
        edges {
            node {
                id
                title
                onlineStoreUrl
                featuredImage {
                    url
                }
                metafield(namespace: "custom", key: "shop_name") {
                    value
                    reference {
                        ... on Metaobject {
                            displayName
                        }
                    }
                }
                variants(first: 100) {
                    edges {
                        node {
                            id
                            sku
                        }
                    }
                }
            }
        }
    }
}
"""

SHOP_NAME_METAOBJECTS_QUERY = """
query GetShopNameMetaobjects($cursor: String) {
    metaobjects(first: 100, type: "shop_name", after: $cursor) {
        pageInfo {
            hasNextPage
            endCursor
        }
        edges {
            node {
                id
                displayName
                handle
                type
                fields {
                    key
                    value
                }
            }
        }
    }
}
"""

RESOLVE_METAOBJECTS_QUERY = """
query ResolveMetaobjects($ids: [ID!]!) {
    nodes(ids: $ids) {
        ... on Metaobject {
            id
            displayName
            handle
            fields {
                key
                value
            }
        }
    }
}
"""


class ShopifyAPIError(Exception):
    """Custom exception for Shopify API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List] = None):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class ShopifyRetriesExhausted(ShopifyAPIError):
    """Raised when every attempt was throttled or hit a transient failure."""

    def __init__(self, message: str, attempts: int, last_error: Any = None):
        super().__init__(message, errors=last_error if isinstance(last_error, list) else None)
        self.attempts = attempts
        self.last_error = last_error


class ShopifyDataShapeError(ShopifyAPIError):
    """Raised when an expected GraphQL connection is missing from a failed response."""


def backoff_delay(attempt: int, base: float) -> float:
    """Return the capped exponential backoff for a zero-based attempt number."""
    return min(base * (2 ** attempt), BACKOFF_CAP)


def is_throttle_error(errors: List[Any]) -> bool:
    """Return True if any GraphQL error is a throttle signal.

    The structured `extensions.code` (e.g. "THROTTLED") is authoritative. The
    message text is only inspected for errors that carry no code at all.
    """
    for error in errors or []:
        if not isinstance(error, dict):
            continue
        code = (error.get("extensions") or {}).get("code")
        if code:
            if "throttle" in str(code).lower():
                return True
            continue
        if "throttle" in str(error.get("message") or "").lower():
            return True
    return False


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds; None unless positive."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    if math.isfinite(seconds) and seconds > 0:
        return seconds
    return None


def normalize_store_domain(store_url: str) -> str:
    """Strip scheme and trailing slashes: "https://x.myshopify.com/" -> "x.myshopify.com"."""
    domain = store_url.strip()
    for prefix in ("https://", "http://"):
        if domain.lower().startswith(prefix):
            domain = domain[len(prefix):]
    return domain.rstrip("/")


class ShopifyClient:
    """GraphQL client for Shopify Admin API.

    WHAT: Handles all communication with Shopify's GraphQL Admin API
    WHY: Centralized API access with retry/backoff and pagination

    Usage:
        client = ShopifyClient(shop_domain="mystore.myshopify.com", access_token="shpat_xxx")
        shops = await client.get_shop_name_metaobjects()
        async for products in client.iter_product_pages():
            ...
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = DEFAULT_API_VERSION,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Shopify client.

        Args:
            shop_domain: Shopify store domain (e.g., "mystore.myshopify.com")
            access_token: Shopify Admin API access token
            api_version: API version to use (default: 2025-01)
            max_retries: Retries after the first attempt before giving up
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.shop_domain = normalize_store_domain(shop_domain)
        self.access_token = access_token
        self.api_version = api_version
        self.max_retries = max_retries
        self.timeout = timeout
        self.base_url = f"https://{self.shop_domain}/admin/api/{api_version}/graphql.json"
        self._transport = transport

        logger.info(f"[SHOPIFY_CLIENT] Initialized for {self.shop_domain} (API version: {api_version})")

    async def execute(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Execute a GraphQL query against Shopify Admin API.

        WHAT: POST the query, retrying transient failures with backoff
        WHY: Every Shopify read goes through this method

        Transient failures are GraphQL throttle errors (backoff base 2s),
        HTTP 429/5xx (Retry-After if given, else backoff base 1s) and
        transport errors (backoff base 1s). Delays are capped at 15s.

        Returns:
            The parsed JSON payload as-is, including any non-throttle
            `errors` the caller has to inspect.

        Raises:
            ShopifyAPIError: On any other non-2xx HTTP status, or a 2xx body
                that is not JSON (not retried)
            ShopifyRetriesExhausted: After max_retries + 1 failed attempts
        """
        headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }
        payload = {"query": query, "variables": variables or {}}

        attempt = 0
        last_error: Any = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            while attempt <= self.max_retries:
                try:
                    response = await client.post(self.base_url, json=payload, headers=headers)
                except httpx.TransportError as e:
                    delay = backoff_delay(attempt, HTTP_BACKOFF_BASE)
                    logger.warning(
                        f"[SHOPIFY_CLIENT] Request error: {e}, backing off {delay}s (attempt {attempt + 1})"
                    )
                    last_error = str(e)
                    await sleep(delay)
                    attempt += 1
                    continue

                if response.is_success:
                    try:
                        data = response.json()
                    except ValueError:
                        logger.error(
                            f"[SHOPIFY_CLIENT] Non-JSON {response.status_code} response: {response.text[:500]}"
                        )
                        raise ShopifyAPIError(
                            f"Shopify GraphQL error: invalid JSON in {response.status_code} response",
                            status_code=response.status_code,
                        )
                    errors = data.get("errors") if isinstance(data, dict) else None
                    if errors and is_throttle_error(errors):
                        delay = backoff_delay(attempt, THROTTLE_BACKOFF_BASE)
                        logger.warning(
                            f"[SHOPIFY_CLIENT] GraphQL throttled, backing off {delay}s (attempt {attempt + 1})"
                        )
                        last_error = errors
                        await sleep(delay)
                        attempt += 1
                        continue
                    if errors:
                        logger.warning(f"[SHOPIFY_CLIENT] GraphQL errors: {errors}")
                    return data

                if response.status_code == 429 or response.status_code >= 500:
                    retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                    delay = retry_after if retry_after is not None else backoff_delay(attempt, HTTP_BACKOFF_BASE)
                    logger.warning(
                        f"[SHOPIFY_CLIENT] HTTP {response.status_code} from Shopify, "
                        f"backing off {delay}s (attempt {attempt + 1})"
                    )
                    last_error = response.text
                    await sleep(delay)
                    attempt += 1
                    continue

                logger.error(f"[SHOPIFY_CLIENT] HTTP {response.status_code}: {response.text[:500]}")
                raise ShopifyAPIError(
                    f"Shopify GraphQL error: {response.status_code} {response.text}",
                    status_code=response.status_code,
                )

        raise ShopifyRetriesExhausted(
            f"Shopify GraphQL throttled/failed after {attempt} attempts: {json.dumps(last_error, default=str)}",
            attempts=attempt,
            last_error=last_error,
        )

    async def paginate(
        self,
        query: str,
        connection_key: str,
        page_delay: float = PAGE_DELAY,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """Yield the nodes of each page of a cursor-paginated connection.

        A missing connection in a payload that carries GraphQL errors raises
        ShopifyDataShapeError. A missing connection in an error-free payload
        ends pagination as an empty result.
        """
        cursor: Optional[str] = None
        page = 0

        while True:
            data = await self.execute(query, {"cursor": cursor})
            connection = (data.get("data") or {}).get(connection_key)

            if connection is None:
                errors = data.get("errors")
                if errors:
                    raise ShopifyDataShapeError(
                        f"Unexpected Shopify GraphQL response: missing {connection_key}",
                        errors=errors,
                    )
                logger.info(f"[SHOPIFY_CLIENT] No {connection_key} connection in response, treating as empty")
                return

            edges = connection.get("edges") or []
            nodes = [edge["node"] for edge in edges if edge and edge.get("node")]
            page += 1
            logger.info(f"[SHOPIFY_CLIENT] Fetched {len(nodes)} {connection_key} (page {page})")
            yield nodes

            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return
            cursor = page_info.get("endCursor")
            await sleep(page_delay)

    # =========================================================================
    # PRODUCT QUERIES
    # =========================================================================

    def iter_product_pages(self) -> AsyncIterator[List[Dict[str, Any]]]:
        """Yield raw product nodes, 100 per page, with shop_name metafield and variants."""
        return self.paginate(PRODUCTS_QUERY, "products")

    # =========================================================================
    # METAOBJECT QUERIES
    # =========================================================================

    async def get_shop_name_metaobjects(self) -> List[Dict[str, Any]]:
        """Fetch every metaobject of type `shop_name`.

        Returns:
            List of {id, displayName, handle, type, fields} dicts, verbatim
        """
        shops: List[Dict[str, Any]] = []
        async for nodes in self.paginate(SHOP_NAME_METAOBJECTS_QUERY, "metaobjects"):
            for node in nodes:
                shops.append({
                    "id": node.get("id"),
                    "displayName": node.get("displayName"),
                    "handle": node.get("handle"),
                    "type": node.get("type"),
                    "fields": node.get("fields") or [],
                })

        logger.info(f"[SHOPIFY_CLIENT] Total shop metaobjects fetched: {len(shops)}")
        return shops

    async def get_metaobjects_by_ids(
        self,
        ids: List[str],
        batch_size: int = NODE_BATCH_SIZE,
        batch_delay: float = NODE_BATCH_DELAY,
    ) -> List[Dict[str, Any]]:
        """Look up metaobjects by GID in batches via `nodes(ids:)`.

        Ids that do not resolve (deleted, not a metaobject) are omitted.
        """
        metaobjects: List[Dict[str, Any]] = []

        for start in range(0, len(ids), batch_size):
            if start:
                await sleep(batch_delay)
            batch = ids[start:start + batch_size]
            data = await self.execute(RESOLVE_METAOBJECTS_QUERY, {"ids": batch})
            nodes = (data.get("data") or {}).get("nodes") or []
            found = [node for node in nodes if node and node.get("id")]
            logger.info(f"[SHOPIFY_CLIENT] Resolved {len(found)}/{len(batch)} metaobjects in batch")
            metaobjects.extend(found)

        return metaobjects
