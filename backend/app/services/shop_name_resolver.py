"""Shop name resolution for product `custom.shop_name` metafields.

A product's shop name comes from a metafield that usually references a
`shop_name` metaobject. When Shopify returns the reference, its displayName is
used directly. When only the raw GID comes back, the metaobject is looked up
later and named by the first strategy in RESOLVERS that yields a value.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

GID_PREFIX = "gid://"
UNKNOWN_SHOP_NAME = "Unknown"

NAME_FIELD_KEYS = ("shop_name", "name", "shop", "title", "label")

Metaobject = Dict[str, Any]


def is_gid(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(GID_PREFIX)


def _fields(metaobject: Metaobject) -> List[Dict[str, Any]]:
    fields = metaobject.get("fields")
    if not isinstance(fields, list):
        return []
    return [field for field in fields if isinstance(field, dict)]


def _display_name(metaobject: Metaobject) -> Optional[str]:
    return metaobject.get("displayName")


def _name_like_field(metaobject: Metaobject) -> Optional[str]:
    # Only the first field with a name-like key counts, even if its value is empty.
    for field in _fields(metaobject):
        if str(field.get("key") or "").lower() in NAME_FIELD_KEYS:
            return field.get("value")
    return None


def _type_suffix(metaobject: Metaobject) -> Optional[str]:
    metaobject_type = metaobject.get("type")
    if isinstance(metaobject_type, str) and metaobject_type:
        return metaobject_type.split("_")[-1]
    return None


def _first_field_value(metaobject: Metaobject) -> Optional[str]:
    fields = _fields(metaobject)
    return fields[0].get("value") if fields else None


def _handle(metaobject: Metaobject) -> Optional[str]:
    return metaobject.get("handle")


RESOLVERS: List[Callable[[Metaobject], Optional[str]]] = [
    _display_name,
    _name_like_field,
    _type_suffix,
    _first_field_value,
    _handle,
]


def resolve_metaobject_name(metaobject: Metaobject) -> str:
    """Return a non-empty display name for a metaobject.

    Strategies run in priority order; the metaobject id is the last resort.
    """
    for resolver in RESOLVERS:
        value = resolver(metaobject)
        if isinstance(value, str) and value.strip():
            return value
    return str(metaobject.get("id") or UNKNOWN_SHOP_NAME)


def first_pass_shop_name(metafield: Optional[Dict[str, Any]]) -> Tuple[str, Optional[str]]:
    """Name a product from its shop_name metafield as returned with the product.

    Returns:
        (shop_name, pending_gid). pending_gid is the raw GID when the
        reference was not resolved by Shopify and still needs a lookup.
    """
    metafield = metafield or {}
    raw_value = metafield.get("value") or None
    reference_name = (metafield.get("reference") or {}).get("displayName") or None

    shop_name = reference_name or raw_value or UNKNOWN_SHOP_NAME
    pending_gid = raw_value if not reference_name and is_gid(raw_value) else None
    return shop_name, pending_gid
