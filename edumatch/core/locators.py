"""
Storage Locators
Normalizes the different ways a stored object is referenced (s3:// URIs,
virtual-hosted or path-style HTTPS URLs, bare keys) into one canonical key
"""

from typing import NamedTuple, Optional, Set
from urllib.parse import unquote, urlsplit

from edumatch.core.config import settings

S3_SCHEME = "s3://"
HTTP_SCHEMES = ("http://", "https://")

# Key classes that embed an owner id as their second segment
USERS_KEY_CLASS = "users"
INSTITUTIONS_KEY_CLASS = "institutions"
OWNED_KEY_CLASSES = (USERS_KEY_CLASS, INSTITUTIONS_KEY_CLASS)


class KeyOwner(NamedTuple):
    """Owner segment encoded in a canonical key"""

    key_class: Optional[str]
    owner_id: Optional[str]


def _endpoint_host(endpoint: str) -> str:
    if "://" in endpoint:
        endpoint = endpoint.split("://", 1)[1]
    return endpoint.rstrip("/").lower()


def _path_style_hosts() -> Set[str]:
    """Hosts whose first path segment is the bucket name"""
    endpoint = _endpoint_host(settings.MINIO_ENDPOINT)
    hosts = {endpoint}
    # Default ports are dropped from URLs by most clients
    if endpoint.endswith(":80") or endpoint.endswith(":443"):
        hosts.add(endpoint.rsplit(":", 1)[0])
    return hosts


def _is_virtual_hosted(host: str) -> bool:
    """bucket.s3[.region].amazonaws.com or bucket.<STORAGE_PUBLIC_HOST>"""
    if host.endswith(".amazonaws.com") and (".s3." in host or ".s3-" in host):
        return not host.startswith("s3.") and not host.startswith("s3-")
    public_host = settings.STORAGE_PUBLIC_HOST
    if public_host:
        return host.endswith("." + public_host.lower())
    return False


def _is_aws_path_style(host: str) -> bool:
    """s3[.region].amazonaws.com/bucket/key"""
    return host.endswith(".amazonaws.com") and (
        host.startswith("s3.") or host.startswith("s3-")
    )


def _clean_key(path: str) -> Optional[str]:
    key = path.lstrip("/")
    if not key:
        return None
    for segment in key.split("/"):
        if segment in ("", ".", ".."):
            return None
    return key


def _drop_bucket(path: str) -> Optional[str]:
    parts = path.lstrip("/").split("/", 1)
    if len(parts) < 2 or not parts[0]:
        return None
    return parts[1]


def _key_from_url(locator: str) -> Optional[str]:
    try:
        parts = urlsplit(locator)
        host = (parts.hostname or "").lower()
        port = parts.port
    except ValueError:
        return None

    if not host:
        return None

    path = unquote(parts.path)
    netloc = f"{host}:{port}" if port else host

    if _is_virtual_hosted(host):
        return _clean_key(path)
    if netloc in _path_style_hosts() or _is_aws_path_style(host):
        remainder = _drop_bucket(path)
        return _clean_key(remainder) if remainder else None
    return None


def normalize_locator(locator: Optional[str]) -> Optional[str]:
    """
    Map any accepted locator to its canonical storage key

    Args:
        locator: s3://bucket/key, https://bucket.<storage-host>/key?query,
            a path-style URL on the storage endpoint, or a bare key

    Returns:
        The key with scheme, host, bucket and query stripped and no leading
        separator, or None when the locator is not a valid reference
    """
    if locator is None:
        return None

    locator = locator.strip()
    if not locator:
        return None

    lowered = locator.lower()

    if lowered.startswith(S3_SCHEME):
        remainder = _drop_bucket(locator[len(S3_SCHEME):])
        return _clean_key(remainder) if remainder else None

    if lowered.startswith(HTTP_SCHEMES):
        return _key_from_url(locator)

    if "://" in locator:
        # Unsupported scheme
        return None

    return _clean_key(locator)


def parse_owner(key: str) -> KeyOwner:
    """Return the owner segment of users/{id}/... or institutions/{id}/... keys"""
    parts = key.split("/")
    if len(parts) >= 3 and parts[0] in OWNED_KEY_CLASSES and parts[1]:
        return KeyOwner(parts[0], parts[1])
    return KeyOwner(None, None)
