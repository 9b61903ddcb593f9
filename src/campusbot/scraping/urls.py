"""
URL Builder - Compose absolute URLs for platform paths.
=======================================================

Pure functions, no I/O. Malformed input yields a syntactically valid
(possibly empty) URL rather than an error.
"""

from typing import Mapping, Optional, Union
from urllib.parse import urlencode

Scalar = Union[str, int, float, bool, None]


def build_url(base: str, path: str) -> str:
    """
    Join a base URL and a path with exactly one slash between them.

    A trailing slash carried by the path is kept ('/my/' stays a directory).

    Example:
        >>> build_url("https://learnus.yonsei.ac.kr/", "/course/view.php?id=7")
        'https://learnus.yonsei.ac.kr/course/view.php?id=7'
        >>> build_url("https://learnus.yonsei.ac.kr", "my/")
        'https://learnus.yonsei.ac.kr/my/'
    """
    base = (base or "").strip()
    path = (path or "").strip()

    if path.startswith(("http://", "https://")):
        return path

    head = base.rstrip("/")
    tail = path.lstrip("/")

    if not head:
        return f"/{tail}" if tail else ""
    if not tail:
        return head
    return f"{head}/{tail}"


def _coerce(value: Scalar) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_query_url(base: str, params: Optional[Mapping[str, Scalar]] = None) -> str:
    """
    Append url-encoded query parameters to a URL.

    Values are coerced to strings; None values are skipped.

    Example:
        >>> build_query_url("https://portal.yonsei.ac.kr/notices", {"page": 2, "pinned": True})
        'https://portal.yonsei.ac.kr/notices?page=2&pinned=true'
    """
    base = base or ""
    pairs = [(key, _coerce(value)) for key, value in (params or {}).items() if value is not None]
    if not pairs:
        return base
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode(pairs)}"


class UrlBuilder:
    """URL builder bound to one platform's base URL."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def url(self, path: str) -> str:
        return build_url(self.base_url, path)

    def query_url(self, path: str, params: Optional[Mapping[str, Scalar]] = None) -> str:
        return build_query_url(self.url(path), params)

    def is_same_path(self, url: str, path: str) -> bool:
        """True when url points at the given platform path (ignoring query)."""
        target = self.url(path).split("?", 1)[0].rstrip("/")
        return url.split("?", 1)[0].rstrip("/") == target
