"""
Shared classifier utilities

Stateless helpers used by every scheme's pattern matcher: URL parsing, query
inspection, header lookup and body decoding. Parsing failures are raised as
MalformedTrafficError so handlers can treat the event as non-matching.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Pattern, Tuple
from urllib.parse import SplitResult, parse_qs, parse_qsl, urlencode, urlsplit, urlunsplit

UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)


class MalformedTrafficError(ValueError):
    """A URL or body could not be parsed while classifying traffic"""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


def parse_url(url: str) -> SplitResult:
    """Split an absolute URL, rejecting anything without scheme and host"""
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise MalformedTrafficError(f"Unparseable URL: {e}", url=url) from e

    if not parts.scheme or not parts.netloc:
        raise MalformedTrafficError("URL is not absolute", url=url)
    return parts


def query_params(url: str) -> Dict[str, List[str]]:
    return parse_qs(parse_url(url).query, keep_blank_values=True)


def query_param(url: str, name: str) -> Optional[str]:
    values = query_params(url).get(name)
    return values[0] if values else None


def has_query_param(url: str, name: str) -> bool:
    return name in query_params(url)


def strip_query_params(url: str, *names: str) -> str:
    """Rebuild the URL without the named query parameters"""
    parts = parse_url(url)
    kept = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in names
    ]
    return urlunsplit(parts._replace(query=urlencode(kept)))


def url_path(url: str) -> str:
    return parse_url(url).path


def header_value(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    """Case-insensitive header lookup"""
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def decode_body(body: bytes, url: Optional[str] = None) -> str:
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedTrafficError(f"Body is not valid UTF-8: {e.reason}", url=url) from e


def is_uuid(value: Optional[str]) -> bool:
    return bool(value) and len(value) == 36 and UUID_PATTERN.match(value) is not None


@dataclass(frozen=True)
class TrafficSignature:
    """
    A protection scheme's fingerprint for one kind of request or response

    Every configured criterion must hold: method (exact, case-insensitive),
    URL regex (searched), and presence of each required header name.
    """

    name: str
    url_pattern: Optional[Pattern[str]] = None
    method: Optional[str] = None
    required_headers: Tuple[str, ...] = ()

    def matches(self, url: str, method: str, headers: Optional[Mapping[str, str]] = None) -> bool:
        if self.method and method.upper() != self.method.upper():
            return False
        if self.url_pattern is not None and not self.url_pattern.search(url):
            return False
        for required in self.required_headers:
            if header_value(headers, required) is None:
                return False
        return True
