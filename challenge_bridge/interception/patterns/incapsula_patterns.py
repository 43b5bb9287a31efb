"""
Incapsula (Imperva) traffic signatures

Detects reese84 sensor scripts by content sniffing, the utmvc resource
endpoint, and the `?d=` sensor submissions that follow a tracked script path.
"""

import re
from typing import Mapping, Optional

from .base import TrafficSignature, header_value

CDN_HEADER = "x-cdn"
CDN_MARKER = "imperva"
REESE84_MARKER = "var reese84"

SESSION_COOKIE_PREFIX = "incap_ses_"


class IncapsulaPatterns:
    """Signatures for reese84 and utmvc traffic"""

    utmvc_route = re.compile(r'/_Incapsula_Resource\?SWJIYLWA=')

    # Any request carrying the `d` marker parameter
    sensor_route = re.compile(r'\?(?:[^#]*&)?d=')

    reese84_candidate = TrafficSignature(
        name="incapsula_reese84_candidate",
        method="GET",
        required_headers=(CDN_HEADER, "content-type")
    )

    def is_imperva_script(self, url: str, method: str, headers: Mapping[str, str]) -> bool:
        """Header-only test, done before the body is read"""
        if not self.reese84_candidate.matches(url, method, headers):
            return False
        if header_value(headers, CDN_HEADER).strip().lower() != CDN_MARKER:
            return False
        return "javascript" in header_value(headers, "content-type").lower()

    def declares_reese84(self, body: str) -> bool:
        return REESE84_MARKER in body

    def is_refresh_body(self, post_data: Optional[str]) -> bool:
        """Token refreshes post a bare JSON string instead of a sensor object"""
        return bool(post_data) and post_data.startswith('"')

    def is_json_body(self, headers: Mapping[str, str]) -> bool:
        content_type = header_value(headers, "content-type") or ""
        return content_type.split(";")[0].strip().lower() == "application/json"
