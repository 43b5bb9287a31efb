"""
Akamai Bot Manager traffic signatures

Covers the sensor script (served with a liveness header), the SBSD script
(identified by a UUID `v` parameter) and the pixel analytics endpoints.
"""

import re
from typing import Mapping, Optional

from .base import TrafficSignature, has_query_param, is_uuid, query_param, strip_query_params

LIVENESS_HEADER = "time-to-live-seconds"
SBSD_VERSION_PARAM = "v"
TIME_REFRESH_PARAM = "t"

SENSOR_COOKIES = ("_abck", "bm_sz")
SBSD_COOKIES = ("sbsd_o", "bm_so")


class AkamaiPatterns:
    """Signatures and URL helpers for Akamai sensor, SBSD and pixel traffic"""

    # e.g. https://www.example.com/CKo1/13Fb/v_Lq/cYPX7Q/EiOLQt3r3zrVh4t9/aG4BHUZtAQ/Li/gIKUZfMA0B
    sensor_route = re.compile(r'^https?://[^/]+/[a-zA-Z\d/\-_]+$', re.IGNORECASE)

    # e.g. /akam/13/pixel_20d83a45
    pixel_route = re.compile(r'/akam/\d+/pixel_[a-f\d]+$', re.IGNORECASE)

    sensor_script = TrafficSignature(
        name="akamai_sensor_script",
        method="GET",
        required_headers=(LIVENESS_HEADER,)
    )

    def is_sensor_script_response(self, url: str, method: str, headers: Mapping[str, str]) -> bool:
        return self.sensor_script.matches(url, method, headers)

    def sbsd_uuid(self, url: str, method: str) -> Optional[str]:
        """UUID carried by an SBSD script GET, or None if this is not one"""
        if method.upper() != "GET":
            return None
        value = query_param(url, SBSD_VERSION_PARAM)
        return value if is_uuid(value) else None

    def sbsd_endpoint(self, url: str) -> str:
        """Canonical SBSD endpoint: the URL without its version and refresh markers"""
        return strip_query_params(url, SBSD_VERSION_PARAM, TIME_REFRESH_PARAM)

    def is_time_refresh(self, url: str) -> bool:
        return has_query_param(url, TIME_REFRESH_PARAM)
