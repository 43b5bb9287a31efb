"""
Kasada traffic signatures

The ips.js script and the /tl endpoint share one two-segment identifier path;
error telemetry goes to a fixed reporting host.
"""

import re

from .base import TrafficSignature

ERROR_REPORTING_URL = "https://reporting.cdndex.io/error"


class KasadaPatterns:
    """Signatures for one Kasada deployment, keyed by its identifier path"""

    def __init__(self, identifier_path: str):
        self.identifier_path = identifier_path.strip("/")
        escaped = re.escape(self.identifier_path)

        self.ips_script = TrafficSignature(
            name="kasada_ips_script",
            method="GET",
            url_pattern=re.compile(escaped + r'/ips\.js')
        )
        self.tl_route = re.compile(escaped + r'/tl(?:\?[^#]*)?$')
        self.tl_submission = TrafficSignature(
            name="kasada_tl",
            method="POST",
            url_pattern=self.tl_route
        )
        self.error_route = re.compile(r'^' + re.escape(ERROR_REPORTING_URL) + r'(?:\?[^#]*)?$')

    def is_ips_script(self, url: str, method: str) -> bool:
        return self.ips_script.matches(url, method)

    def is_tl_submission(self, url: str, method: str) -> bool:
        return self.tl_submission.matches(url, method)
