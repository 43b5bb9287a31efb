"""
Traffic Classifiers for Protection-Scheme Detection

Provides stateless signature matching for:
- Akamai sensor, SBSD and pixel traffic
- DataDome slider captcha and interstitial traffic
- Incapsula reese84 and utmvc traffic
- Kasada ips.js and /tl traffic
"""

from .base import MalformedTrafficError, TrafficSignature
from .akamai_patterns import AkamaiPatterns
from .datadome_patterns import DataDomePatterns
from .incapsula_patterns import IncapsulaPatterns
from .kasada_patterns import KasadaPatterns

__all__ = [
    "MalformedTrafficError",
    "TrafficSignature",
    "AkamaiPatterns",
    "DataDomePatterns",
    "IncapsulaPatterns",
    "KasadaPatterns"
]
