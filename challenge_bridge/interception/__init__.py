"""
Challenge Interception Engine

Components:
- Gate: one-shot synchronization between observation and interception
- Capture Store: per-controller records of observed challenge artifacts
- Patterns: stateless traffic classifiers per protection scheme
- ChallengeHandler: observation/interception plumbing and error policy
- Handlers: Akamai, DataDome, Incapsula and Kasada controllers
- Oracle: call boundary to the external solving service
"""

from .gate import Gate
from .capture import CaptureRecord, InterceptionLedger, ScriptPathRegistry, ScriptPathState
from .state import StateMachine, InvalidStateTransition
from .handler import ChallengeHandler
from .oracle import Oracle, HyperOracle, OracleError
from .ip import fetch_ip_address_with_browser, IpLookupError
from .handlers import (
    AkamaiHandler,
    DataDomeHandler,
    IncapsulaHandler,
    StaticIncapsulaHandler,
    KasadaHandler,
)

__all__ = [
    "Gate",
    "CaptureRecord",
    "InterceptionLedger",
    "ScriptPathRegistry",
    "ScriptPathState",
    "StateMachine",
    "InvalidStateTransition",
    "ChallengeHandler",
    "Oracle",
    "HyperOracle",
    "OracleError",
    "fetch_ip_address_with_browser",
    "IpLookupError",
    "AkamaiHandler",
    "DataDomeHandler",
    "IncapsulaHandler",
    "StaticIncapsulaHandler",
    "KasadaHandler",
]
