"""
Capture Store

Per-handler mutable records of observed challenge artifacts:
- CaptureRecord: named slots written by observation, last writer wins
- InterceptionLedger: identifiers already intercepted in the current epoch
- ScriptPathRegistry: ordered Incapsula script path prefixes with optional sitekeys
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional
from urllib.parse import urlsplit
import structlog

logger = structlog.get_logger()


class CaptureRecord:
    """
    Mapping of fixed slot names to optional captured values

    Slots are declared up front so a typo in a handler fails loudly instead of
    silently creating a new slot.
    """

    def __init__(self, slots: Iterable[str]):
        self._values: Dict[str, Any] = {slot: None for slot in slots}

    def set(self, slot: str, value: Any) -> None:
        if slot not in self._values:
            raise KeyError(f"Unknown capture slot: {slot}")
        self._values[slot] = value

    def get(self, slot: str) -> Any:
        if slot not in self._values:
            raise KeyError(f"Unknown capture slot: {slot}")
        return self._values[slot]

    def is_set(self, slot: str) -> bool:
        return self.get(slot) is not None

    def clear(self, *slots: str) -> None:
        """Clear the given slots, or every slot when none are named"""
        for slot in slots or list(self._values):
            self.set(slot, None)

    @property
    def slots(self) -> List[str]:
        return list(self._values)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._values)


class InterceptionLedger:
    """Ordered set of path/endpoint identifiers intercepted during this epoch"""

    def __init__(self):
        self._seen: Dict[str, None] = {}

    def record(self, identifier: str) -> bool:
        """Record an interception; True only the first time in the epoch"""
        if identifier in self._seen:
            return False
        self._seen[identifier] = None
        return True

    def clear(self) -> None:
        self._seen.clear()

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def snapshot(self) -> List[str]:
        return list(self._seen)


class ScriptPathState(str, Enum):
    UNDISCOVERED = "undiscovered"
    SCRIPT_OBSERVED = "script_observed"
    OPERATIONAL = "operational"


@dataclass
class ScriptEntry:
    """A tracked script path prefix and what has been captured for it"""

    path: str
    sitekey: Optional[str] = None
    configured: bool = False
    state: ScriptPathState = ScriptPathState.UNDISCOVERED
    script_url: Optional[str] = None
    script_body: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "sitekey": self.sitekey,
            "configured": self.configured,
            "state": self.state.value,
            "script_url": self.script_url,
            "has_script_body": self.script_body is not None,
        }


class ScriptPathRegistry:
    """
    Ordered prefix registry for Incapsula script paths

    Matching is a prefix test on the URL path only (query ignored). When several
    prefixes match, the one inserted first wins.
    """

    def __init__(self, sitekeys: Optional[Dict[str, str]] = None):
        self._entries: Dict[str, ScriptEntry] = {}
        for path, sitekey in (sitekeys or {}).items():
            self._entries[path] = ScriptEntry(path=path, sitekey=sitekey, configured=True)

    def add(self, path: str, sitekey: Optional[str] = None) -> ScriptEntry:
        """Track a discovered path; an existing entry keeps its insertion position"""
        entry = self._entries.get(path)
        if entry is None:
            entry = ScriptEntry(path=path, sitekey=sitekey)
            self._entries[path] = entry
            logger.debug("Script path registered", component="script_registry", path=path)
        elif sitekey is not None:
            entry.sitekey = sitekey
        return entry

    def find_matching_path(self, url: str) -> Optional[str]:
        """Return the first registered prefix of the URL's path, if any"""
        pathname = urlsplit(url).path
        for path in self._entries:
            if pathname.startswith(path):
                return path
        return None

    def get(self, path: str) -> Optional[ScriptEntry]:
        return self._entries.get(path)

    def sitekey_for(self, path: str) -> Optional[str]:
        entry = self._entries.get(path)
        return entry.sitekey if entry else None

    def reset(self) -> None:
        """Drop discovered entries; configured entries lose only their captured data"""
        for path in list(self._entries):
            entry = self._entries[path]
            if not entry.configured:
                del self._entries[path]
                continue
            entry.state = ScriptPathState.UNDISCOVERED
            entry.script_url = None
            entry.script_body = None

    @property
    def paths(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[ScriptEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {path: entry.to_dict() for path, entry in self._entries.items()}
