"""
Explicit controller state with guarded transitions
"""

from enum import Enum
from typing import Dict, Iterable, Type
import structlog

logger = structlog.get_logger()


class InvalidStateTransition(RuntimeError):
    """Raised when a controller attempts a transition its table does not allow"""

    def __init__(self, machine: str, current: Enum, target: Enum):
        super().__init__(f"{machine}: illegal transition {current.name} -> {target.name}")
        self.machine = machine
        self.current = current
        self.target = target


class StateMachine:
    """
    Tagged state plus an allowed-transition table

    Usage:
        machine = StateMachine("kasada", KasadaState, KasadaState.AWAITING_IPS, {
            KasadaState.AWAITING_IPS: {KasadaState.IPS_CAPTURED},
            KasadaState.IPS_CAPTURED: {KasadaState.TL_READY},
        })
        machine.transition(KasadaState.IPS_CAPTURED)
    """

    def __init__(
        self,
        name: str,
        states: Type[Enum],
        initial: Enum,
        transitions: Dict[Enum, Iterable[Enum]]
    ):
        if initial not in states:
            raise ValueError(f"{initial!r} is not a member of {states.__name__}")

        self.name = name
        self.initial = initial
        self._state = initial
        self._transitions = {source: frozenset(targets) for source, targets in transitions.items()}
        self.logger = logger.bind(component="state_machine", machine=name)

    @property
    def state(self) -> Enum:
        return self._state

    def can_transition(self, target: Enum) -> bool:
        return target in self._transitions.get(self._state, frozenset())

    def transition(self, target: Enum) -> None:
        if not self.can_transition(target):
            raise InvalidStateTransition(self.name, self._state, target)

        self.logger.debug("State transition", source=self._state.name, target=target.name)
        self._state = target

    def advance(self, target: Enum) -> bool:
        """Transition only if allowed; redundant events are reported as False"""
        if self._state == target or not self.can_transition(target):
            return False
        self.transition(target)
        return True

    def reset(self) -> None:
        self._state = self.initial

    def __repr__(self) -> str:
        return f"<StateMachine {self.name} {self._state.name}>"
