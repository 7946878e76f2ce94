"""
Bring-up lifecycle states and their valid transitions.

The chain is strictly linear: each stage may only advance to the state
directly after it, or drop into FAILED. LISTENING and FAILED are terminal.
"""

from enum import Enum
from typing import Dict, List, Set


class BootState(str, Enum):
    """States of the bring-up protocol, in execution order."""

    IDLE = "idle"
    TRANSPORT_READY = "transport_ready"
    PERSISTENCE_READY = "persistence_ready"
    OBSERVABILITY_READY = "observability_ready"
    CORS_READY = "cors_ready"
    ROUTES_READY = "routes_ready"
    FAULT_BOUNDARY_READY = "fault_boundary_ready"
    LISTENING = "listening"
    FAILED = "failed"


BOOT_SEQUENCE: List[BootState] = [
    BootState.IDLE,
    BootState.TRANSPORT_READY,
    BootState.PERSISTENCE_READY,
    BootState.OBSERVABILITY_READY,
    BootState.CORS_READY,
    BootState.ROUTES_READY,
    BootState.FAULT_BOUNDARY_READY,
    BootState.LISTENING,
]

TERMINAL_STATES = {BootState.LISTENING, BootState.FAILED}


def _build_transitions() -> Dict[BootState, Set[BootState]]:
    transitions: Dict[BootState, Set[BootState]] = {}
    for current, following in zip(BOOT_SEQUENCE, BOOT_SEQUENCE[1:]):
        transitions[current] = {following, BootState.FAILED}
    for terminal in TERMINAL_STATES:
        transitions[terminal] = set()
    return transitions


VALID_TRANSITIONS: Dict[BootState, Set[BootState]] = _build_transitions()


def can_transition(from_state: BootState, to_state: BootState) -> bool:
    """
    Check if a bring-up state transition is valid.

    Example:
        >>> can_transition(BootState.IDLE, BootState.TRANSPORT_READY)
        True
        >>> can_transition(BootState.IDLE, BootState.CORS_READY)
        False
        >>> can_transition(BootState.ROUTES_READY, BootState.FAILED)
        True
    """
    return to_state in VALID_TRANSITIONS.get(from_state, set())
