"""
Friend relationship lifecycle as an XState machine, run with xstate-python.

The machine lives in relationship_machine.json (standard XState JSON: id,
initial, states with on: { EVENT: target }) so the same definition can be
opened in Stately Studio. States are the RelationshipState values.
"""

import json
from enum import Enum
from pathlib import Path

from xstate.machine import Machine

from avail.domain import RelationshipState


class RelationshipEvent(str, Enum):
    SEND_REQUEST = "SEND_REQUEST"
    ACCEPT = "ACCEPT"
    DECLINE = "DECLINE"
    REMOVE = "REMOVE"
    BLOCK = "BLOCK"


def get_machine_path() -> Path:
    return Path(__file__).resolve().parent / "relationship_machine.json"


def load_machine(path: Path | None = None) -> dict:
    if path is None:
        path = get_machine_path()
    raw = path.read_text(encoding="utf-8")
    config = json.loads(raw)
    if "initial" not in config or "states" not in config:
        raise ValueError("Machine must have 'initial' and 'states'")
    known = {state.value for state in RelationshipState}
    unknown = set(config["states"]) - known
    if unknown:
        raise ValueError(f"Machine has unknown states: {sorted(unknown)}")
    return config


# Module-level cache for the loaded machine
_machine: Machine | None = None


def get_machine(cache: bool = True) -> Machine:
    global _machine
    if cache and _machine is not None:
        return _machine
    _machine = Machine(load_machine())
    return _machine


def transition(
    state: RelationshipState, event: RelationshipEvent
) -> RelationshipState | None:
    """
    Return the state reached from state on event, or None if the event does not
    apply there. A transition that would stay in the same state counts as none.
    """
    try:
        machine = get_machine()
        current = machine.state_from(state.value)
        next_state = machine.transition(current, event.value)
        if next_state.value == state.value:
            return None
        return RelationshipState(next_state.value)
    except (ValueError, KeyError):
        return None
