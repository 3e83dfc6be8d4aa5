"""
Pilot Policy Engine - decides the fate of generated replies per agent

    off         -> no generation at all; humans handle the conversation
    suggestive  -> generate, hand the candidate back, persist nothing
    autopilot   -> generate and commit (append + meter) in the same operation
"""

from dataclasses import dataclass
from typing import Optional, Union

from workmate.db import Agent, PilotMode
from workmate.errors import ValidationError

DEFAULT_PILOT_MODE = PilotMode.SUGGESTIVE


@dataclass(frozen=True)
class PilotDecision:
    mode: PilotMode
    generate: bool
    commit: bool


_DECISIONS = {
    PilotMode.OFF: PilotDecision(PilotMode.OFF, generate=False, commit=False),
    PilotMode.SUGGESTIVE: PilotDecision(PilotMode.SUGGESTIVE, generate=True, commit=False),
    PilotMode.AUTOPILOT: PilotDecision(PilotMode.AUTOPILOT, generate=True, commit=True),
}


def parse_pilot_mode(value: Union[str, PilotMode]) -> PilotMode:
    try:
        return PilotMode(value)
    except ValueError:
        allowed = ", ".join(m.value for m in PilotMode)
        raise ValidationError(f"Invalid pilot mode {value!r}; expected one of: {allowed}")


def decide(mode: Union[str, PilotMode]) -> PilotDecision:
    return _DECISIONS[parse_pilot_mode(mode)]


def resolve_mode(requested: Optional[Union[str, PilotMode]], agent: Optional[Agent]) -> PilotMode:
    """An explicit request wins; otherwise the agent's stored mode at call time."""
    if requested is not None:
        return parse_pilot_mode(requested)
    if agent is not None and agent.pilot_mode:
        return parse_pilot_mode(agent.pilot_mode)
    return DEFAULT_PILOT_MODE
