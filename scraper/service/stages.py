"""Extraction request stages: the per-request state machine and its transitions."""

from __future__ import annotations

from enum import Enum


class Stage(str, Enum):
    """Lifecycle of one extraction request. Failure paths skip ahead to
    CLEANED_UP so the browser is always released before responding."""

    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    BROWSER_LAUNCHED = "BROWSER_LAUNCHED"
    NAVIGATED = "NAVIGATED"
    EXTRACTED = "EXTRACTED"
    CLEANED_UP = "CLEANED_UP"
    RESPONDED = "RESPONDED"


# Valid stage transitions. Each key maps to the stages it may move to.
VALID_TRANSITIONS: dict[Stage, set[Stage]] = {
    Stage.RECEIVED: {Stage.VALIDATED, Stage.RESPONDED},
    Stage.VALIDATED: {Stage.BROWSER_LAUNCHED, Stage.CLEANED_UP},
    Stage.BROWSER_LAUNCHED: {Stage.NAVIGATED, Stage.CLEANED_UP},
    Stage.NAVIGATED: {Stage.EXTRACTED, Stage.CLEANED_UP},
    Stage.EXTRACTED: {Stage.CLEANED_UP},
    Stage.CLEANED_UP: {Stage.RESPONDED},
    Stage.RESPONDED: set(),  # terminal
}

TERMINAL_STAGES = {Stage.RESPONDED}


class InvalidStageTransition(Exception):
    """Raised when a request tries to skip or revisit a stage."""


class StageTracker:
    """Guards the stage sequence of a single request."""

    def __init__(self) -> None:
        self._stage = Stage.RECEIVED
        self._history: list[Stage] = [Stage.RECEIVED]

    @property
    def stage(self) -> Stage:
        return self._stage

    @property
    def history(self) -> list[Stage]:
        return list(self._history)

    def advance(self, to_stage: Stage) -> None:
        if to_stage not in VALID_TRANSITIONS.get(self._stage, set()):
            raise InvalidStageTransition(
                f"Invalid transition: {self._stage.value} -> {to_stage.value}"
            )
        self._stage = to_stage
        self._history.append(to_stage)
