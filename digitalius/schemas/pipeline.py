"""
Pipeline state and the discriminated result of one orchestration step.

Both orchestration strategies walk the same states:

    START -> CLASSIFIED -> SHORT_CIRCUITED                      (terminal)
                        -> CONTEXT_REQUIRED -> DISPATCHED
                                            -> NORMALIZED -> NO_RESULTS   (terminal)
                                                          -> SYNTHESIZED  (terminal)
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from digitalius.schemas.intent import Intent
from digitalius.schemas.response import SearchResponse


class PipelineState(str, Enum):
    START = "start"
    CLASSIFIED = "classified"
    SHORT_CIRCUITED = "short_circuited"
    CONTEXT_REQUIRED = "context_required"
    DISPATCHED = "dispatched"
    NORMALIZED = "normalized"
    NO_RESULTS = "no_results"
    SYNTHESIZED = "synthesized"


TERMINAL_STATES = frozenset({
    PipelineState.SHORT_CIRCUITED,
    PipelineState.NO_RESULTS,
    PipelineState.SYNTHESIZED,
})


class NeedsContext(BaseModel):
    """The query was classified and must be answered with store content."""
    status: Literal["needs_context"] = "needs_context"
    intent: Intent


class Complete(BaseModel):
    """A terminal answer.  ``state`` tells which terminal state produced it."""
    status: Literal["complete"] = "complete"
    state: PipelineState
    intent: Intent | None = None
    payload: SearchResponse


StepResult = Annotated[Union[NeedsContext, Complete], Field(discriminator="status")]


ALLOWED_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.START: frozenset({PipelineState.CLASSIFIED}),
    PipelineState.CLASSIFIED: frozenset({
        PipelineState.SHORT_CIRCUITED,
        PipelineState.CONTEXT_REQUIRED,
    }),
    PipelineState.CONTEXT_REQUIRED: frozenset({PipelineState.DISPATCHED}),
    PipelineState.DISPATCHED: frozenset({PipelineState.NORMALIZED}),
    PipelineState.NORMALIZED: frozenset({
        PipelineState.NO_RESULTS,
        PipelineState.SYNTHESIZED,
    }),
    PipelineState.SHORT_CIRCUITED: frozenset(),
    PipelineState.NO_RESULTS: frozenset(),
    PipelineState.SYNTHESIZED: frozenset(),
}


class PipelineRun(BaseModel):
    """
    Mutable bookkeeping for one query as it walks the state machine.

    Created once per request (or per leg of the two-phase protocol)
    and progressively advanced by the orchestrator.
    """
    query: str
    intent: Intent | None = None
    state: PipelineState = PipelineState.START
    history: list[PipelineState] = Field(default_factory=lambda: [PipelineState.START])
    start_time: float = Field(default_factory=time.time)
    stage_timings: dict[str, float] = Field(default_factory=dict)

    def advance(self, state: PipelineState) -> None:
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal pipeline transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time
