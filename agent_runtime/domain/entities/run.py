"""
Pipeline run report.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field

from .action_result import ActionResult
from .message import Message
from .state import State
from .stream import StreamChunk


class PipelinePhase(str, Enum):
    RECEIVED = "received"
    MEMORY_PERSISTED = "memory_persisted"
    STATE_COMPOSED = "state_composed"
    ACTION_SELECTED = "action_selected"
    ACTION_EXECUTED = "action_executed"
    EVALUATED = "evaluated"
    COMPLETED = "completed"
    FAILED = "failed"


class StageStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"   # isolated handler failure or fallback taken
    TIMEOUT = "timeout"
    FAILED = "failed"       # terminal


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class StageOutcome(BaseModel):
    stage: PipelinePhase
    status: StageStatus = StageStatus.OK
    reason: Optional[str] = None
    duration_ms: float = 0.0


class EvaluationOutcome(BaseModel):
    evaluator: str
    success: bool
    result: Any = None
    error: Optional[str] = None


class RunFailure(BaseModel):
    stage: PipelinePhase
    reason: str


class PipelineRun(BaseModel):
    """
    Mutable record of one message's trip through the pipeline.
    
    Only the pipeline mutates it, and only while the run is in flight.
    """
    
    model_config = ConfigDict(arbitrary_types_allowed=True)
    
    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    message: Optional[Message] = None
    phase: PipelinePhase = PipelinePhase.RECEIVED
    transitions: List[PipelinePhase] = Field(default_factory=lambda: [PipelinePhase.RECEIVED])
    stages: Dict[PipelinePhase, StageOutcome] = Field(default_factory=dict)
    failure: Optional[RunFailure] = None
    
    memory_id: Optional[str] = None
    state: Optional[State] = None
    action_name: Optional[str] = None
    used_fallback: bool = False
    rejected_actions: List[str] = Field(default_factory=list)
    action_result: Optional[ActionResult] = None
    evaluations: List[EvaluationOutcome] = Field(default_factory=list)
    outputs: List[StreamChunk] = Field(default_factory=list)
    
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    duration_ms: float = 0.0
    
    def advance(self, phase: PipelinePhase) -> None:
        self.phase = phase
        self.transitions.append(phase)
    
    def record(
        self,
        stage: PipelinePhase,
        status: StageStatus,
        duration_ms: float = 0.0,
        reason: Optional[str] = None
    ) -> StageOutcome:
        outcome = StageOutcome(stage=stage, status=status, reason=reason, duration_ms=duration_ms)
        self.stages[stage] = outcome
        return outcome
    
    def fail(self, stage: PipelinePhase, reason: str) -> None:
        self.failure = RunFailure(stage=stage, reason=reason)
        self.advance(PipelinePhase.FAILED)
    
    @property
    def partial_outputs(self) -> List[StreamChunk]:
        return [chunk for chunk in self.outputs if chunk.type == "partial"]
    
    @property
    def final_output(self) -> Optional[StreamChunk]:
        for chunk in reversed(self.outputs):
            if chunk.type == "final":
                return chunk
        return None
    
    @property
    def status(self) -> RunStatus:
        if self.failure is not None:
            return RunStatus.FAILED
        degraded = any(
            outcome.status in (StageStatus.TIMEOUT, StageStatus.DEGRADED)
            for outcome in self.stages.values()
        )
        if degraded or (self.action_result is not None and not self.action_result.success):
            return RunStatus.PARTIAL
        return RunStatus.SUCCESS
    
    def summary(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "message_id": self.message.id if self.message else None,
            "room_id": self.message.room_id if self.message else None,
            "status": self.status.value,
            "phase": self.phase.value,
            "action": self.action_name,
            "used_fallback": self.used_fallback,
            "duration_ms": self.duration_ms,
            "stages": {
                stage.value: outcome.status.value for stage, outcome in self.stages.items()
            },
            "failure": self.failure.model_dump(mode="json") if self.failure else None,
        }
