"""
ActionResult: terminal outcome of an action handler.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ActionResult(BaseModel):
    """
    ``success`` is required on every path; failures synthesized by the
    pipeline carry ``success=False`` and an ``error`` string.
    """
    
    model_config = ConfigDict(frozen=True)
    
    success: bool
    text: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    
    @classmethod
    def failure(cls, error: str, **data: Any) -> "ActionResult":
        return cls(success=False, error=error, data=data)
