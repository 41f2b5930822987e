"""
Stream chunks produced on an action's output channel.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict


class StreamChunk(BaseModel):
    """
    One emission on the output channel.
    
    ``partial`` chunks are intermediate output pushed by the handler
    through ``emit``; exactly one ``final`` chunk carries the terminal
    ActionResult.
    """
    
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)
    
    type: Literal["partial", "final"]
    content: Any = None
    is_final: bool = False
    action: Optional[str] = None
    run_id: Optional[str] = None
    sequence: int = 0
