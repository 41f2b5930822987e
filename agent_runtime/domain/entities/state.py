"""
Composed state and provider output models.
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ProviderResult(BaseModel):
    """Output of a single provider invocation."""
    
    model_config = ConfigDict(frozen=True)
    
    text: str = ""
    values: Dict[str, Any] = Field(default_factory=dict)
    data: Dict[str, Any] = Field(default_factory=dict)


class State(BaseModel):
    """
    Merged context for one inbound message.
    
    Attributes:
        fragments: Provider texts in composition order (empty texts skipped)
        text: Fragments joined with the configured separator
        values: Merged key/value map, later providers win on collisions
        data: Raw provider data namespaced by provider name
        providers: Providers that contributed, in composition order
        failed_providers: Providers that raised and contributed nothing
    """
    
    model_config = ConfigDict(frozen=True)
    
    fragments: Tuple[str, ...] = ()
    text: str = ""
    values: Dict[str, Any] = Field(default_factory=dict)
    data: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    providers: Tuple[str, ...] = ()
    failed_providers: Tuple[str, ...] = ()
    
    def get_value(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)
    
    def provider_data(self, provider: str) -> Optional[Dict[str, Any]]:
        return self.data.get(provider)
