"""
Tests for model call retries.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_runtime.core.errors import RetryableModelError
from agent_runtime.infrastructure.resilience import call_with_retry


class TestCallWithRetry:
    
    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        func = AsyncMock(side_effect=[RetryableModelError("busy"), RetryableModelError("busy"), "ok"])
        
        result = await call_with_retry(func, "arg", max_attempts=3, min_wait=0, max_wait=0)
        
        assert result == "ok"
        assert func.await_count == 3
    
    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        func = AsyncMock(side_effect=RetryableModelError("busy"))
        
        with pytest.raises(RetryableModelError):
            await call_with_retry(func, max_attempts=2, min_wait=0, max_wait=0)
        
        assert func.await_count == 2
    
    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        func = AsyncMock(side_effect=ValueError("bad prompt"))
        
        with pytest.raises(ValueError):
            await call_with_retry(func, max_attempts=5, min_wait=0, max_wait=0)
        
        assert func.await_count == 1
    
    @pytest.mark.asyncio
    async def test_sync_functions_are_supported(self):
        func = MagicMock(return_value="sync")
        
        result = await call_with_retry(func, 1, key="value", min_wait=0, max_wait=0)
        
        assert result == "sync"
        func.assert_called_once_with(1, key="value")
