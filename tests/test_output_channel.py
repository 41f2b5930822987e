"""
Tests for OutputChannel.
"""

import pytest

from agent_runtime import ActionResult
from agent_runtime.domain.services import OutputChannel
from agent_runtime.infrastructure.resilience import RunEpoch


class TestOutputChannel:
    
    @pytest.mark.asyncio
    async def test_partials_then_single_final(self):
        sink = []
        channel = OutputChannel(run_id="run-1", action="REPLY", sink=sink.append)
        
        await channel.emit("a")
        await channel.emit("b")
        final = await channel.close(ActionResult(success=True, text="ab"))
        
        assert [c.type for c in sink] == ["partial", "partial", "final"]
        assert [c.sequence for c in sink] == [0, 1, 2]
        assert final.is_final
        assert final.content.text == "ab"
        assert all(c.run_id == "run-1" and c.action == "REPLY" for c in sink)
    
    @pytest.mark.asyncio
    async def test_emit_after_close_is_discarded(self):
        channel = OutputChannel()
        await channel.close(ActionResult(success=True))
        
        assert await channel.emit("late") is False
        assert [c.type for c in channel.chunks] == ["final"]
    
    @pytest.mark.asyncio
    async def test_stale_token_discards_output(self):
        epoch = RunEpoch()
        channel = OutputChannel(token=epoch.begin("execute"))
        
        assert await channel.emit("early") is True
        epoch.invalidate()
        assert await channel.emit("late") is False
        
        assert [c.content for c in channel.chunks] == ["early"]
    
    @pytest.mark.asyncio
    async def test_failing_sink_does_not_break_the_channel(self):
        async def broken_sink(chunk):
            raise ConnectionError("client gone")
        
        channel = OutputChannel(sink=broken_sink)
        
        assert await channel.emit("data") is True
        assert len(channel.chunks) == 1
