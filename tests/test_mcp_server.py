"""Tests for the MCP exploration tool."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fakes import FakeDriver, el

from roam import mcp_server
from roam.core.explore.runner import Explorer

HOME = "https://example.com/"


@pytest.fixture
def explorer():
    driver = FakeDriver(pages={HOME: [el("button", "#a", "A"), el("button", "#b", "B", y=40)]})
    explorer = Explorer(driver)
    mcp_server.set_explorer(explorer)
    yield explorer
    mcp_server.set_explorer(None)


class TestExploreTool:
    @pytest.mark.asyncio
    async def test_reports_progress_and_returns_summary(self, explorer):
        ctx = MagicMock()
        ctx.report_progress = AsyncMock()

        result = await mcp_server.run_exploration(HOME, max_steps=3, ctx=ctx)

        assert result["steps_completed"] == 3
        assert [r["action"] for r in result["records"]] == ["click", "click", "scroll"]
        assert result["status"] == "stopped"
        assert result["finish_reason"] == "ended"
        assert ctx.report_progress.await_count == 3
        assert ctx.report_progress.await_args.kwargs["progress"] == 3
        # the session is released once the tool returns
        assert len(explorer.store) == 0
        assert result["session_id"] in explorer.driver.closed

    @pytest.mark.asyncio
    async def test_stops_early_when_exhausted(self, explorer):
        result = await mcp_server.run_exploration(HOME, max_steps=50)
        assert result["status"] == "completed"
        assert result["finish_reason"] == "exhausted"
        assert result["steps_completed"] < 50

    @pytest.mark.asyncio
    async def test_invalid_url_raises(self, explorer):
        from roam.core.explore.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            await mcp_server.run_exploration("javascript:alert(1)", max_steps=3)
