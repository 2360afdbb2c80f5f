"""Tests for identity, background tasks and the command-line shell"""

import asyncio
import logging

import rich_click as click
import pytest
from click.testing import CliRunner

from tube_tracker import __version__
from tube_tracker.cli import _parse_answer, cli
from tube_tracker.core.identity import IdentityProvider, User
from tube_tracker.sync.tasks import BackgroundTasks


class TestIdentityProvider:
    """Test the current-user holder"""

    def test_listeners_see_changes(self):
        identity = IdentityProvider()
        seen = []
        unsubscribe = identity.subscribe(seen.append)

        identity.sign_in(User("user-1"))
        identity.sign_out()
        unsubscribe()
        unsubscribe()
        identity.sign_in(User("user-2"))

        assert seen == [User("user-1"), None]
        assert identity.current_user() == User("user-2")


class TestBackgroundTasks:
    """Test the detached task registry"""

    @pytest.mark.asyncio
    async def test_drain_waits_for_tasks(self):
        tasks = BackgroundTasks()
        done = []

        async def work():
            await asyncio.sleep(0.01)
            done.append(True)

        tasks.spawn(work())
        tasks.spawn(work())
        await tasks.drain()

        assert done == [True, True]
        assert len(tasks) == 0

    @pytest.mark.asyncio
    async def test_failures_are_logged(self, caplog):
        tasks = BackgroundTasks()

        async def broken():
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR):
            tasks.spawn(broken(), name="broken")
            await tasks.drain()

        assert any("broken" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_cancel(self):
        tasks = BackgroundTasks()
        task = tasks.spawn(asyncio.sleep(10))

        await tasks.cancel()

        assert task.cancelled()


class TestCli:
    """Test the command-line shell"""

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_config(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = CliRunner().invoke(cli, ["list"])

        assert result.exit_code == 1

    @pytest.mark.parametrize("answer,expected", [
        ("A", 0), ("b", 1), ("D", 3), ("1", 0), ("4", 3),
    ])
    def test_parse_answer(self, answer, expected):
        assert _parse_answer(answer) == expected

    @pytest.mark.parametrize("answer", ["E", "0", "5", "AB", ""])
    def test_parse_invalid_answer(self, answer):
        with pytest.raises(click.BadParameter):
            _parse_answer(answer)
