"""Tests for the interactive CLI loop."""

import pytest

from tutorcore.api import cli
from tutorcore.core.routing_types import RequestContext


def feed(monkeypatch, *lines):
    answers = iter(lines)

    def fake_input(prompt=""):
        try:
            return next(answers)
        except StopIteration:
            raise EOFError

    monkeypatch.setattr("builtins.input", fake_input)


class TestCli:
    @pytest.mark.asyncio
    async def test_run_turn_prints_answer_and_trace(self, engine, capsys):
        await cli.run_turn(engine, "What is 2 + 2?", RequestContext(user_id="u", session_id="s"), True)
        out = capsys.readouterr().out
        assert "mathematics answer" in out
        assert "Trace:" in out
        assert "Request received" in out

    @pytest.mark.asyncio
    async def test_loop_handles_commands(self, engine, provider, monkeypatch, capsys):
        monkeypatch.setenv("CLI_USER_ID", "cli-user")
        monkeypatch.setenv("CLI_SESSION_ID", "cli-session")
        feed(monkeypatch, "/domains", "", "What is 2 + 2?", "clear chat", "exit")

        await cli.main_async(engine)

        out = capsys.readouterr().out
        assert " - vocabulary" in out
        assert "mathematics answer" in out
        assert "cleared" in out
        assert "Shutting down." in out
        assert provider.purposes() == ["mathematics"]
        memory = await engine.memory.load("cli-user", "cli-session")
        assert memory.history == ()

    @pytest.mark.asyncio
    async def test_eof_ends_the_loop(self, engine, monkeypatch, capsys):
        feed(monkeypatch)
        await cli.main_async(engine)
        assert "EOF" in capsys.readouterr().out
