"""Tests for the console loop and the ``mcpchat`` command."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from mcpchat.cli import build_transport, main, run_console
from mcpchat.errors import TransportError
from mcpchat.llm.models import ModelResponse, TextBlock, ToolInvocation
from mcpchat.mcp.transport import StdioTransport, StreamableHttpTransport


def _lines(*values: str | None):
    remaining = list(values)

    async def read_line(_prompt: str) -> str | None:
        return remaining.pop(0) if remaining else None

    return read_line


def _gateway(*responses: ModelResponse) -> MagicMock:
    gateway = MagicMock()
    gateway.resolve_default_model = AsyncMock(return_value="model-b")
    gateway.generate = AsyncMock(side_effect=list(responses))
    return gateway


@pytest.fixture()
def env(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    with patch("mcpchat.config.load_dotenv"):
        yield monkeypatch


class TestRunConsole:
    async def test_answers_until_exit(self, server, capsys) -> None:
        gateway = _gateway(ModelResponse(blocks=[TextBlock(text="Two tables.")]))

        await run_console(server, gateway, read_line=_lines("", "how many tables?", "exit", "ignored"))

        out = capsys.readouterr().out
        assert "Tools: list_tables, get_table_rows" in out
        assert "Two tables." in out
        assert gateway.generate.await_count == 1
        gateway.resolve_default_model.assert_awaited_once()
        assert server.closed

    async def test_exit_sentinel_is_case_insensitive(self, server) -> None:
        gateway = _gateway()
        await run_console(server, gateway, read_line=_lines("  EXIT  "))
        gateway.generate.assert_not_called()

    async def test_catalog_refreshed_before_each_query(self, server) -> None:
        gateway = _gateway(
            ModelResponse(blocks=[TextBlock(text="a")]),
            ModelResponse(blocks=[TextBlock(text="b")]),
        )
        await run_console(server, gateway, read_line=_lines("q1", "q2"))
        assert server.sent_methods().count("list_tools") == 3

    async def test_query_error_does_not_stop_loop(self, server, capsys) -> None:
        gateway = _gateway()
        gateway.generate = AsyncMock(
            side_effect=[RuntimeError("backend down"), ModelResponse(blocks=[TextBlock(text="fine")])]
        )

        await run_console(server, gateway, read_line=_lines("q1", "q2", None))

        out = capsys.readouterr().out
        assert "Error processing query" in out
        assert "backend down" in out
        assert "fine" in out

    async def test_tool_round_trip(self, server, capsys) -> None:
        gateway = _gateway(
            ModelResponse(blocks=[ToolInvocation(name="list_tables")]),
            ModelResponse(blocks=[TextBlock(text="Sales and Customers.")]),
        )

        await run_console(server, gateway, read_line=_lines("tables?"))

        out = capsys.readouterr().out
        assert "[Calling tool list_tables args={}]" in out
        assert "[Tool list_tables result:" in out
        assert "Sales and Customers." in out

    async def test_file_is_loaded_first(self, server, capsys) -> None:
        gateway = _gateway()

        await run_console(server, gateway, file="/data/report.pbix", read_line=_lines())

        load = next(m for m in server.sent if m["method"] == "call_tool")
        assert load["params"] == {
            "name": "load_pbix_file",
            "arguments": {"file_path": "/data/report.pbix"},
        }
        assert "Loaded PBIX" in capsys.readouterr().out

    async def test_verbose_prints_tool_table(self, server, capsys) -> None:
        await run_console(server, _gateway(), verbose=True, read_line=_lines())

        out = capsys.readouterr().out
        assert "Description" in out
        assert "get_table_rows" in out

    async def test_explicit_model_skips_default_resolution(self, server) -> None:
        gateway = _gateway()
        await run_console(server, gateway, model="model-a", read_line=_lines())
        gateway.resolve_default_model.assert_not_called()


class TestBuildTransport:
    def test_http(self) -> None:
        assert isinstance(build_transport("http", "http://h/mcp", None), StreamableHttpTransport)

    def test_stdio(self) -> None:
        assert isinstance(build_transport("stdio", "", "server --stdio"), StdioTransport)


class TestMainCommand:
    def test_missing_credential_exits_1(self, monkeypatch) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with patch("mcpchat.config.load_dotenv"):
            result = CliRunner().invoke(main, [])
        assert result.exit_code == 1

    def test_missing_file_exits_1(self, env, tmp_path) -> None:
        with patch("mcpchat.cli.run_console", new=AsyncMock()) as run:
            result = CliRunner().invoke(main, ["--file", str(tmp_path / "missing.pbix")])
        assert result.exit_code == 1
        run.assert_not_called()

    def test_list_models(self, env) -> None:
        models = ["claude-3-5-haiku-latest", "claude-sonnet-4-5"]
        with patch("mcpchat.cli.ModelGateway.list_models", new=AsyncMock(return_value=models)):
            result = CliRunner().invoke(main, ["--list-models"])
        assert result.exit_code == 0
        assert "claude-3-5-haiku-latest" in result.output
        assert "claude-sonnet-4-5" in result.output

    def test_runs_console_with_options(self, env) -> None:
        with patch("mcpchat.cli.run_console", new=AsyncMock()) as run:
            result = CliRunner().invoke(
                main,
                ["--url", "http://host:9000/", "--model", "model-a", "--max-tokens", "64"],
            )

        assert result.exit_code == 0
        assert "http://host:9000/mcp" in result.output
        transport, _gateway_arg = run.call_args.args
        assert isinstance(transport, StreamableHttpTransport)
        assert transport.read_url == "http://host:9000/mcp/read"
        assert run.call_args.kwargs["model"] == "model-a"
        assert run.call_args.kwargs["max_tokens"] == 64

    def test_fatal_startup_error_exits_1(self, env) -> None:
        with patch("mcpchat.cli.run_console", new=AsyncMock(side_effect=TransportError("refused"))):
            result = CliRunner().invoke(main, [])
        assert result.exit_code == 1

    def test_stdio_requires_command(self, env) -> None:
        result = CliRunner().invoke(main, ["--transport", "stdio"])
        assert result.exit_code != 0
        assert "--command" in result.output
