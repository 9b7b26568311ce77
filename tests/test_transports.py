"""Tests for answer transports and transport selection."""

import io
import os
import stat

import pytest

from kitgen.ai.collector import AiCollector, CollectorEntry
from kitgen.ai.cost import Usage
from kitgen.ai.service import AiService
from kitgen.ai.transports import (
    ApiTransport,
    CommandTransport,
    Deferred,
    Failed,
    Resolved,
    StdoutTransport,
    TransportRequest,
    describe_command,
    parse_json_answers,
    resolve_transport,
)
from kitgen.config import AISettings
from kitgen.exceptions import TransportConfigError, TransportError
from kitgen.providers import ChatClient, Completion


@pytest.fixture
def request_for():
    def _make(*entries):
        collector = AiCollector()
        collector.enter_collect_mode()
        for entry in entries:
            collector.add_entry(entry)
        return TransportRequest(collector, "kitgen run docs", "./ai-answers.json")

    return _make


@pytest.fixture
def summary_request(request_for):
    return request_for(CollectorEntry(key="summary", prompt="Summarize it. Don't ramble."))


class TestParseJsonAnswers:
    def test_fenced_reply(self):
        text = 'Here you go:\n```json\n{"summary": "ok", "extra": "dropped"}\n```'
        assert parse_json_answers(text, ["summary"]) == {"summary": "ok"}

    def test_non_string_values_are_serialized(self):
        assert parse_json_answers('{"config": {"a": 1}}', ["config"]) == {"config": '{"a": 1}'}

    def test_missing_key(self):
        with pytest.raises(TransportError, match="missing keys: title"):
            parse_json_answers('{"summary": "ok"}', ["summary", "title"])

    def test_no_json(self):
        with pytest.raises(TransportError, match="no JSON object"):
            parse_json_answers("sorry, I cannot help", ["summary"])


class TestStdoutTransport:
    @pytest.mark.asyncio
    async def test_prints_document_and_defers(self, summary_request):
        stream = io.StringIO()

        result = await StdoutTransport(stream).resolve(summary_request)

        assert isinstance(result, Deferred)
        assert result.exit_code == 2
        assert result.answers_path == "./ai-answers.json"
        assert stream.getvalue() == result.prompt_document + ("" if result.prompt_document.endswith("\n") else "\n")
        assert "kitgen run docs --answers ./ai-answers.json" in result.prompt_document


class ReplyClient(ChatClient):
    provider = "reply"

    def __init__(self, reply):
        super().__init__("gpt-4o", "http://unused", {})
        self.reply = reply
        self.systems: list[str] = []

    async def complete(self, system, prompt, temperature=0.2, max_tokens=4096):
        self.systems.append(system)
        return Completion(text=self.reply, model=self.model, usage=Usage(100, 20))


class TestApiTransport:
    @pytest.mark.asyncio
    async def test_batched_answers(self, summary_request):
        client = ReplyClient('{"summary": "Short."}')

        result = await ApiTransport(AiService(client)).resolve(summary_request)

        assert result == Resolved({"summary": "Short."})
        assert "summary" in client.systems[0]

    @pytest.mark.asyncio
    async def test_bad_reply_fails(self, summary_request):
        result = await ApiTransport(AiService(ReplyClient("no json here"))).resolve(summary_request)
        assert isinstance(result, Failed)


@pytest.mark.integration
class TestCommandTransport:
    @pytest.mark.asyncio
    async def test_batched_via_stdin(self, tmp_path, summary_request):
        received = tmp_path / "received.txt"
        script = tmp_path / "answer.sh"
        script.write_text(f"#!/bin/sh\ncat > '{received}'\necho '{{\"summary\": \"from command\"}}'\n")
        script.chmod(script.stat().st_mode | stat.S_IEXEC)

        result = await CommandTransport(str(script)).resolve(summary_request)

        assert result == Resolved({"summary": "from command"})
        document = received.read_text()
        assert "### `summary`" in document
        assert "Respond with ONLY a valid JSON object" in document
        assert "## Instructions" not in document

    @pytest.mark.asyncio
    async def test_prompt_placeholder_is_quoted(self, summary_request):
        result = await CommandTransport("printf '%s' {prompt}", mode="per-block").resolve(summary_request)

        assert isinstance(result, Resolved)
        assert "Summarize it. Don't ramble." in result.answers["summary"]

    @pytest.mark.asyncio
    async def test_nested_session_marker_removed(self, monkeypatch, summary_request):
        monkeypatch.setenv("CLAUDECODE", "1")
        command = "sh -c 'cat > /dev/null; printf %s \"${CLAUDECODE:-unset}\"'"

        result = await CommandTransport(command, mode="per-block").resolve(summary_request)

        assert result.answers == {"summary": "unset"}
        assert os.environ["CLAUDECODE"] == "1"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, summary_request):
        result = await CommandTransport("sh -c 'cat > /dev/null; echo nope >&2; exit 3'").resolve(summary_request)

        assert isinstance(result, Failed)
        assert "status 3" in str(result.error)
        assert "nope" in str(result.error)

    @pytest.mark.asyncio
    async def test_timeout(self, summary_request):
        result = await CommandTransport("sleep 5", timeout=0.2).resolve(summary_request)

        assert isinstance(result, Failed)
        assert "timed out" in str(result.error)


class TestResolveTransport:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for var in list(os.environ.keys()):
            if "API_KEY" in var or var.startswith("KITGEN_"):
                monkeypatch.delenv(var, raising=False)

    def test_auto_defaults_to_stdout(self):
        assert isinstance(resolve_transport(AISettings()), StdoutTransport)

    def test_off_prints(self):
        assert isinstance(resolve_transport(AISettings(mode="off", command="agent")), StdoutTransport)

    def test_auto_prefers_api(self):
        transport = resolve_transport(AISettings(provider="anthropic", api_key="k", command="agent"))
        assert isinstance(transport, ApiTransport)

    def test_auto_falls_back_to_command(self):
        transport = resolve_transport(AISettings(provider="anthropic", command="agent -p {prompt}", command_mode="per-block"))
        assert isinstance(transport, CommandTransport)
        assert transport.mode == "per-block"

    def test_api_mode_without_provider(self):
        with pytest.raises(TransportConfigError) as exc_info:
            resolve_transport(AISettings(mode="api"))
        assert "KITGEN_AI_PROVIDER" in exc_info.value.remediation

    def test_api_mode_without_key(self):
        with pytest.raises(TransportConfigError, match="no API key"):
            resolve_transport(AISettings(mode="api", provider="openai"))

    def test_command_mode_without_command(self):
        with pytest.raises(TransportConfigError, match="no command"):
            resolve_transport(AISettings(mode="command"))


class TestDescribeCommand:
    def test_strips_answers_flag(self):
        assert describe_command(["kitgen", "run", "docs", "--answers", "a.json", "--dry"]) == "kitgen run docs --dry"
        assert describe_command(["kitgen", "run", "--answers=a.json", "docs"]) == "kitgen run docs"

    def test_quotes_arguments(self):
        assert describe_command(["kitgen", "run", "--title=Hello World"]) == "kitgen run '--title=Hello World'"
