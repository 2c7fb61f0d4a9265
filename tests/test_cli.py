"""Tests for the command line interface."""

import json
import logging

import pytest
import respx
from click.testing import CliRunner
from httpx import Response

from fitstream.cli import main
from fitstream.config import DEFAULT_BASE_URL
from fitstream.storage import FileStorage, HistoryStore
from fitstream.utils.logging import PACKAGE_LOGGER
from fitstream.version import __version__

API_URL = f"{DEFAULT_BASE_URL}/chat/completions"


@pytest.fixture(autouse=True)
def restore_package_logger():
    """The analyze command reconfigures the package logger."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def history_dir(tmp_path):
    return tmp_path / "history"


@pytest.fixture
def job_file(tmp_path, job_description):
    path = tmp_path / "job.txt"
    path.write_text(job_description, encoding="utf-8")
    return path


@pytest.fixture
def prompt_file(tmp_path):
    path = tmp_path / "prompt.txt"
    path.write_text("Compare the job with this portfolio. Reply in JSON.", encoding="utf-8")
    return path


class TestMain:
    """Tests for the command group."""

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("analyze", "history", "config"):
            assert command in result.output


class TestAnalyzeCommand:
    """Tests for the analyze command."""

    def test_missing_api_key(self, runner, job_file, prompt_file, history_dir):
        result = runner.invoke(
            main,
            ["analyze", str(job_file), "-s", str(prompt_file), "--history-dir", str(history_dir)],
        )

        assert result.exit_code == 1
        assert "OPENAI_API_KEY" in result.output

    def test_requires_system_prompt(self, runner, job_file):
        result = runner.invoke(main, ["analyze", str(job_file)])
        assert result.exit_code == 2

    def test_empty_job_description(self, runner, api_key, tmp_path, prompt_file, history_dir):
        empty = tmp_path / "empty.txt"
        empty.write_text("   \n", encoding="utf-8")

        result = runner.invoke(
            main,
            ["analyze", str(empty), "-s", str(prompt_file), "--history-dir", str(history_dir)],
        )

        assert result.exit_code == 1
        assert "Please enter a job description to analyze." in result.output

    def test_successful_analysis(
        self,
        runner,
        api_key,
        job_file,
        prompt_file,
        history_dir,
        analysis_response_text,
        make_completion_stream,
        split,
    ):
        """Test a full run, from the streamed response to the saved history."""
        body = make_completion_stream(split(analysis_response_text, 32))

        with respx.mock:
            route = respx.post(API_URL).mock(return_value=Response(200, text=body))
            result = runner.invoke(
                main,
                [
                    "analyze",
                    str(job_file),
                    "-s",
                    str(prompt_file),
                    "--history-dir",
                    str(history_dir),
                    "--model",
                    "gpt-5-mini",
                ],
            )

        assert result.exit_code == 0, result.output
        assert "Strong Match" in result.output
        assert "Saved to history as" in result.output

        request_body = json.loads(route.calls.last.request.content)
        assert request_body["model"] == "gpt-5-mini"
        assert request_body["response_format"] == {"type": "json_object"}

        records = HistoryStore(FileStorage(history_dir)).load()
        assert len(records) == 1
        assert records[0].assessment.id in result.output

    def test_no_json_mode(
        self,
        runner,
        api_key,
        job_file,
        prompt_file,
        history_dir,
        analysis_response_text,
        make_completion_stream,
    ):
        with respx.mock:
            route = respx.post(API_URL).mock(
                return_value=Response(200, text=make_completion_stream([analysis_response_text]))
            )
            result = runner.invoke(
                main,
                [
                    "analyze",
                    str(job_file),
                    "-s",
                    str(prompt_file),
                    "--history-dir",
                    str(history_dir),
                    "--no-json-mode",
                ],
            )

        assert result.exit_code == 0, result.output
        assert "response_format" not in json.loads(route.calls.last.request.content)

    def test_server_error(self, runner, api_key, job_file, prompt_file, history_dir):
        with respx.mock:
            respx.post(API_URL).mock(return_value=Response(500))
            result = runner.invoke(
                main,
                [
                    "analyze",
                    str(job_file),
                    "-s",
                    str(prompt_file),
                    "--history-dir",
                    str(history_dir),
                ],
            )

        assert result.exit_code == 1
        assert "Something went wrong on our end." in result.output
        assert HistoryStore(FileStorage(history_dir)).count() == 0


class TestHistoryCommands:
    """Tests for the history commands."""

    @pytest.fixture
    def saved_id(self, history_dir, analysis_response_text, job_description, fixed_ids):
        from fitstream.analysis import ParseContext, parse_analysis_response_or_raise

        assessment = parse_analysis_response_or_raise(
            analysis_response_text,
            ParseContext(original_input=job_description, id_generator=fixed_ids),
        )
        HistoryStore(FileStorage(history_dir)).save(assessment, job_description)
        return assessment.id

    def test_list_empty(self, runner, history_dir):
        result = runner.invoke(main, ["history", "list", "--history-dir", str(history_dir)])

        assert result.exit_code == 0
        assert "No analyses in history." in result.output

    def test_list(self, runner, history_dir, saved_id):
        result = runner.invoke(main, ["history", "list", "--history-dir", str(history_dir)])

        assert result.exit_code == 0
        assert saved_id in result.output

    def test_show(self, runner, history_dir, saved_id):
        result = runner.invoke(
            main, ["history", "show", saved_id, "--history-dir", str(history_dir), "--full"]
        )

        assert result.exit_code == 0
        assert "Mobile development" in result.output
        assert "Job Description" in result.output

    def test_show_missing(self, runner, history_dir):
        result = runner.invoke(
            main, ["history", "show", "nope", "--history-dir", str(history_dir)]
        )

        assert result.exit_code == 1
        assert "No analysis with ID 'nope'" in result.output

    def test_clear(self, runner, history_dir, saved_id):
        result = runner.invoke(main, ["history", "clear", "--history-dir", str(history_dir)])

        assert result.exit_code == 0
        assert HistoryStore(FileStorage(history_dir)).count() == 0


class TestConfigCommand:
    """Tests for the config command."""

    def test_defaults(self, runner):
        result = runner.invoke(main, ["config"])

        assert result.exit_code == 0
        assert "gpt-4o-mini" in result.output
        assert "Max Items: 5" in result.output

    def test_config_file(self, runner, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("history:\n  max_items: 8\n", encoding="utf-8")

        result = runner.invoke(main, ["config", "-c", str(path)])

        assert result.exit_code == 0
        assert "Max Items: 8" in result.output

    def test_invalid_config_file(self, runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("llm:\n  temperature: 9\n", encoding="utf-8")

        result = runner.invoke(main, ["config", "-c", str(path)])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
