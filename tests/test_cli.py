from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import httpx
import pytest
import yaml

from zeroai import cli
from zeroai.auth.credentials import ApiKeyCredential
from zeroai.auth.store import CredentialStore
from zeroai.client import Client
from zeroai.mapper import ModelMapper
from zeroai.settings import get_settings

COMPLETION = {
    "choices": [
        {"message": {"role": "assistant", "content": "Hi"}, "finish_reason": "stop"}
    ]
}


def _config(tmp_path: Path, models: list[str]) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"enabled_models": models}), encoding="utf-8")
    return path


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_parser_serve_options() -> None:
    args = cli.build_parser().parse_args(
        ["--config", "/tmp/c.yaml", "serve", "--host", "0.0.0.0", "--port", "9000"]
    )

    assert args.config == "/tmp/c.yaml"
    assert args.host == "0.0.0.0"
    assert args.port == 9000
    assert args.handler is cli.cmd_serve


def test_models_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _config(tmp_path, ["openai/gpt-4o", "groq/llama-3.1-8b"])

    exit_code = cli.main(["--config", str(path), "models"])

    assert exit_code == 0
    assert capsys.readouterr().out.splitlines() == ["openai/gpt-4o", "groq/llama-3.1-8b"]


def test_models_command_empty(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["--config", str(tmp_path / "missing.yaml"), "models"])

    assert exit_code == 0
    assert "No models configured." in capsys.readouterr().out


def test_doctor_unknown_model(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = _config(tmp_path, ["openai/gpt-4o"])

    exit_code = cli.main(["--config", str(path), "doctor", "--model", "openai/other"])

    assert exit_code == 1
    assert "Model not found in enabled list" in capsys.readouterr().out


def test_invalid_config_exits_with_error(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(path), "models"])

    assert excinfo.value.code == 2


def test_pick_doctor_models_one_per_provider() -> None:
    enabled = ["openai/gpt-4o", "openai/gpt-4o-mini", "groq/llama-3.1-8b"]

    picked = cli.pick_doctor_models(enabled, ModelMapper(), chooser=lambda models: models[-1])

    assert picked == ["openai/gpt-4o-mini", "groq/llama-3.1-8b"]


def test_pick_doctor_models_filter() -> None:
    enabled = ["openai/gpt-4o", "groq/llama-3.1-8b"]

    assert cli.pick_doctor_models(enabled, ModelMapper(), "groq/llama-3.1-8b") == [
        "groq/llama-3.1-8b"
    ]
    assert cli.pick_doctor_models(enabled, ModelMapper(), "groq/other") == []


def test_run_doctor(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.openai.com":
            return httpx.Response(200, json=COMPLETION)
        return httpx.Response(500, text="down")

    store = CredentialStore(
        credentials={
            "openai": ApiKeyCredential(key="sk"),
            "deepseek": ApiKeyCredential(key="ds"),
        }
    )

    async def run() -> list[Any]:
        async with Client(
            credential_store=store,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        ) as client:
            return await cli.run_doctor(
                client,
                ["openai/gpt-4o", "groq/llama-3.1-8b", "deepseek/deepseek-chat"],
                chooser=lambda models: models[0],
            )

    reports = {report.model: report for report in asyncio.run(run())}

    assert reports["openai/gpt-4o"].success is True
    assert reports["openai/gpt-4o"].response_len == 2
    assert reports["groq/llama-3.1-8b"].skipped is True
    assert reports["deepseek/deepseek-chat"].success is False
    assert "500" in (reports["deepseek/deepseek-chat"].error or "")


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Any:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
