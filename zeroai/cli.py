from __future__ import annotations

import argparse
import asyncio
import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import cast

import uvicorn

from zeroai.auth.store import CredentialStore
from zeroai.chat.types import ChatRequest
from zeroai.client import Client, ClientConfig
from zeroai.config import ConfigStore
from zeroai.errors import ZeroAIError
from zeroai.mapper import ModelMapper
from zeroai.providers import ProviderKind
from zeroai.server import create_app
from zeroai.settings import get_settings

DOCTOR_PROMPT = "Say hello in one word."

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("zeroai").setLevel(level)


@dataclass(slots=True)
class DoctorReport:
    model: str
    success: bool
    response_len: int = 0
    error: str | None = None
    skipped: bool = False


def pick_doctor_models(
    enabled_models: Sequence[str],
    mapper: ModelMapper,
    model_filter: str | None = None,
    chooser: Callable[[Sequence[str]], str] = random.choice,
) -> list[str]:
    """One model per provider, or just ``model_filter`` when it is enabled."""
    if model_filter is not None:
        return [model_filter] if model_filter in enabled_models else []
    by_provider: dict[str, list[str]] = {}
    for full_id in enabled_models:
        split = mapper.split_id(full_id)
        if split is not None:
            by_provider.setdefault(split[0], []).append(full_id)
    return [chooser(models) for models in by_provider.values()]


async def check_model(client: Client, full_id: str) -> DoctorReport:
    split = ModelMapper().split_id(full_id)
    if not split:
        return DoctorReport(model=full_id, success=False, error="invalid model id")
    provider_id = split[0]
    kind = ProviderKind.from_lower_str(provider_id)
    if kind is None:
        return DoctorReport(
            model=full_id, success=False, error=f"unknown provider: {provider_id}"
        )
    try:
        api_key = client.resolve_api_key(provider_id)
        if api_key is None and client.registry.env_var(kind) is not None:
            return DoctorReport(
                model=full_id, success=False, error="no credentials", skipped=True
            )
        response = await client.exec_chat(full_id, ChatRequest.from_user(DOCTOR_PROMPT))
    except ZeroAIError as exc:
        return DoctorReport(model=full_id, success=False, error=str(exc))
    text = response.first_text() or ""
    return DoctorReport(model=full_id, success=True, response_len=len(text))


async def run_doctor(
    client: Client,
    enabled_models: Sequence[str],
    model_filter: str | None = None,
    chooser: Callable[[Sequence[str]], str] = random.choice,
) -> list[DoctorReport]:
    models = pick_doctor_models(
        enabled_models, ModelMapper(), model_filter=model_filter, chooser=chooser
    )
    reports = []
    for full_id in models:
        reports.append(await check_model(client, full_id))
    return reports


def _config_store(args: argparse.Namespace) -> ConfigStore:
    return ConfigStore(args.config or get_settings().zeroai_config_path)


def cmd_serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.config:
        settings = settings.model_copy(update={"zeroai_config_path": args.config})
    uvicorn.run(
        create_app(settings=settings),
        host=args.host or settings.server_host,
        port=args.port or settings.server_port,
        log_level=settings.log_level.lower(),
    )
    return 0


def cmd_models(args: argparse.Namespace) -> int:
    models = _config_store(args).get_enabled_models()
    if not models:
        print("No models configured.")
        return 0
    for full_id in models:
        print(full_id)
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    config_store = _config_store(args)
    enabled_models = config_store.get_enabled_models()
    if not enabled_models:
        print("No models configured.")
        return 0
    if args.model is not None and args.model not in enabled_models:
        print(f"Model not found in enabled list: {args.model}")
        return 1

    async def _run() -> list[DoctorReport]:
        store = CredentialStore(config_store)
        store.load()
        async with Client(
            ClientConfig.from_settings(get_settings()), credential_store=store
        ) as client:
            return await run_doctor(client, enabled_models, model_filter=args.model)

    reports = asyncio.run(_run())
    failures = 0
    for report in reports:
        if report.skipped:
            print(f"  {report.model} - No credentials")
        elif report.success:
            print(f"  {report.model} - OK ({report.response_len} chars)")
        else:
            failures += 1
            print(f"  {report.model} - FAILED: {report.error}")
    print("Doctor check complete.")
    return 1 if failures else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zeroai",
        description="Unified client and OpenAI-compatible proxy for AI providers.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the zeroai config YAML (default: ZEROAI_CONFIG_PATH).",
    )
    parser.add_argument("--log-level", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_cmd = subparsers.add_parser("serve", help="Run the OpenAI-compatible proxy.")
    serve_cmd.add_argument("--host", default=None)
    serve_cmd.add_argument("--port", type=int, default=None)
    serve_cmd.set_defaults(handler=cmd_serve)

    models_cmd = subparsers.add_parser("models", help="List enabled models.")
    models_cmd.set_defaults(handler=cmd_models)

    doctor_cmd = subparsers.add_parser(
        "doctor", help="Send a short prompt to one model per provider."
    )
    doctor_cmd.add_argument("--model", default=None, help="Check only this model.")
    doctor_cmd.set_defaults(handler=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level or get_settings().log_level)
    handler = cast(Callable[[argparse.Namespace], int], args.handler)

    try:
        return handler(args)
    except ZeroAIError as exc:
        parser.exit(2, f"error: {exc}\n")


if __name__ == "__main__":
    raise SystemExit(main())
