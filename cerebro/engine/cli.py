"""CLI entry point for the Cerebro engine.

Usage:
    cerebro status
    cerebro models
    cerebro matrix --level dev
    cerebro ask "Explica la arquitectura de este proyecto"
    cerebro ask --profile fast --model llama3.2:3b "Hola"
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from rich.console import Console
from rich.table import Table

from .config import CerebroConfig
from .errors import CerebroError
from .models import ACCESS_LEVEL_ORDER, AccessLevel, CompletionRequest
from .permissions import PermissionMatrix, PermissionMatrixEngine, describe_rules
from .profile_selector import resolve_active_profile
from .providers import OllamaProvider, ProviderFactory
from .yaml_config import CerebroYamlConfig, load_yaml_config

logger = logging.getLogger(__name__)
console = Console()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="cerebro",
        description="Local-first assistant engine: streaming providers and capability policy",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML config file (runtime, settings, profiles, access_levels)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Probe the local engine and show the selected runtime")
    sub.add_parser("models", help="List models installed in the local engine")

    matrix = sub.add_parser("matrix", help="Show the permission matrix")
    matrix.add_argument(
        "--level",
        choices=[lvl.value for lvl in ACCESS_LEVEL_ORDER],
        default=None,
        help="Access level to preview (default: configured level)",
    )

    ask = sub.add_parser("ask", help="Stream a completion to stdout")
    ask.add_argument("prompt", help="Prompt text")
    ask.add_argument("--profile", default=None, help="Pin a reasoning profile")
    ask.add_argument("--model", default=None, help="Override the model")

    args = parser.parse_args()

    # Configure logging
    level_name = "DEBUG" if args.verbose else os.getenv("CEREBRO_LOG_LEVEL", "WARNING")
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        loaded = _load_config(args.config)
        if args.command == "status":
            code = asyncio.run(_status(loaded))
        elif args.command == "models":
            code = asyncio.run(_models(loaded))
        elif args.command == "matrix":
            code = _matrix(loaded, args.level)
        else:
            code = asyncio.run(_ask(loaded, args))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)
    except CerebroError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)
    sys.exit(code)


def _load_config(path: str | None) -> CerebroYamlConfig:
    if path:
        return load_yaml_config(path)
    return CerebroYamlConfig(config=CerebroConfig.from_env())


async def _status(loaded: CerebroYamlConfig) -> int:
    factory = ProviderFactory(loaded.config, loaded.profiles)
    provider = await factory.select()
    probe = factory.last_probe
    console.print(f"Runtime:  [bold]{factory.status.value}[/bold]")
    console.print(f"Provider: {provider.name}")
    if probe is not None:
        if probe.ok:
            console.print(f"Ollama:   reachable ({probe.latency_ms} ms)")
        else:
            console.print(f"Ollama:   unreachable ({probe.error})")
    settings = loaded.config.settings
    console.print(
        f"Network:  {'enabled' if settings.network_enabled else 'disabled'}"
        f" | API key: {'set' if loaded.config.remote_configured else 'missing'}"
    )
    console.print(f"Access:   {settings.access_level.value}")
    await factory.shutdown()
    return 0


async def _models(loaded: CerebroYamlConfig) -> int:
    provider = OllamaProvider(
        default_model=loaded.config.default_local_model,
        base_url=loaded.config.ollama_url,
        profiles=loaded.profiles,
    )
    installed = await provider.installed_models()
    if not installed.raw:
        console.print("No local models installed. Try: ollama pull mistral")
        return 1
    for name in installed.raw:
        console.print(name)
    return 0


def _matrix(loaded: CerebroYamlConfig, level: str | None) -> int:
    engine = PermissionMatrixEngine(loaded.profiles, loaded.policy)
    active = AccessLevel(level) if level else loaded.config.settings.access_level
    holder = PermissionMatrix(engine, active)

    table = Table(title=f"Permission matrix ({active.value})")
    table.add_column("Profile", style="bold")
    table.add_column("Runtime")
    table.add_column("Allowed", style="green")
    table.add_column("Blocked", style="red")
    for profile in loaded.profiles.list_profiles():
        allowed = describe_rules(holder.effective_permissions(profile.profile_id))
        blocked = describe_rules(holder.blocked_permissions(profile.profile_id))
        table.add_row(
            profile.profile_id,
            profile.runtime.value,
            "\n".join(allowed) or "-",
            "\n".join(blocked) or "-",
        )
    console.print(table)
    return 0


async def _ask(loaded: CerebroYamlConfig, args: argparse.Namespace) -> int:
    settings = loaded.config.settings
    if args.profile:
        loaded.profiles.get_or_raise(args.profile)
        settings.profile_mode = "manual"
        settings.manual_profile_id = args.profile

    factory = ProviderFactory(loaded.config, loaded.profiles)
    provider = await factory.select()
    profile_id = resolve_active_profile(settings, args.prompt, loaded.profiles, factory.status)
    profile = loaded.profiles.get_or_raise(profile_id)
    logger.info(
        "Asking with profile %s via %s", profile_id, provider.name,
    )

    request = CompletionRequest(
        prompt=args.prompt,
        system=profile.system_prompt(settings.language),
        model=args.model,
        profile_id=profile_id,
        on_token=lambda token: print(token, end="", flush=True),
    )
    handle = provider.complete(request)
    try:
        result = await handle
    except asyncio.CancelledError:
        handle.cancel()
        await handle.result()
        raise
    finally:
        await factory.shutdown()
    print()

    if result.cancelled:
        console.print(f"[yellow]Cancelled ({result.cancel_reason.value})[/yellow]")
        return 2
    return 0


if __name__ == "__main__":
    main()
