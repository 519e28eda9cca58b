"""Command-line interface for OpenCowork."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from collections.abc import Sequence
from pathlib import Path

from opencowork.config import ProviderOverride, load_config
from opencowork.config.schema import Config
from opencowork.logging import get_logger, setup_logging
from opencowork.security.trust_store import InvalidPath, TrustLevel, TrustStore
from opencowork.session.storage import MAIN_SURFACE

log = get_logger("cli")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="opencowork",
        description="OpenCowork - an AI assistant that works inside folders you authorize",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )
    parser.add_argument(
        "--folder",
        action="append",
        default=[],
        metavar="PATH",
        help="Authorize a folder (can be repeated; the first becomes the working directory)",
    )
    parser.add_argument(
        "--trust",
        choices=[level.value for level in TrustLevel],
        help="Trust level for the folders given with --folder",
    )
    parser.add_argument(
        "--provider",
        help="Provider preset id (glm, zai, minimax_cn, minimax_intl, custom)",
    )
    parser.add_argument(
        "--model",
        help="Model name, overriding the provider default",
    )
    parser.add_argument(
        "--verbose",
        type=int,
        choices=range(0, 5),
        metavar="N",
        help="Log verbosity 0-4",
    )
    parser.add_argument(
        "--log",
        type=Path,
        metavar="FILE",
        help="Write logs to FILE",
    )
    parser.add_argument(
        "--surface",
        default=MAIN_SURFACE,
        help="Session slot to resume and save into (default: main)",
    )
    return parser


def apply_arguments(config: Config, parsed: argparse.Namespace) -> Config:
    """Fold command-line overrides into the loaded configuration."""
    if parsed.provider:
        config.llm.active_provider = parsed.provider
    if parsed.model:
        override = config.llm.providers.setdefault(config.llm.active_provider, ProviderOverride())
        override.model = parsed.model
    if parsed.verbose is not None:
        config.logging.verbose = parsed.verbose
    elif not config.logging.level:
        config.logging.level = "WARNING"
    if parsed.log:
        config.logging.file = str(parsed.log)
    return config


def authorize_folders(trust_store: TrustStore, folders: Sequence[str], trust: str | None) -> None:
    """Authorize the --folder arguments. The first one becomes primary."""
    for folder in folders:
        trust_store.add_folder(folder)
        if trust:
            trust_store.set_folder_trust(folder, TrustLevel(trust))
    if folders:
        trust_store.set_primary_folder(folders[0])


async def _run_interactive(config: Config, parsed: argparse.Namespace, trust_store: TrustStore) -> int:
    from opencowork.agent.loop import AgentLoop
    from opencowork.cli.commands import CommandHandler
    from opencowork.cli.repl import InteractiveRepl
    from opencowork.core.llm.litellm_provider import LiteLLMProvider
    from opencowork.core.llm.providers import resolve_provider
    from opencowork.mcp.client import MCPClientManager
    from opencowork.session.recorder import SessionRecorder
    from opencowork.session.storage import SessionStore
    from opencowork.skills.manager import SkillManager

    data_dir = Path(os.path.expanduser(config.storage.data_dir))
    try:
        resolved = resolve_provider(config.llm, str(data_dir))
    except ValueError as e:
        print(f"opencowork: {e}", file=sys.stderr)
        return 2
    if not resolved.api_key:
        print(
            f"opencowork: no API key found for provider '{resolved.id}'. "
            "Set it in config.yaml or the provider's environment variable.",
            file=sys.stderr,
        )

    agent = AgentLoop(
        LiteLLMProvider.from_resolved(resolved),
        trust_store,
        skills=SkillManager(config.skills.directory),
        mcp=MCPClientManager(Path(os.path.expanduser(config.mcp.config_file))),
        config=config.agent,
    )
    sessions = SessionStore(data_dir / "sessions")
    sessions.cleanup_empty()
    recorder = SessionRecorder(agent, sessions, parsed.surface)
    current = recorder.session_id
    if current and not recorder.load(current):
        sessions.set_current(parsed.surface, None)

    repl = InteractiveRepl(
        agent,
        CommandHandler(agent, trust_store, sessions, recorder),
        history_file=data_dir / "prompt_history",
    )
    try:
        await agent.initialize()
        await repl.run()
    finally:
        recorder.close()
        await agent.dispose()
    return 0


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    config = apply_arguments(load_config(), parsed)
    setup_logging(config.logging)

    data_dir = Path(os.path.expanduser(config.storage.data_dir))
    data_dir.mkdir(parents=True, exist_ok=True)
    trust_store = TrustStore(data_dir / "trust.yaml")
    try:
        authorize_folders(trust_store, parsed.folder, parsed.trust)
    except InvalidPath as e:
        print(f"opencowork: {e}", file=sys.stderr)
        return 2

    log.debug("Starting with provider %s", config.llm.active_provider)
    return asyncio.run(_run_interactive(config, parsed, trust_store))


def main() -> None:
    sys.exit(run_cli(sys.argv[1:]))
