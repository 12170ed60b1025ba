"""
Main entry point — parse args, load config, set up logging, launch the CLI.
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config.settings import load_config
from .core.approval import ApprovalPolicy
from .core.errors import ConfigError
from .core.structured_logger import setup_logging, verbosity_to_level
from .interfaces.cli import CLI


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="codeloop-agent",
        description="Autonomous coding agent for the terminal",
    )
    parser.add_argument(
        "prompt",
        nargs="?",
        default=None,
        help="Run a single prompt and exit (interactive mode when omitted)",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to config YAML file",
        default=None,
    )
    parser.add_argument(
        "--cwd",
        help="Working directory for the agent",
        default=None,
    )
    parser.add_argument(
        "-p", "--provider",
        help="Model provider (openai, gemini, groq, anthropic)",
        default=None,
    )
    parser.add_argument(
        "-m", "--model",
        help="Model name to use",
        default=None,
    )
    parser.add_argument(
        "--approval",
        choices=[p.value for p in ApprovalPolicy],
        default=None,
        help="Approval policy for mutating tool calls",
    )
    parser.add_argument(
        "--max-turns",
        type=int,
        default=None,
        help="Maximum agentic turns per message",
    )
    parser.add_argument(
        "--autoplan",
        action="store_true",
        help="Ask the model for a short plan before acting",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    )
    parser.add_argument(
        "--resume",
        metavar="SESSION_ID",
        default=None,
        help="Resume a saved session",
    )
    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> dict:
    """Command line values as a config mapping."""
    overrides: dict = {}
    if args.provider:
        overrides["provider"] = args.provider
    if args.model:
        overrides["model"] = {"name": args.model}
    if args.approval:
        overrides["approval"] = args.approval
    if args.max_turns is not None:
        overrides["max_turns"] = args.max_turns
    if args.autoplan:
        overrides["autoplan"] = True
    return overrides


async def run(cli: CLI, prompt: Optional[str], resume_id: Optional[str]) -> int:
    try:
        await cli.agent.initialize()
        if resume_id and not cli.resume(resume_id):
            return 1
        if prompt:
            await cli.run_single(prompt)
        else:
            await cli.run()
    finally:
        await cli.agent.close()
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)

    try:
        config = load_config(args.cwd, args.config, build_overrides(args))
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Configuration error: {error}", file=sys.stderr)
        sys.exit(1)

    setup_logging(level=verbosity_to_level(args.verbose, config.debug))
    logger = logging.getLogger(__name__)
    logger.info(f"Workspace: {config.cwd}")
    logger.debug(f"Config: {config!r}")

    cli = CLI(config)
    try:
        code = asyncio.run(run(cli, args.prompt, args.resume))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
