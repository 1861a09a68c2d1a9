"""Entry point for the calltest CLI."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import yaml

from calltest import __version__
from calltest.config import CallTestConfig, LogLevel, get_config
from calltest.evaluator import TranscriptEvaluator
from calltest.events import ProgressEvent
from calltest.models import ResultStatus, RunStatus, TestRun
from calltest.persistence import JsonFileResultStore
from calltest.providers import create_judge_provider, create_simulation_provider
from calltest.reporting import format_run_summary
from calltest.runner import TestRunner, prepare_run, run_suite
from calltest.scenarios import ScenarioGenerator
from calltest.simulator import ConversationSimulator
from calltest.suite import load_suite
from calltest.utils.errors import CallTestError, ConfigurationError

logger = logging.getLogger(__name__)


def setup_logging(level: LogLevel) -> None:
    """Configure logging for the CLI."""
    logging.basicConfig(
        level=level.value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )


def _add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--results-dir",
        default=None,
        help="Directory holding run documents (default: .calltest/runs)",
    )
    parser.add_argument(
        "--format",
        choices=["terminal", "markdown"],
        default="terminal",
        help="Summary output format (default: terminal)",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="calltest",
        description="Test voice agent prompts with simulated phone calls",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a test suite")
    run_parser.add_argument("suite", help="Path to a YAML or JSON suite file")
    run_parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Cases simulated at once (default: 3)",
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-case simulation timeout in seconds (default: 60)",
    )
    run_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print progress events",
    )
    _add_output_args(run_parser)
    _add_common_args(run_parser)

    generate_parser = subparsers.add_parser(
        "generate", help="Draft test cases from an agent prompt"
    )
    generate_parser.add_argument("prompt_file", help="File holding the agent's system prompt")
    generate_parser.add_argument("--name", default=None, help="Agent name")
    generate_parser.add_argument(
        "--output",
        default=None,
        help="Write the generated suite here (default: stdout)",
    )
    _add_common_args(generate_parser)

    summary_parser = subparsers.add_parser("summary", help="Show a stored run")
    summary_parser.add_argument("run_id", help="Run identifier")
    _add_output_args(summary_parser)
    _add_common_args(summary_parser)

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CallTestConfig:
    """Build config from args, falling back to environment/defaults."""
    config_kwargs: dict[str, Any] = {}
    if getattr(args, "concurrency", None):
        config_kwargs["max_concurrency"] = args.concurrency
    if getattr(args, "timeout", None):
        config_kwargs["case_timeout_seconds"] = args.timeout
    if getattr(args, "results_dir", None):
        config_kwargs["results_dir"] = Path(args.results_dir)
    if args.log_level:
        config_kwargs["log_level"] = LogLevel(args.log_level)
    if not config_kwargs:
        return get_config()
    return CallTestConfig(**config_kwargs)


def print_event(event: ProgressEvent) -> None:
    print(event.model_dump_json(), flush=True)


async def run_command(config: CallTestConfig, args: argparse.Namespace) -> int:
    agent, cases = load_suite(args.suite, default_max_turns=config.default_max_turns)

    simulator = ConversationSimulator(
        create_simulation_provider(config), config.max_tokens_per_turn
    )
    evaluator = TranscriptEvaluator(create_judge_provider(config), config.max_eval_tokens)
    runner = TestRunner.from_config(config, simulator, evaluator)
    store = JsonFileResultStore(config.results_dir)

    run, active = await prepare_run(store, cases, prompt_tested=agent.system_prompt)
    logger.info(f"Created run {run.id} with {len(active)} cases")

    on_progress = (lambda event: None) if args.quiet else print_event
    final = await run_suite(runner, run.id, active, agent, store, on_progress)
    results = await store.list_results(run.id)

    print(format_run_summary(final, results, active, fmt=args.format))
    logger.info(f"Run document written to {store.path_for(run.id)}")
    return 0 if _all_passed(final) else 1


def _all_passed(run: TestRun) -> bool:
    return run.status == RunStatus.COMPLETED and run.passed_cases == run.total_cases


async def generate_command(config: CallTestConfig, args: argparse.Namespace) -> int:
    prompt = Path(args.prompt_file).read_text().strip()
    if not prompt:
        raise ConfigurationError(f"Prompt file {args.prompt_file} is empty")

    provider = create_judge_provider(config)
    if provider is None:
        raise ConfigurationError("Scenario generation needs evaluation provider credentials")

    generator = ScenarioGenerator(provider, config.max_generation_tokens)
    cases = await generator.generate(prompt, agent_name=args.name)
    if not cases:
        logger.error("Failed to parse generated test cases")
        return 1

    suite = {
        "agent": {"system_prompt": prompt},
        "cases": [
            {
                "name": c.name,
                "scenario": c.scenario,
                "persona": c.persona.traits.temperament.value if c.persona else None,
                "tags": c.tags,
                "success_criteria": [
                    {"criterion": sc.criterion, "type": sc.type.value}
                    for sc in c.success_criteria
                ],
            }
            for c in cases
        ],
    }
    text = yaml.safe_dump(suite, sort_keys=False, allow_unicode=True)
    if args.output:
        Path(args.output).write_text(text)
        logger.info(f"Wrote {len(cases)} test cases to {args.output}")
    else:
        print(text)
    return 0


async def summary_command(config: CallTestConfig, args: argparse.Namespace) -> int:
    store = JsonFileResultStore(config.results_dir)
    run = store.load(args.run_id)
    results = await store.list_results(run.id)
    print(format_run_summary(run, results, fmt=args.format))
    failed = any(r.status != ResultStatus.PASSED for r in results)
    return 1 if failed else 0


COMMANDS = {
    "run": run_command,
    "generate": generate_command,
    "summary": summary_command,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        setup_logging(LogLevel.INFO)
        logger.error(f"Configuration error: {e}")
        return 2

    setup_logging(config.log_level)
    logger.debug(f"calltest v{__version__}")

    try:
        return asyncio.run(COMMANDS[args.command](config, args))
    except CallTestError as e:
        logger.error(str(e))
        return 2
    except OSError as e:
        logger.error(f"I/O error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
