"""Command-line entry point for the workflow orchestrator."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .errors import OrchestrationError
from .inference import demo_inference_service
from .models import OrchestrationResult
from .orchestrator import WorkflowOrchestrator
from .settings import OrchestratorSettings
from .simulation import print_simulation_report


def build_default_orchestrator(settings: OrchestratorSettings) -> WorkflowOrchestrator:
    """Instantiate an orchestrator over in-memory stores and scripted inference."""
    return WorkflowOrchestrator.in_memory(demo_inference_service(), settings=settings)


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments for the orchestrator demo."""
    parser = argparse.ArgumentParser(description="Run one orchestration for a request.")
    parser.add_argument(
        "prompt",
        nargs="*",
        help="Request to orchestrate (if omitted, read from stdin).",
    )
    parser.add_argument(
        "--max-refinement-passes",
        type=int,
        default=None,
        help="Override the refinement budget per validation failure.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    parser.add_argument(
        "--simulate",
        type=int,
        metavar="N",
        default=None,
        help="Run N scripted orchestrations and print summary tables instead.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON.",
    )
    return parser.parse_args(argv)


def render_result(result: OrchestrationResult) -> str:
    lines = [
        f"Success: {result.success}",
        f"Workflow: {result.workflow_id}",
        f"Main task: {result.main_task_id}",
        f"Subtasks: {len(result.sub_task_ids)}",
    ]
    for artifact in result.artifacts:
        lines.append(f"\n=== {artifact.title} (v{artifact.version}, {artifact.type.value}) ===")
        lines.append(artifact.content)
    for error in result.errors:
        lines.append(f"! {error}")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    """Entry point for running a single orchestration."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.simulate is not None:
        print_simulation_report(num_tests=args.simulate)
        return 0

    prompt = " ".join(args.prompt).strip()
    if not prompt:
        print("Enter your request (Ctrl+D to cancel):")
        prompt = sys.stdin.readline().strip()
        if not prompt:
            print("No request provided, exiting.")
            return 1

    overrides = {}
    if args.max_refinement_passes is not None:
        overrides["max_refinement_passes"] = args.max_refinement_passes
    orchestrator = build_default_orchestrator(OrchestratorSettings(**overrides))

    try:
        result = asyncio.run(orchestrator.orchestrate(prompt))
    except OrchestrationError as exc:
        print(f"Orchestration failed: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(result.model_dump_json(indent=2))
    else:
        print(render_result(result))
    return 0 if result.success else 2


if __name__ == "__main__":
    raise SystemExit(main())
