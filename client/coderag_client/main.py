from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from typing import TextIO

from opentelemetry import trace
from pydantic import ValidationError

from coderag_client.core.config import Settings, get_settings
from coderag_client.core.telemetry import (
    configure_client_logging,
    setup_client_telemetry,
    shutdown_client_telemetry,
)
from coderag_client.jobs.errors import SubmissionError
from coderag_client.jobs.models import PollOutcome, PollOutcomeKind
from coderag_client.jobs.poller import AsyncJobPoller
from coderag_client.schemas.diff_analysis import AnalyzeDiffRequest, DiffAnalysisResult
from coderag_client.services.api_client import ApiClient, ApiError
from coderag_client.services.diff_analysis import DiffAnalysisService, parse_analysis_result

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_SUBMISSION_FAILED = 2
EXIT_TIMED_OUT = 3
EXIT_USAGE = 64


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a requirement diff analysis against the code-rag backend.")
    parser.add_argument("requirement", help="Requirement text to analyze (at least 10 characters)")
    parser.add_argument("--role", help="Role used for result weighting, e.g. developer")
    parser.add_argument(
        "--sync",
        action="store_true",
        help="Use the synchronous analyze endpoint (needs the full code-rag backend; the bundled task API has no such route)",
    )
    parser.add_argument("--no-code-matches", action="store_true", help="Skip historical code matching")
    parser.add_argument("--no-prd-fragments", action="store_true", help="Skip PRD fragment lookup")
    parser.add_argument("--no-summary", action="store_true", help="Skip the markdown summary")
    parser.add_argument("--no-todos", action="store_true", help="Skip todo generation")
    parser.add_argument("--code-match-top-k", type=int, help="Code matches per change point (1-20)")
    parser.add_argument("--prd-top-k", type=int, help="PRD fragments to include (1-20)")
    parser.add_argument("--max-attempts", type=int, help="Poll attempts before giving up")
    parser.add_argument("--interval-seconds", type=float, help="Delay between poll attempts")
    parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    return parser


def build_request(args: argparse.Namespace) -> AnalyzeDiffRequest:
    return AnalyzeDiffRequest(
        requirement=args.requirement,
        role=args.role,
        include_code_matches=False if args.no_code_matches else None,
        include_prd_fragments=False if args.no_prd_fragments else None,
        include_summary=False if args.no_summary else None,
        include_todos=False if args.no_todos else None,
        code_match_top_k=args.code_match_top_k,
        prd_top_k=args.prd_top_k,
    )


def render_result(result: DiffAnalysisResult, out: TextIO) -> None:
    changes = result.changes
    out.write(f"requirement: {result.requirement}\n")
    out.write(
        f"new features: {len(changes.new_features)}  "
        f"modified features: {len(changes.modified_features)}  "
        f"risk: {changes.impact_scope.risk_level}\n"
    )
    out.write(f"code recommendations: {len(result.code_recommendations)}  todos: {len(result.todos)}\n")
    for todo in result.todos:
        out.write(f"  - [{todo.priority}] {todo.title}\n")
    if result.summary:
        out.write("\n")
        out.write(result.summary.rstrip("\n"))
        out.write("\n")


def render_outcome(outcome: PollOutcome, *, as_json: bool, out: TextIO, err: TextIO) -> int:
    if outcome.kind is PollOutcomeKind.COMPLETED:
        return _render_payload(outcome.result, as_json=as_json, out=out, err=err)
    if outcome.kind is PollOutcomeKind.TIMED_OUT:
        err.write(f"analysis still processing; check task {outcome.job_id} later\n")
        return EXIT_TIMED_OUT
    if outcome.kind is PollOutcomeKind.CANCELLED:
        err.write(f"polling cancelled for task {outcome.job_id}\n")
        return EXIT_FAILED
    err.write(f"analysis failed: {outcome.error}\n")
    return EXIT_FAILED


async def run_analysis(
    args: argparse.Namespace,
    settings: Settings,
    *,
    service: DiffAnalysisService | None = None,
    out: TextIO = sys.stdout,
    err: TextIO = sys.stderr,
) -> int:
    try:
        request = build_request(args)
    except ValidationError as exc:
        err.write(f"invalid request: {exc.errors()[0]['msg']}\n")
        return EXIT_USAGE

    if service is None:
        client = ApiClient(
            settings.api_base_url,
            token=settings.api_token,
            timeout_seconds=settings.request_timeout_seconds,
        )
        service = DiffAnalysisService(client)

    with tracer.start_as_current_span("client.diff_analysis"):
        if args.sync:
            try:
                result = await service.analyze(request)
            except ApiError as exc:
                err.write(f"analysis failed: {exc.message}\n")
                return EXIT_FAILED
            return _render_payload(result, as_json=args.json, out=out, err=err)

        try:
            poller = AsyncJobPoller(
                service,
                max_attempts=args.max_attempts if args.max_attempts is not None else settings.poll_max_attempts,
                interval_seconds=(
                    args.interval_seconds if args.interval_seconds is not None else settings.poll_interval_seconds
                ),
            )
        except ValueError as exc:
            err.write(f"invalid poll settings: {exc}\n")
            return EXIT_USAGE
        try:
            handle = await poller.submit(request)
        except SubmissionError as exc:
            err.write(f"submission failed: {exc.message}\n")
            return EXIT_SUBMISSION_FAILED

        err.write(f"task {handle.job_id} submitted; waiting for result\n")
        outcome = await poller.wait(handle.job_id)
        return render_outcome(outcome, as_json=args.json, out=out, err=err)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_client_logging()
    tracer_provider = setup_client_telemetry(settings)
    try:
        return asyncio.run(run_analysis(args, settings))
    finally:
        shutdown_client_telemetry(tracer_provider)


def _render_payload(payload: object, *, as_json: bool, out: TextIO, err: TextIO) -> int:
    if as_json:
        if isinstance(payload, DiffAnalysisResult):
            payload = payload.model_dump(by_alias=True, mode="json")
        out.write(json.dumps(payload, ensure_ascii=False, indent=2))
        out.write("\n")
        return EXIT_OK

    try:
        result = payload if isinstance(payload, DiffAnalysisResult) else parse_analysis_result(payload)
    except ApiError as exc:
        err.write(f"analysis finished with an unreadable result: {exc.message}\n")
        return EXIT_FAILED
    render_result(result, out)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
