"""Runtime helpers and command line entry point for thought sessions."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .clients import PROVIDER_API_KEY_ENV, GenerationConfig, LLMClient, ThoughtGenerator
from .errors import ThinkingError
from .manager import ThoughtSessionManager
from .persistence import save_session
from .relevance import RelevanceFilter
from .schemas import dumps_payload
from .storage import ThoughtStore

logger = logging.getLogger(__name__)


@dataclass
class ThinkingRuntime:
    """One thought session: a store, a generator, and the manager that drives them."""

    llm_model: str = "gemini-2.0-flash-thinking-exp-01-21"
    llm_provider: str = "gemini"
    llm_url: Optional[str] = None
    temperature: float = 0.7
    top_p: float = 0.8
    top_k: Optional[int] = 40
    max_tokens: int = 1024
    context_top_k: Optional[int] = None
    session_path: Optional[str] = None
    generator: Optional[ThoughtGenerator] = None
    store: ThoughtStore = field(default_factory=ThoughtStore)

    def __post_init__(self) -> None:
        if self.generator is None:
            self.generator = LLMClient(
                model=self.llm_model,
                provider=self.llm_provider,
                base_url=self.llm_url,
            )
        context_filter = (
            RelevanceFilter(top_k=self.context_top_k) if self.context_top_k else None
        )
        self.manager = ThoughtSessionManager(
            store=self.store,
            generator=self.generator,
            generation_config=GenerationConfig(
                temperature=self.temperature,
                top_p=self.top_p,
                top_k=self.top_k,
                max_tokens=self.max_tokens,
            ),
            context_filter=context_filter,
        )
        if self.session_path and Path(self.session_path).expanduser().exists():
            thoughts, branches = self.manager.load(self.session_path)
            logger.info("Resumed session with %s thoughts and %s branches", thoughts, branches)
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def process(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        if self._closed:
            raise RuntimeError("Thinking session is closed")
        return self.manager.process(request)

    def close(self, flush_to: Optional[str] = None) -> None:
        """End the session, saving it first when ``flush_to`` is given."""

        if self._closed:
            return
        if flush_to:
            save_session(self.store, flush_to)
        self._closed = True


def _iter_requests(stream: Iterable[str]) -> Iterable[Tuple[bool, Any]]:
    for raw_line in stream:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            yield True, json.loads(line)
        except json.JSONDecodeError as exc:
            logger.error("Skipping malformed JSON line: %s", line)
            yield False, f"Malformed JSON line: {exc}"


def _run_think(args: argparse.Namespace) -> int:
    env_name = PROVIDER_API_KEY_ENV[args.llm_provider]
    if args.llm_provider != "vllm" and not os.environ.get(env_name):
        logger.error("%s environment variable is not set", env_name)
        return 1

    try:
        runtime = ThinkingRuntime(
            llm_model=args.llm_model,
            llm_provider=args.llm_provider,
            llm_url=args.llm_url,
            temperature=args.temperature,
            top_p=args.top_p,
            top_k=args.top_k,
            max_tokens=args.max_tokens,
            context_top_k=args.context_top_k,
            session_path=args.session,
        )
    except ThinkingError as exc:
        logger.error("Could not resume session from %s: %s", args.session, exc)
        return 1

    def _run_stream(stream: Iterable[str]) -> List[Mapping[str, object]]:
        results: List[Mapping[str, object]] = []
        for ok, request in _iter_requests(stream):
            if not ok:
                results.append({"status": "failed", "error": request})
                continue
            results.append(runtime.process(request))
        return results

    try:
        if args.input:
            with args.input.open("r", encoding="utf-8") as fh:
                results = _run_stream(fh)
        else:
            results = _run_stream(sys.stdin)
    finally:
        try:
            runtime.close(flush_to=args.session if args.save_on_exit else None)
        except ThinkingError as exc:
            logger.error("%s", exc)
            exit_code = 1
        else:
            exit_code = 0

    for result in results:
        print(dumps_payload(result))
    return exit_code


def _run_filter(args: argparse.Namespace) -> int:
    document = args.document.read_text(encoding="utf-8")
    extra = [item.strip() for item in (args.keywords or "").split(",") if item.strip()]
    relevance = RelevanceFilter(top_k=args.top_k, max_keywords=args.max_keywords)
    result = relevance(document, args.query, extra)
    logger.info("Extracted keywords: %s", ", ".join(result.keywords))

    if args.output:
        args.output.write_text(result.text, encoding="utf-8")
        logger.info("Filtered document saved to %s", args.output)
    else:
        sys.stdout.write(result.text)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a reflective thought session")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging to trace prompts, responses and loaded thoughts.",
    )
    subparsers = parser.add_subparsers(dest="mode", required=True)

    think = subparsers.add_parser("think", help="Process JSONL turn requests and session commands")
    think.add_argument("--llm-model", default="gemini-2.0-flash-thinking-exp-01-21", help="Model name")
    think.add_argument(
        "--llm-provider",
        choices=sorted(PROVIDER_API_KEY_ENV),
        default="gemini",
        help="Generator provider type",
    )
    think.add_argument("--llm-url", default=None, help="Override the provider's base URL")
    think.add_argument("--temperature", type=float, default=0.7)
    think.add_argument("--top-p", type=float, default=0.8)
    think.add_argument("--top-k", type=int, default=40)
    think.add_argument("--max-tokens", type=int, default=1024)
    think.add_argument(
        "--context-top-k",
        type=int,
        default=None,
        help="Shrink 'File:'-sectioned contexts to this many relevant sections before prompting.",
    )
    think.add_argument("--session", default=None, help="Session file to resume from if it exists")
    think.add_argument(
        "--save-on-exit",
        action="store_true",
        help="Save the session to --session when the input is exhausted.",
    )
    think.add_argument(
        "--input",
        type=Path,
        help="Optional path to a JSONL file. Defaults to reading from standard input.",
    )

    filt = subparsers.add_parser("filter", help="Reduce a 'File:'-sectioned document to relevant sections")
    filt.add_argument("document", type=Path, help="Document to filter, e.g. a packed repository dump")
    filt.add_argument("--query", required=True, help="Analysis query to rank sections against")
    filt.add_argument("--keywords", default="", help="Additional comma-separated keywords")
    filt.add_argument("--top-k", type=int, default=10, help="Number of sections to keep")
    filt.add_argument("--max-keywords", type=int, default=10, help="Keywords extracted from the query")
    filt.add_argument("--output", type=Path, help="Write the reduced document here instead of stdout")
    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, stream=sys.stderr)

    if args.mode == "think":
        if args.save_on_exit and not args.session:
            parser.error("--save-on-exit requires --session")
        return _run_think(args)
    if args.top_k < 0:
        parser.error("--top-k must be at least 0")
    return _run_filter(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
