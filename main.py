"""Command-line entry point for chatting with ChatNote over a text document."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from chatnote import ConversationManager, DocumentLoader, GenerationError
from chatnote.config import config

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger

    from chatnote import TurnResult

MODES = ("auto", "reasoning", "advanced")
EXIT_COMMANDS = frozenset({"exit", "quit"})


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="Ask questions about a text or markdown document.",
    )
    parser.add_argument(
        "document",
        type=Path,
        help="Path to a UTF-8 .txt or .md document.",
    )
    parser.add_argument(
        "question",
        nargs="?",
        help="Question to answer. Omit to start an interactive session.",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="auto",
        help="Generation mode (default: auto).",
    )
    parser.add_argument(
        "--show-routing",
        action="store_true",
        help="Print the classification and routing decision for each turn.",
    )
    return parser.parse_args(argv)


def print_chunk(chunk: str) -> None:
    sys.stdout.write(chunk)
    sys.stdout.flush()


def report_turn(result: TurnResult, *, show_routing: bool) -> None:
    """Print what the streamed output did not show."""
    print()
    if result.reasoning:
        print(f"\n[reasoning]\n{result.reasoning}\n[/reasoning]")
    if result.cancelled:
        print("[cancelled]")
    if show_routing:
        classification = result.classification
        routing = result.routing
        print(
            f"[routing] method={classification.classification_method} "
            f"complexity={classification.answer_complexity} "
            f"doc_tokens={routing.doc_context_tokens} "
            f"history_depth={routing.history_depth} "
            f"summarize={routing.summarize_old_turns} "
            f"model={result.model} tokens~{result.estimated_tokens}"
        )


async def ask(
    manager: ConversationManager,
    question: str,
    document_text: str,
    args: argparse.Namespace,
    logger: Logger,
) -> bool:
    """Answer one question, streaming it to stdout."""  # noqa: DOC201
    try:
        result = await manager.answer_question(
            question,
            document_text=document_text,
            mode=args.mode,
            on_chunk=print_chunk,
        )
    except GenerationError as exc:
        logger.debug("Generation failed", exc_info=True)
        print(f"\nError: {exc}", file=sys.stderr)
        return False
    report_turn(result, show_routing=args.show_routing)
    return True


async def interactive(
    manager: ConversationManager,
    document_text: str,
    args: argparse.Namespace,
    logger: Logger,
) -> int:
    """Read questions until EOF or an exit command."""  # noqa: DOC201
    print("Ask about the document. Type 'exit' to quit, 'clear' to reset history.")
    while True:
        try:
            question = (await asyncio.to_thread(input, "\n> ")).strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return 0
        if not question:
            continue
        if question.lower() in EXIT_COMMANDS:
            return 0
        if question.lower() == "clear":
            manager.clear_history()
            continue
        await ask(manager, question, document_text, args, logger)


async def run(args: argparse.Namespace, document_text: str, logger: Logger) -> int:
    """Answer the given question or start the interactive loop."""  # noqa: DOC201
    manager = ConversationManager()
    if args.question:
        ok = await ask(manager, args.question, document_text, args, logger)
        return 0 if ok else 1
    return await interactive(manager, document_text, args, logger)


def main(argv: Sequence[str] | None = None) -> int:
    """Validate configuration, load the document and chat about it."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    try:
        config.validate()
    except ValueError:
        logger.exception("Configuration invalid")
        return 1

    try:
        document_text = DocumentLoader.load_document(args.document)
    except (OSError, ValueError):
        logger.exception("Unable to load document: %s", args.document)
        return 1

    logger.info("Starting ChatNote (mode=%s)", args.mode)
    try:
        return asyncio.run(run(args, document_text, logger))
    except KeyboardInterrupt:
        logger.info("ChatNote stopped by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
