"""
Interactive CLI adapter for the tutorcore engine.

Architectural role:
- Exposes terminal interaction over one `OrchestrationEngine`.
- Streams answers chunk by chunk and can print the decision trace.
- Delegates all orchestration to the engine.

Request lifecycle (per user turn, CLI):
1. Read stdin (on a worker thread, so the event loop stays alive).
2. Handle local control commands (`exit`/`quit`, `empty chat`/`clear chat`,
   `/domains`, `/trace`).
3. Stream normal prompts through `engine.stream`.
4. Print warnings and, when enabled, the formatted trace.

Error handling strategy:
- EOF and keyboard interrupts terminate the loop without traceback output.

Side effects:
- Writes session/user records through the engine's memory store.
- Writes to stdout extensively for operator feedback.
"""

from dotenv import load_dotenv

load_dotenv()

import asyncio
import logging
import os
import sys
import uuid

from tutorcore.core.engine import OrchestrationEngine, build_engine
from tutorcore.core.routing_types import RequestContext
from tutorcore.core.trace import format_trace


logger = logging.getLogger(__name__)


# =========================================================
# UTF-8 SAFE OUTPUT
# =========================================================

if hasattr(sys.stdout, "reconfigure"):
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="ignore")
    except (AttributeError, ValueError):
        pass


async def run_turn(engine: OrchestrationEngine, question: str, context: RequestContext, show_trace: bool) -> None:
    channel = engine.stream(question, context)
    result = None
    async for event in channel:
        if event.kind == "chunk":
            print(event.data, end="", flush=True)
        elif event.kind == "result":
            result = event.data
    print()

    if result is None:
        return
    for warning in result.warnings:
        print(f"[warning] {warning}")
    for error in result.errors:
        print(f"[error] {error}")
    if show_trace:
        print("\nTrace:")
        print(format_trace(result.trace))


async def main_async(engine: OrchestrationEngine | None = None) -> None:
    """
    Run the CLI loop with session control commands.

    Error handling strategy:
    - EOF/interrupt are handled without stack traces.
    """
    engine = engine or build_engine()
    context = RequestContext(
        user_id=os.getenv("CLI_USER_ID", "local"),
        session_id=os.getenv("CLI_SESSION_ID", uuid.uuid4().hex[:12]),
        project_id=os.getenv("CLI_PROJECT_ID") or None,
    )
    show_trace = False

    print("Advanced AI Tutor started. (Type 'exit' to quit)")
    print(f"Domains: {', '.join(engine.domains)}")
    print(f"Session: {context.session_id}")
    print("-" * 60)

    while True:

        try:
            question = (await asyncio.to_thread(input, "Question: ")).strip()

        except EOFError:
            print("\nSession ended (EOF received).")
            break

        except KeyboardInterrupt:
            print("\nOperation cancelled by user.")
            break

        if not question:
            continue

        if question.lower() in ("exit", "quit"):
            print("Shutting down.")
            break

        if question.lower() in ("empty chat", "clear chat"):
            result = await engine.process("/reset", context)
            print(result.response)
            continue

        if question.lower() == "/domains":
            print("\nAvailable domains:")
            for d in engine.domains:
                print(f" - {d}")
            print("\nUsage:")
            print(" /<domain> <question>   force a domain for one question")
            print(" /reset                 clear this session's history\n")
            continue

        if question.lower() == "/trace":
            show_trace = not show_trace
            print(f"Trace output {'enabled' if show_trace else 'disabled'}.")
            continue

        print("\nResponse:\n")
        await run_turn(engine, question, context, show_trace)
        print("\n" + "-" * 60 + "\n")


def main():
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING"))
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")


if __name__ == "__main__":
    main()
