# src/main.py — v2
"""CLI entry point: run the workers and administer tasks.

Usage:
    pageflow run
    pageflow submit <file> [--pages 1-5] [--provider openai] [--model gpt-4o]
    pageflow status [task_id]
    pageflow cancel <task_id>
    pageflow retry <task_id> [--page N]
    pageflow cleanup
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from pageflow.config.settings import Settings, load_settings
from pageflow.logging.logger import setup_logging
from pageflow.storage.task_store import SqliteTaskStore
from pageflow.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    settings = load_settings()
    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="pageflow",
        description=f"pageflow v{__version__} — document to Markdown conversion pipeline",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    p_run = subparsers.add_parser("run", help="Run all workers until interrupted")
    p_run.set_defaults(func=_cmd_run)

    p_submit = subparsers.add_parser("submit", help="Queue a document for conversion")
    p_submit.add_argument("file", type=Path, help="Path to document")
    p_submit.add_argument(
        "-p", "--pages", default="",
        help='Page range, e.g. "1-5,7" (default: all pages)',
    )
    p_submit.add_argument("--provider", default=None, help="LLM provider type")
    p_submit.add_argument("--model", default=None, help="LLM model name")
    p_submit.set_defaults(func=_cmd_submit)

    p_status = subparsers.add_parser("status", help="Show tasks or one task's pages")
    p_status.add_argument("task_id", nargs="?", default=None)
    p_status.set_defaults(func=_cmd_status)

    p_cancel = subparsers.add_parser("cancel", help="Cancel a task")
    p_cancel.add_argument("task_id")
    p_cancel.set_defaults(func=_cmd_cancel)

    p_retry = subparsers.add_parser("retry", help="Retry failed pages of a task")
    p_retry.add_argument("task_id")
    p_retry.add_argument(
        "--page", type=int, default=None,
        help="Retry only this page (failed or completed)",
    )
    p_retry.set_defaults(func=_cmd_retry)

    p_cleanup = subparsers.add_parser(
        "cleanup", help="Release work left claimed by a stopped process",
    )
    p_cleanup.set_defaults(func=_cmd_cleanup)

    return parser


def _open_store(settings: Settings) -> SqliteTaskStore:
    return SqliteTaskStore(
        settings.resolved_db_path,
        max_failed_page_ratio=settings.max_failed_page_ratio,
    )


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Run the orchestrator until SIGINT/SIGTERM."""
    from pageflow.pipeline.orchestrator import Orchestrator

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:  # Windows
            pass

    orchestrator = Orchestrator(settings)
    await orchestrator.run_forever(stop_event)
    return 0


async def _cmd_submit(args: argparse.Namespace, settings: Settings) -> int:
    from pageflow.api.facade import submit_document

    store = _open_store(settings)
    try:
        task = await submit_document(
            store, settings, args.file,
            page_range=args.pages, provider=args.provider, model=args.model,
        )
    finally:
        store.close()
    print(task.id)
    return 0


async def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    from pageflow.api import facade

    store = _open_store(settings)
    try:
        if args.task_id is None:
            tasks = await facade.list_tasks(store)
            if not tasks:
                print("No tasks.")
            for t in tasks:
                print(
                    f"{t.id}  {t.status.name.lower():<14} {t.progress:>3}%  "
                    f"{t.completed_count}/{t.pages} ok, {t.failed_count} failed  {t.filename}"
                )
            return 0

        task = await facade.get_task(store, args.task_id)
        pages = await facade.list_pages(store, args.task_id)
        stats = await facade.page_stats(store, args.task_id)
    finally:
        store.close()

    print(f"Task:     {task.id}")
    print(f"File:     {task.filename} ({task.type})")
    print(f"Status:   {task.status.name.lower()} ({task.progress}%)")
    print(f"Model:    {task.provider}/{task.model}")
    print(f"Tokens:   {stats.input_tokens} in, {stats.output_tokens} out")
    if task.merged_path:
        print(f"Output:   {task.merged_path}")
    if task.error:
        print(f"Error:    {task.error}")
    for p in pages:
        line = f"  page {p.page:>4} (source {p.page_source:>4})  {p.status.name.lower()}"
        if p.error:
            line += f"  {p.error}"
        print(line)
    return 0


async def _cmd_cancel(args: argparse.Namespace, settings: Settings) -> int:
    from pageflow.api.facade import cancel_task

    store = _open_store(settings)
    try:
        cancelled = await cancel_task(store, args.task_id)
    finally:
        store.close()
    print("Cancelled." if cancelled else "Task already finished.")
    return 0 if cancelled else 1


async def _cmd_retry(args: argparse.Namespace, settings: Settings) -> int:
    from pageflow.api.facade import retry_failed_pages, retry_page

    store = _open_store(settings)
    try:
        if args.page is not None:
            await retry_page(store, args.task_id, args.page)
            print(f"Page {args.page} requeued.")
        else:
            count = await retry_failed_pages(store, args.task_id)
            print(f"{count} page(s) requeued.")
    finally:
        store.close()
    return 0


async def _cmd_cleanup(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(settings)
    try:
        result = await store.cleanup_orphaned_work()
    finally:
        store.close()
    print(f"Released {result.total} orphaned row(s).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
