# scripts/download_content.py
"""Download, inspect and clear offline content.

Usage:
    python scripts/download_content.py download am-bible am-commentary en-ref
    python scripts/download_content.py clear am
    python scripts/download_content.py clear-temp
    python scripts/download_content.py status

Ctrl-C during a download cancels it after the books in flight finish.
"""
import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

# Add the parent directory to the Python path properly
current_dir = Path(__file__).resolve().parent
project_dir = current_dir.parent
sys.path.insert(0, str(project_dir))

from config import Config
from utils.context import build_context, load_core_data
from utils.download import DownloadManager, DownloadStatus
from utils.ledger import ResourceKind, resource_id

logger = logging.getLogger(__name__)


def _print_progress(progress):
    print(
        f"\r[{progress.language}] {progress.current_book_name:<40} "
        f"{progress.chapters_completed_overall}/{progress.total_chapters_overall} chapters "
        f"({progress.percent:.1f}%)",
        end='',
        flush=True,
    )


async def run_download(context, resources, concurrency=None, refresh_core=False):
    if not await load_core_data(context, refresh=refresh_core):
        print("Cannot download: Book list not loaded.")
        return 1

    manager = DownloadManager(context, concurrency=concurrency, on_progress=_print_progress)
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, manager.cancel)

    summary = await manager.start(resources)
    print()
    print(summary.message)
    if summary.failed_resources:
        print(f"Incomplete: {', '.join(summary.failed_resources)}")
    return 0 if summary.status in (DownloadStatus.COMPLETED, DownloadStatus.ALREADY_DOWNLOADED) else 1


async def run_clear(context, language):
    manager = DownloadManager(context)
    result = await manager.clear(language)
    if result.success:
        print(f"Cleared {result.cleared_count} downloaded items.")
        return 0
    print("An error occurred while clearing data.")
    return 1


def run_clear_temp(context):
    result = context.cache.clear_temporary_cache()
    if result.success:
        print(f"Cleared {result.cleared_count} temporary chapters.")
        return 0
    print("An error occurred while clearing the temporary cache.")
    return 1


def run_status(context):
    for language in context.config.LANGUAGES:
        flags = ', '.join(
            f"{kind.value}={'yes' if context.ledger.is_downloaded(resource_id(language, kind)) else 'no'}"
            for kind in ResourceKind
        )
        count = context.cache.count_downloaded(language)
        print(f"{language}: {flags} ({count} chapters stored)")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description="Manage offline scripture content.")
    subparsers = parser.add_subparsers(dest='command', required=True)

    download = subparsers.add_parser('download', help="download resources for offline use")
    download.add_argument('resources', nargs='+', help="resource ids, e.g. am-bible am-commentary en-ref")
    download.add_argument('--concurrency', type=int, default=None, help="books fetched at the same time")
    download.add_argument('--refresh-core', action='store_true', help="refetch the book list first")

    clear = subparsers.add_parser('clear', help="delete downloaded content for a language")
    clear.add_argument('language')

    subparsers.add_parser('clear-temp', help="delete temporarily cached chapters")
    subparsers.add_parser('status', help="show what is downloaded")
    return parser


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    args = build_parser().parse_args(argv)

    try:
        context = build_context(Config)
    except ValueError as e:
        print(f"Configuration error: {e}")
        return 2

    if args.command == 'download':
        return asyncio.run(run_download(context, args.resources, args.concurrency, args.refresh_core))
    if args.command == 'clear':
        return asyncio.run(run_clear(context, args.language))
    if args.command == 'clear-temp':
        return run_clear_temp(context)
    return run_status(context)


if __name__ == '__main__':
    sys.exit(main())
