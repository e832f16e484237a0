"""Command line interface for bulk video uploads and URL imports."""

import argparse
import asyncio
import sys
from typing import List, Optional

from video_uploader.config.base import apply_settings, settings
from video_uploader.models.upload import UploadItem, UploadStatus
from video_uploader.services.progress import ProgressSnapshot
from video_uploader.utils.logger import setup_logging


def _add_target_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--org", required=True, help="Organization the videos belong to.")
    parser.add_argument("--author", required=True, help="Author recorded on each video.")
    parser.add_argument("--collection", help="Optional collection to file the videos under.")
    parser.add_argument("--api-url", help="Base URL of the upload intermediary (defaults to API_BASE_URL).")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="video-uploader",
        description="Upload local videos or import remote ones through the upload intermediary.",
    )
    parser.add_argument(
        "--env",
        choices=("default", "development", "production"),
        default="default",
        help="Settings profile to load before running the command.",
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL for this run.")
    commands = parser.add_subparsers(dest="command", required=True)

    upload = commands.add_parser("upload", help="Upload local video files.")
    upload.add_argument("files", nargs="+", help="Video files to upload.")
    _add_target_arguments(upload)
    upload.add_argument("--concurrency", type=int, help="Parallel transfers (defaults to CONCURRENT_UPLOADS).")
    upload.add_argument(
        "--no-metadata",
        action="store_true",
        help="Skip thumbnail and duration extraction.",
    )

    imports = commands.add_parser("import-url", help="Import videos from remote URLs.")
    imports.add_argument("urls", nargs="+", help="Video URLs to import.")
    _add_target_arguments(imports)
    imports.add_argument(
        "--mode",
        choices=("sequential", "pool"),
        help="Import one at a time or in parallel (defaults to URL_IMPORT_MODE).",
    )

    serve = commands.add_parser("serve", help="Run the upload intermediary API.")
    serve.add_argument("--host", default=None, help="Bind address (defaults to API_HOST).")
    serve.add_argument("--port", type=int, default=None, help="Port (defaults to API_PORT).")
    return parser


def _load_environment(name: str):
    if name == "development":
        from video_uploader.config.development import dev_settings
        apply_settings(dev_settings)
    elif name == "production":
        from video_uploader.config.production import prod_settings
        apply_settings(prod_settings)


def _progress_printer():
    last = -1

    def show(snapshot: ProgressSnapshot):
        nonlocal last
        if snapshot.percent != last:
            last = snapshot.percent
            print(f"\rOverall progress: {snapshot.percent:3d}%", end="", file=sys.stderr, flush=True)

    return show


def _print_results(items: List[UploadItem]):
    from video_uploader.services.video_processing import format_duration

    print(file=sys.stderr)
    for item in items:
        line = f"  {item.status.value:<10} {item.title}"
        if item.duration:
            line += f" ({format_duration(item.duration)})"
        if item.status == UploadStatus.COMPLETED:
            line += f" -> {item.video_id}"
        elif item.error:
            line += f": {item.error}"
        print(line)


async def _upload(args) -> int:
    from video_uploader.services.intermediary_client import IntermediaryClient
    from video_uploader.services.upload_session import BulkUploadSession

    async with IntermediaryClient(base_url=args.api_url) as client:
        session = BulkUploadSession(
            client,
            args.org,
            args.author,
            args.collection,
            concurrency=args.concurrency,
            extract_metadata=not args.no_metadata,
            on_change=_progress_printer(),
        )
        result = session.add_files(args.files)
        summary = result.summary()
        if summary:
            print(f"Some files were skipped: {summary}", file=sys.stderr)
        if not result.accepted:
            return 1

        await session.start_uploads()
        await session.wait_for_metadata()
        _print_results(session.batch.items())
        return 1 if session.batch.failed() else 0


async def _import_urls(args) -> int:
    from video_uploader.services.intermediary_client import IntermediaryClient
    from video_uploader.services.url_import import UrlImportSession

    async with IntermediaryClient(base_url=args.api_url) as client:
        session = UrlImportSession(client, args.org, args.author, args.collection, mode=args.mode)
        result = session.add_urls(args.urls)
        for error in result.errors:
            print(f"Skipped {error.filename}: {error.reason}", file=sys.stderr)
        if not result.accepted:
            return 1

        await session.start_imports()
        _print_results(session.batch.items())
        return 1 if session.batch.failed() else 0


def _serve(args) -> int:
    import uvicorn

    uvicorn.run(
        "video_uploader.main:app",
        host=args.host or settings.API_HOST,
        port=args.port or settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    _load_environment(args.env)
    if args.log_level:
        settings.LOG_LEVEL = args.log_level.upper()
    setup_logging(settings.LOG_LEVEL, console=False)

    if args.command == "serve":
        return _serve(args)
    if args.command == "upload":
        return asyncio.run(_upload(args))
    return asyncio.run(_import_urls(args))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
