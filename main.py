#!/usr/bin/env python3
"""
Command-line entry point: fetch the transcript of a video page.

Usage:
    yt-transcript https://www.youtube.com/watch?v=VIDEO_ID            # save <title>-<channel>.txt
    yt-transcript https://youtu.be/VIDEO_ID --stdout                  # print the document
    yt-transcript https://youtu.be/VIDEO_ID --copy --headful          # copy via the page clipboard
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from playwright.async_api import async_playwright

from engine_config import EngineConfig, reload_engine_config
from http_client import create_http_client, DEFAULT_USER_AGENT
from logging_setup import configure_logging, get_logger
from log_events import evt
from page_accessor import PlaywrightPageAccessor
from text_utils import extract_video_id
from transcript_errors import TranscriptError, NoVideoDetected
from transcript_service import TranscriptEngine

logger = get_logger(__name__)

PAGE_LOAD_TIMEOUT_MS = 60000
PAGE_CONFIG_TIMEOUT_MS = 15000


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yt-transcript",
        description="Fetch the timestamped transcript of a video page",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  yt-transcript https://www.youtube.com/watch?v=dQw4w9WgXcQ
  yt-transcript youtu.be/dQw4w9WgXcQ --stdout
  yt-transcript https://www.youtube.com/shorts/abc123 -o transcripts/
        """
    )
    parser.add_argument("url", help="Video page URL (watch, shorts, embed, live or youtu.be)")
    parser.add_argument("-o", "--output", default=".", metavar="DIR",
                        help="Directory for the downloaded .txt file (default: current directory)")
    parser.add_argument("--stdout", action="store_true", help="Print the transcript document instead of saving it")
    parser.add_argument("--copy", action="store_true", help="Copy the transcript document to the clipboard")
    parser.add_argument("--headful", action="store_true", help="Show the browser window")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "WARNING"),
                        help="Logging level (default: WARNING)")
    return parser


def save_document(document: str, filename: str, output_dir: str) -> Path:
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(document, encoding="utf-8")
    return path


async def run(args: argparse.Namespace, config: EngineConfig) -> int:
    """Open the page in Chromium, resolve the transcript and deliver it."""
    if not extract_video_id(args.url):
        raise NoVideoDetected()

    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=not args.headful,
            args=["--disable-blink-features=AutomationControlled"],
        )
        try:
            context = await browser.new_context(user_agent=DEFAULT_USER_AGENT, locale="en-US")
            if args.copy:
                await context.grant_permissions(["clipboard-read", "clipboard-write"], origin=config.origin)

            page = await context.new_page()
            await page.goto(args.url, timeout=PAGE_LOAD_TIMEOUT_MS, wait_until="domcontentloaded")
            try:
                await page.wait_for_function("() => !!window.ytcfg", timeout=PAGE_CONFIG_TIMEOUT_MS)
            except Exception as e:
                logger.warning(f"Page configuration not detected: {e}")

            accessor = PlaywrightPageAccessor(page)
            cookies = await accessor.cookies()
            user_agent = await accessor.user_agent()

            async with create_http_client(config, cookies=cookies, user_agent=user_agent) as client:
                engine = TranscriptEngine(accessor, client, config)
                video_id = engine.handle_navigation()
                if not video_id:
                    raise NoVideoDetected()

                if args.copy:
                    document = await engine.copy_transcript(video_id)
                    print("Transcript copied.", file=sys.stderr)
                else:
                    document = await engine.build_transcript_document(video_id)

                if args.stdout:
                    print(document)
                elif not args.copy:
                    path = save_document(document, await engine.transcript_filename(), args.output)
                    evt("transcript_saved", video_id=video_id, path=str(path))
                    print(f"Transcript saved to {path}", file=sys.stderr)
        finally:
            await browser.close()

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main function with CLI argument parsing."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    configure_logging(log_level=args.log_level, use_json=os.getenv("USE_JSON_LOGGING", "true").lower() == "true")
    config = reload_engine_config()

    try:
        return asyncio.run(run(args, config))
    except TranscriptError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Operation interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
