"""
Client Runner
=============

Command-line entry point for the capture client.

Opens the camera, starts the capture scheduler and narrates guidance until
interrupted or until --duration elapses.

Usage:
    visual-guide-client
    visual-guide-client --gateway-url http://gateway:8010 --camera 1
    visual-guide-client --duration 120

Exit Codes:
    0: Stopped normally
    1: Camera could not be opened or stopped delivering frames
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from visual_guide.capture.scheduler import CaptureScheduler
from visual_guide.capture.source import CaptureError, OpenCVCameraSource
from visual_guide.client.analysis_client import AnalysisClient
from visual_guide.client.transport import GatewayTransport
from visual_guide.config import settings


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Continuous visual guidance client",
    )
    parser.add_argument(
        "--gateway-url",
        type=str,
        default=settings.client.gateway_url,
        help=f"Analysis gateway URL (default: {settings.client.gateway_url})",
    )
    parser.add_argument(
        "--camera",
        type=int,
        default=settings.capture.camera_index,
        help=f"OpenCV camera index (default: {settings.capture.camera_index})",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Stop after this many seconds (default: run until interrupted)",
    )
    return parser


async def run_client(scheduler: CaptureScheduler, duration: float) -> None:
    """Run the scheduler until it fails, or for duration seconds if > 0."""
    await scheduler.start()
    try:
        if duration > 0:
            await asyncio.wait_for(scheduler.wait(), timeout=duration)
        else:
            await scheduler.wait()
    except asyncio.TimeoutError:
        logger.info(f"Duration ({duration:.0f}s) reached")
    finally:
        await scheduler.stop()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        source = OpenCVCameraSource(args.camera)
    except CaptureError as e:
        logger.error(str(e))
        return 1

    transport = GatewayTransport(
        args.gateway_url,
        timeout=settings.client.request_timeout_seconds,
    )
    client = AnalysisClient.from_settings(settings, source=source, transport=transport)
    scheduler = CaptureScheduler.from_settings(settings, source=source, client=client)

    logger.info(f"Client started: camera={args.camera}, gateway={args.gateway_url}")

    try:
        asyncio.run(run_client(scheduler, args.duration))
    except CaptureError as e:
        logger.error(f"Capture failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        source.close()
        transport.close()

    logger.info(f"Client stopped: {client.get_metrics()}")
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
