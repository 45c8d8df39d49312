#!/usr/bin/env python3
"""
Gateway Smoke Test Script
=========================

Standalone script that exercises a running analysis gateway.

This script:
    1. Generates a few synthetic JPEG scenes
    2. Posts them to /analyze-image for a configurable duration
    3. Logs envelope statistics every report interval
    4. Reports a final summary with /metrics from the gateway

Prerequisites:
    - Gateway must be running at the configured URL
    - Install the package: pip install -e .

Usage:
    python scripts/smoke_gateway.py --duration 60
    python scripts/smoke_gateway.py --url http://localhost:8010 --interval 2
"""

import argparse
import base64
import logging
import os
import sys
import time
from collections import Counter

import cv2
import numpy as np
import requests


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def make_scenes(count: int = 3) -> list:
    """Synthetic 320x240 JPEG scenes, each a different solid colour with a box."""
    scenes = []
    for i in range(count):
        image = np.full((240, 320, 3), 40 * (i + 1), dtype=np.uint8)
        cv2.rectangle(image, (60 + 30 * i, 60), (160 + 30 * i, 180), (255, 255, 255), -1)
        ok, buffer = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, 30])
        if not ok:
            raise RuntimeError("JPEG encoding failed")
        scenes.append(base64.b64encode(buffer.tobytes()).decode("ascii"))
    return scenes


def classify(envelope: dict) -> str:
    for flag in ("rateLimited", "queueSaturated", "systemError", "fromCache"):
        if envelope.get(flag):
            return flag
    return "fresh"


def run_smoke(url: str, duration: int, interval: float, report_interval: int) -> dict:
    logger.info("=" * 60)
    logger.info("Gateway Smoke Test")
    logger.info("=" * 60)
    logger.info(f"Gateway URL: {url}")
    logger.info(f"Duration: {duration} seconds")
    logger.info(f"Request interval: {interval} seconds")
    logger.info("=" * 60)

    scenes = make_scenes()
    outcomes: Counter = Counter()
    session = requests.Session()

    start_time = time.time()
    last_report_time = start_time
    sent = 0

    try:
        while time.time() - start_time < duration:
            image = scenes[sent % len(scenes)]
            try:
                response = session.post(
                    f"{url}/analyze-image",
                    json={"image": image},
                    timeout=35,
                )
                response.raise_for_status()
                envelope = response.json()
                outcomes[classify(envelope)] += 1
                logger.info(
                    f"[{classify(envelope)}] {envelope.get('type')}/"
                    f"{envelope.get('severity')}: {envelope.get('message')}"
                )
            except requests.exceptions.RequestException as e:
                outcomes["transport_error"] += 1
                logger.error(f"Request failed: {e}")
            sent += 1

            if time.time() - last_report_time >= report_interval:
                logger.info("-" * 40)
                logger.info(f"Progress: sent={sent}, outcomes={dict(outcomes)}")
                last_report_time = time.time()

            time.sleep(interval)

    except KeyboardInterrupt:
        logger.info("Smoke test interrupted by user")

    gateway_metrics = {}
    try:
        gateway_metrics = session.get(f"{url}/metrics", timeout=5).json()
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.warning(f"Could not fetch /metrics: {e}")

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {time.time() - start_time:.1f} seconds")
    logger.info(f"Requests sent: {sent}")
    for outcome, count in sorted(outcomes.items()):
        logger.info(f"  {outcome}: {count}")
    if gateway_metrics:
        logger.info(f"Gateway metrics: {gateway_metrics}")
    logger.info("=" * 60)

    if outcomes["transport_error"] == 0 and sent > 0:
        logger.info("SMOKE TEST PASSED - every request returned an envelope")
    else:
        logger.error("SMOKE TEST FAILED - transport errors occurred")

    return {"sent": sent, "outcomes": dict(outcomes), "gateway": gateway_metrics}


def main():
    parser = argparse.ArgumentParser(description="Smoke test for the analysis gateway")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("VISUAL_GUIDE_GATEWAY_URL", "http://localhost:8010"),
        help="Gateway base URL",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=60,
        help="Test duration in seconds (default: 60)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Seconds between requests (default: 1.0)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )
    args = parser.parse_args()

    result = run_smoke(
        url=args.url.rstrip("/"),
        duration=args.duration,
        interval=args.interval,
        report_interval=args.report_interval,
    )
    sys.exit(0 if result["outcomes"].get("transport_error", 0) == 0 else 1)


if __name__ == "__main__":
    main()
