#!/usr/bin/env python3
"""Replay recorded telemetry packets into a running GridLog API."""

import argparse
import json
import sys
import time
from pathlib import Path
from urllib.parse import urljoin

import requests


def read_packets(path: Path):
    """Yield decoded packets from a JSON-lines file, skipping blank lines."""
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{lineno}: invalid JSON: {e}") from e


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Replay decoded telemetry packets into the GridLog API")
    parser.add_argument("packets", help="JSON-lines file, one decoded packet per line")
    parser.add_argument("--base-url", default="http://localhost:8000",
                       help="Base URL for GridLog API (default: http://localhost:8000)")
    parser.add_argument("--start", action="store_true", help="Call /udp/start before replaying")
    parser.add_argument("--flush", action="store_true", help="Call /udp/flush after replaying")
    parser.add_argument("--delay", type=float, default=0.0, help="Seconds to wait between packets")

    args = parser.parse_args()
    base = args.base_url.rstrip("/") + "/"
    session = requests.Session()

    sent = applied = failed = ignored = 0
    try:
        if args.start:
            session.post(urljoin(base, "udp/start")).raise_for_status()

        for packet in read_packets(Path(args.packets)):
            response = session.post(urljoin(base, "udp/packet"), json=packet)
            response.raise_for_status()
            result = response.json()
            sent += 1
            applied += result.get("applied", 0)
            failed += result.get("failed", 0)
            if result.get("status") == "ignored":
                ignored += 1
            if args.delay:
                time.sleep(args.delay)

        print(f"Packets sent: {sent}")
        print(f"Writes applied: {applied}, failed: {failed}")
        if ignored:
            print(f"Ignored (processor not running): {ignored}")

        if args.flush:
            response = session.post(urljoin(base, "udp/flush"))
            response.raise_for_status()
            print(f"Laps written: {response.json().get('written', 0)}")

    except requests.exceptions.RequestException as e:
        print(f"Error making API request: {e}", file=sys.stderr)
        sys.exit(1)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
