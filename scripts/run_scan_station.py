#!/usr/bin/env python3
# scripts/run_scan_station.py
"""
Terminal check-in station.

Each line read from stdin is treated as one scanner event (USB scanners
type the code followed by Enter). Results are printed as they arrive.

Run:
  python -m scripts.run_scan_station --api-url http://localhost:8000
  python -m scripts.run_scan_station --local          # talk to the DB directly
  python -m scripts.run_scan_station --begin          # admit straight to consultation

An empty line clears the last result.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow "python -m scripts.run_scan_station" from repo root
REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT))

from app.core.config import get_settings  # noqa: E402
from app.core.exceptions import FrontDeskError  # noqa: E402
from app.frontdesk.gateway import HttpFrontDeskGateway, LocalFrontDeskGateway  # noqa: E402
from app.frontdesk.scheduling import AsyncioScheduler  # noqa: E402
from app.frontdesk.views import ScanStationView, describe_result  # noqa: E402
from app.schemas.admission import AdmissionResult  # noqa: E402

logger = logging.getLogger(__name__)


def _print_result(result: AdmissionResult) -> None:
    print(describe_result(result), flush=True)


def _print_error(error: FrontDeskError) -> None:
    print(f"Error: {error}", flush=True)


def _print_cooldown(remaining: int) -> None:
    if remaining:
        print(f"  next scan in {remaining}s", flush=True)
    else:
        print("Ready to scan.", flush=True)


async def run(args: argparse.Namespace) -> None:
    if args.local:
        gateway = LocalFrontDeskGateway()
    else:
        gateway = HttpFrontDeskGateway(args.api_url)

    view = ScanStationView(
        gateway,
        AsyncioScheduler(),
        begin_consultation=args.begin,
        on_result=_print_result,
        on_error=_print_error,
        on_cooldown=_print_cooldown,
    )
    print("Ready to scan.", flush=True)

    try:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            if not line.strip():
                # Bare Enter clears the last result
                view.dismiss()
                print("Ready to scan.", flush=True)
                continue
            if not view.scan(line):
                logger.info("Scan ignored: %s", view.status_line())
    finally:
        view.close()
        if isinstance(gateway, HttpFrontDeskGateway):
            await gateway.aclose()


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Front desk check-in station")
    parser.add_argument("--api-url", default=settings.api_base_url, help="Front desk API base URL")
    parser.add_argument("--local", action="store_true", help="Use the database directly instead of the API")
    parser.add_argument("--begin", action="store_true", help="Admit patients straight into consultation")
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(message)s")

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
