#!/usr/bin/env python3
# scripts/run_queue_screen.py
"""
Terminal queue screen: polls the current queue, prints it on every
refresh and announces each change of the patient being served.

Run:
  python -m scripts.run_queue_screen
  python -m scripts.run_queue_screen --doctor 3        # one doctor's room
  python -m scripts.run_queue_screen --interval 5
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow "python -m scripts.run_queue_screen" from repo root
REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT))

from app.core.config import get_settings  # noqa: E402
from app.frontdesk.announcer import Announcement  # noqa: E402
from app.frontdesk.gateway import HttpFrontDeskGateway, LocalFrontDeskGateway  # noqa: E402
from app.frontdesk.scheduling import AsyncioScheduler  # noqa: E402
from app.frontdesk.views import QueueScreenView  # noqa: E402
from app.services.visit_queue_service import QueueView  # noqa: E402

logger = logging.getLogger(__name__)


def render(view: QueueView, announcement: Announcement | None) -> None:
    lines = ["", "=== NOW SERVING ==="]
    if view.now_serving:
        for entry in view.now_serving:
            lines.append(f"  {entry.appointment_code}  {entry.patient_name:<28} {entry.doctor_name}")
    else:
        lines.append("  (nobody)")
    lines.append("=== WAITING ===")
    if view.waiting:
        for entry in view.waiting:
            lines.append(
                f"  {entry.time_label}  {entry.appointment_code}  {entry.patient_name:<28} {entry.doctor_name}"
            )
    else:
        lines.append("  (empty)")
    if announcement is not None:
        lines.append(f">>> {announcement.text}")
    print("\n".join(lines), flush=True)


async def run(args: argparse.Namespace) -> None:
    if args.local:
        gateway = LocalFrontDeskGateway()
    else:
        gateway = HttpFrontDeskGateway(args.api_url)

    view = QueueScreenView(
        gateway,
        AsyncioScheduler(),
        employee_id=args.doctor,
        poll_interval=args.interval,
        on_update=render,
    )
    view.start()
    try:
        await asyncio.Event().wait()
    finally:
        view.close()
        if isinstance(gateway, HttpFrontDeskGateway):
            await gateway.aclose()


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Front desk queue screen")
    parser.add_argument("--api-url", default=settings.api_base_url, help="Front desk API base URL")
    parser.add_argument("--local", action="store_true", help="Use the database directly instead of the API")
    parser.add_argument("--doctor", type=int, default=None, help="Only show this doctor's queue (employee_id)")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.queue_poll_interval_seconds,
        help="Poll interval in seconds",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(message)s")

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
