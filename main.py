"""
Command-line availability lookup against the seeded demo store.

Usage:
    python main.py 2024-06-01
    python main.py 2024-06-01 --service acrylic-full-set --addon nail-art
    python main.py 2024-06-01 --duration 45 --reasons
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from salon_booking.config import settings
from salon_booking.errors import AvailabilityError, InvalidAvailabilityRequest
from salon_booking.schemas.availability_schema import AvailabilityStatus
from salon_booking.tools.availability import AvailabilityService
from salon_booking.tools.data_source import AvailabilityDataSource, build_demo_source
from salon_booking.tools.services import get_addons, get_service, total_duration
from salon_booking.utils import format_time

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="List bookable appointment times for a date."
    )
    parser.add_argument("date", help="Target date as YYYY-MM-DD.")
    parser.add_argument(
        "--service",
        default=None,
        help="Service id from the catalog (sets the duration).",
    )
    parser.add_argument(
        "--addon",
        action="append",
        default=[],
        help="Add-on id; may be repeated.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=None,
        help="Duration in minutes when no service is given "
             f"(default: {settings.scheduling.default_service_duration_minutes}).",
    )
    parser.add_argument(
        "--reasons",
        action="store_true",
        help="Show every slot with the reason it is unavailable.",
    )
    return parser


async def _run(
    args: argparse.Namespace, source: Optional[AvailabilityDataSource] = None
) -> int:
    if args.service:
        service = get_service(args.service)
        if service is None:
            logger.error("Unknown service: %s", args.service)
            return 1
        duration = total_duration(service, get_addons(args.addon))
    else:
        duration = args.duration or settings.scheduling.default_service_duration_minutes

    availability = AvailabilityService(source or build_demo_source())
    try:
        if args.reasons:
            for evaluation in await availability.evaluate_slots(None, args.date, duration):
                label = "available" if evaluation.is_available else evaluation.reason.value
                sys.stdout.write(f"{format_time(evaluation.time_slot)}  {label}\n")
            return 0
        response = await availability.check_availability(args.date, duration)
    except InvalidAvailabilityRequest as exc:
        logger.error("%s", exc)
        return 2
    except AvailabilityError as exc:
        logger.error("Cannot compute availability: %s", exc)
        return 1

    sys.stdout.write(response.message + "\n")
    for slot in response.slots:
        sys.stdout.write(f"  {slot}\n")
    if response.next_available:
        sys.stdout.write(f"Next available: {response.next_available}\n")
    return 1 if response.status == AvailabilityStatus.ERROR else 0


def main() -> None:
    args = _build_parser().parse_args()
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
