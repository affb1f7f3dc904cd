"""CLI script to manually reset expired notification counters."""
from __future__ import annotations

import argparse

from app.tasks.quota import reset_notification_counters


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Reset daily/monthly notification counters whose reset time has passed",
    )
    parser.add_argument(
        "--async",
        action="store_true",
        dest="use_async",
        help="Queue task asynchronously instead of running immediately",
    )

    args = parser.parse_args()

    print("Resetting expired notification counters")
    if args.use_async:
        task = reset_notification_counters.apply_async()
        print(f"Task queued: {task.id}")
    else:
        result = reset_notification_counters.run()
        print(f"Result: {result}")


if __name__ == "__main__":
    main()
