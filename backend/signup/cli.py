"""Management CLI for welcome orders.

Usage:
    python -m signup.cli expire-orders [--days N]   # Run the expiry reaper once
    python -m signup.cli show-order <order_id>      # Progress + completeness verdict
"""

import asyncio
import sys

from signup.config import settings
from signup.database import async_session
from signup.middleware.exceptions import ResourceNotFoundError
from signup.services import progress
from signup.services.reaper import run_reaper_once


def expire_orders(args: list[str]) -> None:
    days = settings.order_expiry_days
    if "--days" in args:
        idx = args.index("--days")
        try:
            days = int(args[idx + 1])
        except (IndexError, ValueError):
            print("--days needs a whole number of days")
            sys.exit(2)

    count = asyncio.run(run_reaper_once(days))
    print(f"Expired {count} welcome order(s) idle for more than {days} day(s)")


async def _load_progress(order_id: str):
    async with async_session() as db:
        return await progress.get_signup_progress(db, order_id)


def show_order(args: list[str]) -> None:
    if not args:
        print("Usage: python -m signup.cli show-order <order_id>")
        sys.exit(2)

    try:
        view = asyncio.run(_load_progress(args[0]))
    except ResourceNotFoundError as e:
        print(e.message)
        sys.exit(1)

    print(f"  Order:            {view.order_number} ({view.welcome_order_id})")
    print(f"  Email:            {view.email}")
    print(f"  Status:           {view.status.value}")
    print(f"  Payment:          {view.payment_status.value}")
    print(f"  Cursor:           step {view.current_step}.{view.current_sub_step}")
    print(f"  Account:          {view.user_id or '-'}")
    print(f"  Flagged complete: {view.is_completed}")
    print(f"  Truly complete:   {view.is_truly_complete}")
    print(f"\n  Steps ({len(view.steps)}):")
    for s in view.steps:
        label = s.step_name + (f" / {s.sub_step_name}" if s.sub_step_name else "")
        mark = "x" if s.is_completed else " "
        print(f"    [{mark}] {s.step_number}.{s.sub_step_number} {label}")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "expire-orders":
        expire_orders(sys.argv[2:])
    elif cmd == "show-order":
        show_order(sys.argv[2:])
    else:
        print(__doc__)
        sys.exit(1 if cmd else 0)
