"""
Demo notes for trying the dashboard without a real note collection.
"""

from datetime import datetime, timedelta
from typing import Callable

from notedash.core.dates import (
    day_str, week_str, month_str, filename_for_period, period_str_for,
)
from notedash.core.store import InMemoryDocumentStore


def demo_store(clock: Callable[[], datetime] = datetime.now) -> InMemoryDocumentStore:
    """In-memory store filled with notes dated around the clock's current day"""
    now = clock()
    today = now.date()
    yesterday = today - timedelta(days=1)
    tomorrow = today + timedelta(days=1)
    last_week = today - timedelta(days=7)

    notes = {
        filename_for_period(day_str(today)): "\n".join([
            "## Tasks",
            "* !! Finish quarterly report",
            "\t+ Collect figures from finance",
            "\t+ Draft summary",
            "* 09:00-10:00 Team standup",
            f"* [x] Book dentist @done({day_str(today)} 08:15 AM)",
            "+ Water the plants",
            "",
        ]),
        filename_for_period(day_str(yesterday)): "\n".join([
            "* Reply to Sam about the venue",
            "* [x] Pay electricity bill",
            "",
        ]),
        filename_for_period(day_str(tomorrow)): "\n".join([
            "* Pick up parcel",
            "",
        ]),
        filename_for_period(week_str(today)): "\n".join([
            "* ! Plan next sprint #work",
            "+ Clean the garage",
            "",
        ]),
        filename_for_period(week_str(last_week)): "\n".join([
            "* Send invoice to client",
            "",
        ]),
        filename_for_period(month_str(today)): "\n".join([
            "* Review subscriptions",
            "",
        ]),
        filename_for_period(period_str_for("quarter", today)): "\n".join([
            "* !!! Renew passport",
            "",
        ]),
        "Work/Website Relaunch.md": "\n".join([
            "# Website Relaunch",
            "#project @review(1w)",
            "Progress: 60@ Design signed off",
            f"* Update pricing page >{day_str(today)}",
            f"* ! Migrate blog posts >{day_str(today - timedelta(days=3))}",
            "* [x] Pick CMS",
            "* Write launch email #work",
            "",
        ]),
        "Home/Garden.md": "\n".join([
            "# Garden",
            f"#area @review(1m) @reviewed({day_str(today - timedelta(days=40))})",
            "* >> Order seeds",
            f"* Prune apple tree >{day_str(today - timedelta(days=10))}",
            "",
        ]),
    }
    changed = {filename: now - timedelta(hours=1) for filename in notes}
    return InMemoryDocumentStore(notes, changed, clock=clock)
