"""
Merry-Go-Round Rotation Scheduler

Each Active member receives the pot exactly once. The order is a
uniformly random permutation of the Active roster; slot i pays out on
the first day of the i-th calendar month counted from the start month.

The pot for every slot is the full round of contributions:
active member count x contribution amount.

Schedules live in memory only. Regenerating discards the previous one.
"""

import random
from datetime import date
from decimal import Decimal
from typing import Optional

from src.models.group import Member, PayoutStatus, ScheduleItem


DEFAULT_CONTRIBUTION_AMOUNT = Decimal("5000")


def first_of_month(day: date) -> date:
    return day.replace(day=1)


def add_months(start: date, months: int) -> date:
    """First day of the month `months` after `start`'s month."""
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    return date(y, m, 1)


def month_label(day: date) -> str:
    """Long month name and year, e.g. 'August 2025'."""
    return day.strftime("%B %Y")


def generate_schedule(
    members: list[Member],
    start: Optional[date] = None,
    contribution_amount: Decimal = DEFAULT_CONTRIBUTION_AMOUNT,
    rng: Optional[random.Random] = None,
) -> list[ScheduleItem]:
    """
    Build a rotation schedule for the Active members.

    Args:
        members: Full roster; inactive members are left out
        start: Any day in the first payout month (defaults to today)
        contribution_amount: Per-member contribution per round
        rng: Random source, injectable for reproducible orderings

    Returns:
        One Pending item per Active member, in payout order.
        Empty if nobody is Active.
    """
    active = [m for m in members if m.is_active]
    if not active:
        return []

    order = list(active)
    (rng or random).shuffle(order)

    first_month = first_of_month(start or date.today())
    payout_amount = Decimal(len(active)) * Decimal(contribution_amount)

    schedule = []
    for index, member in enumerate(order):
        payout_date = add_months(first_month, index)
        schedule.append(ScheduleItem(
            month_label=month_label(payout_date),
            payout_date=payout_date,
            member=member,
            status=PayoutStatus.PENDING,
            payout_amount=payout_amount,
        ))
    return schedule


class RotationSchedule:
    """
    The current in-memory schedule for a session.

    Items are treated as immutable; status changes produce new items.
    """

    def __init__(
        self,
        contribution_amount: Decimal = DEFAULT_CONTRIBUTION_AMOUNT,
        rng: Optional[random.Random] = None,
    ):
        self._contribution_amount = contribution_amount
        self._rng = rng
        self._items: list[ScheduleItem] = []

    @property
    def items(self) -> list[ScheduleItem]:
        return list(self._items)

    def regenerate(
        self,
        members: list[Member],
        start: Optional[date] = None,
    ) -> list[ScheduleItem]:
        self._items = generate_schedule(
            members,
            start=start,
            contribution_amount=self._contribution_amount,
            rng=self._rng,
        )
        return self.items

    def set_status(self, payout_date: date, status: PayoutStatus) -> list[ScheduleItem]:
        """
        Change the status of the slot paying out on `payout_date`.

        Raises:
            KeyError: If no slot pays out on that date
        """
        status = PayoutStatus(status)
        if not any(item.payout_date == payout_date for item in self._items):
            raise KeyError(f"No payout scheduled on {payout_date}")

        self._items = [
            item.model_copy(update={"status": status})
            if item.payout_date == payout_date
            else item
            for item in self._items
        ]
        return self.items
