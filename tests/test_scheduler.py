"""Tests for the merry-go-round rotation scheduler."""

import random
from datetime import date
from decimal import Decimal

import pytest

from src.ledger.scheduler import (
    RotationSchedule,
    add_months,
    generate_schedule,
    month_label,
)
from src.models.group import Member, MemberStatus, PayoutStatus


GROUP = "test-group"


def make_members(count: int, inactive: int = 0) -> list[Member]:
    members = [
        Member(group_id=GROUP, name=f"Member {i}", phone="0712345678")
        for i in range(count)
    ]
    members += [
        Member(group_id=GROUP, name=f"Former {i}", phone="0712345678", status=MemberStatus.INACTIVE)
        for i in range(inactive)
    ]
    return members


class TestMonthHelpers:

    def test_add_months_rolls_over_year(self):
        assert add_months(date(2025, 11, 20), 0) == date(2025, 11, 1)
        assert add_months(date(2025, 11, 20), 2) == date(2026, 1, 1)
        assert add_months(date(2025, 1, 31), 13) == date(2026, 2, 1)

    def test_month_label(self):
        assert month_label(date(2025, 8, 1)) == "August 2025"


class TestGenerateSchedule:
    """Tests for generate_schedule."""

    def test_one_slot_per_active_member(self):
        """Every Active member appears exactly once; inactive members never do."""
        members = make_members(5, inactive=2)
        schedule = generate_schedule(members, start=date(2025, 3, 15), rng=random.Random(7))

        assert len(schedule) == 5
        scheduled_ids = [item.member.id for item in schedule]
        assert len(set(scheduled_ids)) == 5
        assert set(scheduled_ids) == {m.id for m in members if m.is_active}

    def test_consecutive_months_from_start(self):
        schedule = generate_schedule(make_members(3), start=date(2025, 11, 15), rng=random.Random(1))

        assert [item.payout_date for item in schedule] == [
            date(2025, 11, 1),
            date(2025, 12, 1),
            date(2026, 1, 1),
        ]
        assert [item.month_label for item in schedule] == [
            "November 2025",
            "December 2025",
            "January 2026",
        ]

    def test_payout_is_full_round_of_contributions(self):
        schedule = generate_schedule(
            make_members(4, inactive=1),
            start=date(2025, 1, 1),
            contribution_amount=Decimal("5000"),
        )
        assert all(item.payout_amount == Decimal("20000") for item in schedule)

    def test_all_items_start_pending(self):
        schedule = generate_schedule(make_members(3), start=date(2025, 1, 1))
        assert all(item.status == PayoutStatus.PENDING for item in schedule)

    def test_no_active_members_gives_empty_schedule(self):
        assert generate_schedule(make_members(0, inactive=3)) == []

    def test_same_seed_same_order(self):
        members = make_members(6)
        first = generate_schedule(members, start=date(2025, 1, 1), rng=random.Random(42))
        second = generate_schedule(members, start=date(2025, 1, 1), rng=random.Random(42))
        assert [i.member.id for i in first] == [i.member.id for i in second]


class TestRotationSchedule:
    """Tests for the session schedule."""

    def test_regenerate_replaces_items(self):
        schedule = RotationSchedule(Decimal("1000"), rng=random.Random(3))
        schedule.regenerate(make_members(3), start=date(2025, 1, 1))
        schedule.set_status(date(2025, 1, 1), PayoutStatus.PAID)

        items = schedule.regenerate(make_members(2), start=date(2025, 6, 1))

        assert len(items) == 2
        assert all(item.status == PayoutStatus.PENDING for item in items)
        assert items[0].payout_date == date(2025, 6, 1)

    def test_set_status_changes_only_that_slot(self):
        schedule = RotationSchedule(rng=random.Random(3))
        schedule.regenerate(make_members(3), start=date(2025, 1, 1))

        items = schedule.set_status(date(2025, 2, 1), PayoutStatus.SKIPPED)

        assert [item.status for item in items] == [
            PayoutStatus.PENDING,
            PayoutStatus.SKIPPED,
            PayoutStatus.PENDING,
        ]

    def test_set_status_unknown_date(self):
        schedule = RotationSchedule()
        schedule.regenerate(make_members(2), start=date(2025, 1, 1))
        with pytest.raises(KeyError):
            schedule.set_status(date(2030, 1, 1), PayoutStatus.PAID)

    def test_items_is_a_copy(self):
        schedule = RotationSchedule()
        schedule.regenerate(make_members(2), start=date(2025, 1, 1))
        schedule.items.clear()
        assert len(schedule.items) == 2
