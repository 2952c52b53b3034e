"""Unit tests for perfect-day streaks."""

from datetime import date, timedelta

import pytest

from choreledger.domain.completion import CompletionStatus
from choreledger.services import schedule_service, streak_service
from tests.unit.conftest import KID_USER_ID, TODAY


JAN_1 = date(2026, 1, 1)


@pytest.mark.unit
class TestCountStreaks:
    """Tests for counting runs over day outcomes."""

    def test_current_and_longest(self):
        """Test the current run stops at the first miss while the longest keeps scanning."""
        outcomes = [True, True, False, True, True, True, True]

        assert streak_service.count_streaks(outcomes) == (2, 4)

    def test_days_without_tasks_are_skipped(self):
        """Test None outcomes neither extend nor break a run."""
        outcomes = [True, None, True, None, False, True]

        assert streak_service.count_streaks(outcomes) == (2, 2)

    def test_latest_day_not_perfect(self):
        """Test an imperfect latest day gives a current streak of zero."""
        assert streak_service.count_streaks([False, True, True]) == (0, 2)

    def test_empty(self):
        """Test no outcomes gives zero streaks."""
        assert streak_service.count_streaks([]) == (0, 0)


@pytest.mark.unit
class TestCurrentAndLongestStreak:
    """Tests for streaks computed from stored records."""

    async def _record_days(self, make_record, task, start: date, count: int, status: CompletionStatus):
        for offset in range(count):
            await make_record(task, start + timedelta(days=offset), status)

    async def test_current_three_longest_six(self, make_task, make_record, clock):
        """Test D-1..D-3 perfect, a miss on D-4 and D-5..D-10 perfect over a 30-day lookback."""
        as_of = date(2026, 1, 11)
        task = await make_task(start_date=as_of - timedelta(days=10), end_date=as_of - timedelta(days=1))
        for offset in range(1, 11):
            status = CompletionStatus.MISSED if offset == 4 else CompletionStatus.APPROVED
            await make_record(task, as_of - timedelta(days=offset), status)

        summary = await streak_service.current_and_longest_streak(KID_USER_ID, as_of, 30, clock=clock)

        assert summary.current == 3
        assert summary.longest == 6
        assert summary.as_of_date == as_of
        assert summary.lookback_days == 30

    async def test_days_with_nothing_due_are_passed_over(self, make_task, make_record, clock):
        """Test the days after the task ends neither extend nor break the current run."""
        task = await make_task(start_date=JAN_1, end_date=date(2026, 1, 10))
        await self._record_days(make_record, task, JAN_1, 6, CompletionStatus.APPROVED)
        await make_record(task, date(2026, 1, 7), CompletionStatus.MISSED)
        await self._record_days(make_record, task, date(2026, 1, 8), 3, CompletionStatus.APPROVED)

        summary = await streak_service.current_and_longest_streak(KID_USER_ID, TODAY, 14, clock=clock)

        assert (summary.current, summary.longest) == (3, 6)

    async def test_skipped_counts_as_perfect(self, make_task, make_record, clock):
        """Test skipped records satisfy a due task."""
        task = await make_task(start_date=date(2026, 1, 12), end_date=date(2026, 1, 13))
        await make_record(task, date(2026, 1, 12), CompletionStatus.APPROVED)
        await make_record(task, date(2026, 1, 13), CompletionStatus.SKIPPED)

        summary = await streak_service.current_and_longest_streak(KID_USER_ID, TODAY, 7, clock=clock)

        assert (summary.current, summary.longest) == (2, 2)

    @pytest.mark.parametrize("status", [CompletionStatus.COMPLETED, CompletionStatus.PENDING])
    async def test_unapproved_breaks_streak(self, make_task, make_record, clock, status):
        """Test a done-but-unapproved day is not perfect."""
        task = await make_task(start_date=date(2026, 1, 12), end_date=date(2026, 1, 13))
        await make_record(task, date(2026, 1, 12), CompletionStatus.APPROVED)
        await make_record(task, date(2026, 1, 13), status)

        summary = await streak_service.current_and_longest_streak(KID_USER_ID, TODAY, 7, clock=clock)

        assert (summary.current, summary.longest) == (0, 1)

    async def test_missing_record_breaks_streak(self, make_task, make_record, clock):
        """Test a due task with no record makes the day imperfect."""
        task = await make_task(start_date=date(2026, 1, 11), end_date=date(2026, 1, 13))
        await make_record(task, date(2026, 1, 11), CompletionStatus.APPROVED)
        await make_record(task, date(2026, 1, 13), CompletionStatus.APPROVED)

        summary = await streak_service.current_and_longest_streak(KID_USER_ID, TODAY, 7, clock=clock)

        assert (summary.current, summary.longest) == (1, 1)

    async def test_every_due_task_must_be_satisfied(self, make_task, make_record, clock):
        """Test one unfinished task spoils the day."""
        first = await make_task(start_date=date(2026, 1, 13), end_date=date(2026, 1, 13))
        second = await make_task(name="Homework", start_date=date(2026, 1, 13), end_date=date(2026, 1, 13))
        await make_record(first, date(2026, 1, 13), CompletionStatus.APPROVED)
        await make_record(second, date(2026, 1, 13), CompletionStatus.MISSED)

        summary = await streak_service.current_and_longest_streak(KID_USER_ID, TODAY, 7, clock=clock)

        assert (summary.current, summary.longest) == (0, 0)

    async def test_removed_day_is_passed_over(self, make_task, make_record, clock):
        """Test a day removed by override neither breaks nor extends the streak."""
        task = await make_task(start_date=date(2026, 1, 11), end_date=date(2026, 1, 13))
        await make_record(task, date(2026, 1, 11), CompletionStatus.APPROVED)
        await schedule_service.toggle_override(task.id, date(2026, 1, 12))
        await make_record(task, date(2026, 1, 13), CompletionStatus.APPROVED)

        summary = await streak_service.current_and_longest_streak(KID_USER_ID, TODAY, 7, clock=clock)

        assert (summary.current, summary.longest) == (2, 2)

    async def test_defaults_to_today(self, make_task, make_record, clock):
        """Test as_of_date defaults to the clock's today."""
        task = await make_task(start_date=TODAY, end_date=TODAY)
        await make_record(task, TODAY, CompletionStatus.APPROVED)

        summary = await streak_service.current_and_longest_streak(KID_USER_ID, lookback_days=3, clock=clock)

        assert summary.as_of_date == TODAY
        assert summary.current == 1

    async def test_outside_lookback_ignored(self, make_task, make_record, clock):
        """Test perfect days before the lookback window are not counted."""
        task = await make_task(start_date=JAN_1, end_date=date(2026, 1, 13))
        await self._record_days(make_record, task, JAN_1, 13, CompletionStatus.APPROVED)

        summary = await streak_service.current_and_longest_streak(KID_USER_ID, TODAY, 5, clock=clock)

        assert (summary.current, summary.longest) == (4, 4)

    async def test_no_tasks(self, db, clock):
        """Test a user with nothing due has zero streaks."""
        summary = await streak_service.current_and_longest_streak(KID_USER_ID, TODAY, 30, clock=clock)

        assert (summary.current, summary.longest) == (0, 0)

    async def test_non_positive_lookback(self, db, clock):
        """Test a zero lookback returns zeros without scanning."""
        summary = await streak_service.current_and_longest_streak(KID_USER_ID, TODAY, 0, clock=clock)

        assert (summary.current, summary.longest) == (0, 0)
