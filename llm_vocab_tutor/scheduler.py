import datetime
import os
from dataclasses import dataclass, field
from typing import List, Optional

from .structured import Assignment, AssignmentStatus, InvalidAssignmentError, weekday_key
from .units import build_unit_index

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

ONE_DAY = datetime.timedelta(days=1)


@dataclass
class ScheduledDay:
    date: datetime.date
    weekday: str
    units: List[str] = field(default_factory=list)
    is_study_day: bool = False


class CumulativeSchedule:
    """
    Date-to-unit resolution for one assignment.

    Keeps running prefix sums of the weekly schedule from the start date, so
    resolving many dates for the same assignment walks the calendar once.
    The assignment is read at construction; build a new instance after the
    schedule or vocabulary changes.

    Raises:
        InvalidAssignmentError: if the start unit is not in the assignment's
            own vocabulary
    """

    def __init__(self, assignment: Assignment):
        self.assignment = assignment
        self.unit_index = build_unit_index(assignment.vocabulary_items)
        if assignment.start_unit not in self.unit_index:
            raise InvalidAssignmentError(
                f"Start unit '{assignment.start_unit}' is not part of task '{assignment.task_id}'"
            )
        self.start_index = self.unit_index.index(assignment.start_unit)
        # _before[n] = units scheduled on the n days starting at start_date
        self._before: List[int] = [0]

    def units_before(self, day: datetime.date) -> int:
        """Units opened on active days from the start date up to, not including, `day`."""
        offset = (day - self.assignment.start_date).days
        if offset <= 0:
            return 0
        schedule = self.assignment.weekly_schedule
        while len(self._before) <= offset:
            walked = self.assignment.start_date + datetime.timedelta(days=len(self._before) - 1)
            self._before.append(self._before[-1] + schedule.for_date(walked).units)
        return self._before[offset]

    def units_on(self, day: datetime.date) -> List[str]:
        """Units opened on `day` itself; empty for inactive days and exhausted slots."""
        amount = self.assignment.weekly_schedule.for_date(day).units
        first = self.start_index + self.units_before(day)
        return self.unit_index[first:first + amount]

    def last_active_day(self, before: datetime.date) -> Optional[datetime.date]:
        """Most recent active day strictly before `before` and not before the start date."""
        schedule = self.assignment.weekly_schedule
        if not schedule.has_active_day():
            return None
        day = before - ONE_DAY
        while day >= self.assignment.start_date:
            if schedule.for_date(day).active:
                return day
            day -= ONE_DAY
        return None

    def resolve(self, target_date: datetime.date) -> List[str]:
        start = self.assignment.start_date
        end = self.assignment.end_date
        if target_date < start or (end is not None and target_date > end):
            return []
        if self.assignment.weekly_schedule.for_date(target_date).active:
            return self.units_on(target_date)
        lookback = self.last_active_day(target_date)
        if lookback is None:
            if DEBUG_MODE:
                print(f"   No active day between {start} and {target_date}")
            return []
        if DEBUG_MODE:
            print(f"   {target_date} is inactive, showing units of {lookback}")
        return self.units_on(lookback)


def resolve_units_for_date(assignment: Assignment, target_date: datetime.date) -> List[str]:
    """
    Return the unit(s) a student should see on `target_date`.

    Active day: the `daily_amount` unit slots that follow everything opened
    before that day. Inactive day: whatever the most recent active day
    opened. Before the start date, after the end date, or past the end of
    the unit index there is nothing to study and the list is empty.

    Raises:
        InvalidAssignmentError: if the start unit is not part of the vocabulary
    """
    return CumulativeSchedule(assignment).resolve(target_date)


def resolve_unit_for_date(assignment: Assignment, target_date: datetime.date) -> Optional[str]:
    units = resolve_units_for_date(assignment, target_date)
    return units[0] if units else None


def is_study_day(assignment: Assignment, day: datetime.date) -> bool:
    """True when an active assignment opens units on `day` (its weekday is active and in range)."""
    if assignment.status != AssignmentStatus.ACTIVE:
        return False
    if day < assignment.start_date:
        return False
    if assignment.end_date is not None and day > assignment.end_date:
        return False
    return assignment.weekly_schedule.for_date(day).active


def upcoming_schedule(assignment: Assignment, today: datetime.date, days: int = 3) -> List[ScheduledDay]:
    """Today plus the following days, resolved through a single shared calculator."""
    calculator = CumulativeSchedule(assignment)
    upcoming: List[ScheduledDay] = []
    for offset in range(days):
        day = today + datetime.timedelta(days=offset)
        upcoming.append(ScheduledDay(
            date=day,
            weekday=weekday_key(day),
            units=calculator.resolve(day),
            is_study_day=is_study_day(assignment, day),
        ))
    return upcoming


def total_units_from_start(assignment: Assignment) -> int:
    """Number of units from the start unit to the end of the task."""
    calculator = CumulativeSchedule(assignment)
    return len(calculator.unit_index) - calculator.start_index
