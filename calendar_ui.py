import calendar
import datetime
from dataclasses import dataclass
from typing import Iterable

from activities import Activity, sort_activities

SUNDAY = calendar.SUNDAY
GRID_CELLS = 6 * 7


@dataclass(frozen=True)
class DayCell:
    """One grid position: blank padding, or a day of the requested month."""

    date: datetime.date | None = None
    in_month: bool = False
    activities: tuple[Activity, ...] = ()

    @property
    def is_blank(self) -> bool:
        return self.date is None


BLANK = DayCell()


def group_by_date(activities: Iterable[Activity]) -> dict[datetime.date, list[Activity]]:
    # group per calendar day, each day already in display order
    by_date: dict[datetime.date, list[Activity]] = {}
    for a in sort_activities(activities):
        by_date.setdefault(a.date, []).append(a)
    return by_date


def project_month(year: int, month: int, activities: Iterable[Activity],
                  firstweekday: int = SUNDAY) -> list[DayCell]:
    """
    Lay a month out on a fixed 6x7 grid.

    Cells before the 1st and after the last day are blank. Every other
    cell carries the activities that fall on its date.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    if not 1 <= year <= 9999:
        raise ValueError(f"year must be in 1..9999, got {year}")

    by_date = group_by_date(activities)

    cal = calendar.Calendar(firstweekday=firstweekday)
    cells = []
    # itermonthdays gives 0 for days outside the month
    for day in cal.itermonthdays(year, month):
        if day == 0:
            cells.append(BLANK)
            continue
        d = datetime.date(year, month, day)
        cells.append(DayCell(date=d, in_month=True, activities=tuple(by_date.get(d, ()))))

    cells.extend([BLANK] * (GRID_CELLS - len(cells)))
    return cells


def weeks(cells: list[DayCell]) -> list[list[DayCell]]:
    return [cells[i:i + 7] for i in range(0, len(cells), 7)]


def weekday_headers(firstweekday: int = SUNDAY) -> list[str]:
    cal = calendar.Calendar(firstweekday=firstweekday)
    return [calendar.day_abbr[d] for d in cal.iterweekdays()]


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    # month is 1-based like the calendar module
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1
