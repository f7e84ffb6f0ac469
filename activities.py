import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Iterable, Iterator, Mapping


class ValidationError(ValueError):
    """
    Raised when an activity can not be created from the given input.
    problems holds one message per offending record.
    """

    def __init__(self, problems):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


def to_local(dt: datetime, tz: tzinfo) -> datetime:
    """
    Move an aware datetime into tz.
    A naive datetime is taken as local time already.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(tz)


def parse_calendar_date(value, tz: tzinfo = timezone.utc) -> date:
    """
    Normalise whatever came in from a form or a JSON document to a plain
    calendar date.

    'YYYY-MM-DD' strings carry no timezone at all. Full ISO date-times
    (old exports write '2025-03-09T18:30:00.000Z') are moved into tz first
    so the day is the one the operator saw on screen.
    """
    if isinstance(value, datetime):
        return to_local(value, tz).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("date is required")

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass

    # fromisoformat only understands 'Z' from 3.11 on
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"invalid date {value!r}") from None
    return to_local(dt, tz).date()


def _check_title(title) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required")
    return title


def _check_description(description) -> str:
    if description is None:
        return ""
    if not isinstance(description, str):
        raise ValidationError("description must be a string")
    return description


@dataclass(frozen=True)
class Activity:
    id: str
    title: str
    date: date
    description: str = ""

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date.isoformat(),
            "description": self.description,
        }

    @classmethod
    def from_record(cls, record: Mapping, tz: tzinfo = timezone.utc, default_id=None) -> "Activity":
        """
        Build an Activity from a decoded JSON object.
        Every problem of the record is reported at once.
        """
        if not isinstance(record, Mapping):
            raise ValidationError("record must be an object")

        problems = []
        fields = {}
        for name, check in (
            ("title", _check_title),
            ("date", lambda v: parse_calendar_date(v, tz)),
            ("description", _check_description),
        ):
            try:
                fields[name] = check(record.get(name))
            except ValidationError as e:
                problems.extend(e.problems)

        activity_id = record.get("id")
        if activity_id is None or activity_id == "":
            activity_id = default_id
        elif not isinstance(activity_id, (str, int)) or isinstance(activity_id, bool):
            problems.append("id must be a string")
        else:
            activity_id = str(activity_id)

        if problems:
            raise ValidationError(problems)
        return cls(id=activity_id, **fields)


def sort_activities(activities: Iterable[Activity]) -> list[Activity]:
    # sorted() is stable, equal dates keep insertion order
    return sorted(activities, key=lambda a: a.date)


class ActivityStore:
    """
    In-memory collection of activities for one calendar session.

    Activities are never edited in place: they are added, removed one by
    one, or the whole collection is swapped by replace_all.
    """

    def __init__(self, tz: tzinfo = timezone.utc):
        self.tz = tz
        self._activities: list[Activity] = []
        self._last_id = 0
        # the dev server is threaded, mutators hold this
        self._lock = threading.Lock()

    def _next_id(self) -> str:
        # creation timestamp in ms, bumped when two adds land in the same ms
        now = time.time_ns() // 1_000_000
        self._last_id = max(now, self._last_id + 1)
        return str(self._last_id)

    def add(self, title, date, description="") -> Activity:
        problems = []
        try:
            _check_title(title)
        except ValidationError as e:
            problems.extend(e.problems)
        try:
            day = parse_calendar_date(date, self.tz)
        except ValidationError as e:
            problems.extend(e.problems)
        try:
            description = _check_description(description)
        except ValidationError as e:
            problems.extend(e.problems)
        if problems:
            raise ValidationError(problems)

        with self._lock:
            activity = Activity(id=self._next_id(), title=title, date=day, description=description)
            self._activities.append(activity)
        return activity

    def remove(self, activity_id: str) -> bool:
        with self._lock:
            kept = [a for a in self._activities if a.id != activity_id]
            if len(kept) == len(self._activities):
                return False
            self._activities = kept
            return True

    def replace_all(self, records: Iterable) -> list[Activity]:
        """
        Validate every record and swap the whole collection.
        On any problem nothing changes and ValidationError lists the
        offending records.
        """
        problems = []
        staged: list[Activity] = []
        for index, record in enumerate(records):
            if isinstance(record, Activity):
                record = record.to_record()
            try:
                staged.append(Activity.from_record(record, self.tz))
            except ValidationError as e:
                problems.append(f"record {index}: {', '.join(e.problems)}")

        seen = set()
        for index, activity in enumerate(staged):
            if activity.id is None:
                continue
            if activity.id in seen:
                problems.append(f"record {index}: duplicate id {activity.id!r}")
            seen.add(activity.id)

        if problems:
            raise ValidationError(problems)

        with self._lock:
            for index, activity in enumerate(staged):
                if activity.id is None:
                    new_id = self._next_id()
                    while new_id in seen:
                        new_id = self._next_id()
                    seen.add(new_id)
                    staged[index] = Activity(
                        id=new_id,
                        title=activity.title,
                        date=activity.date,
                        description=activity.description,
                    )
            self._activities = staged
        return list(staged)

    def list(self) -> list[Activity]:
        return list(self._activities)

    def get(self, activity_id: str):
        for activity in self._activities:
            if activity.id == activity_id:
                return activity
        return None

    def __len__(self) -> int:
        return len(self._activities)

    def __iter__(self) -> Iterator[Activity]:
        return iter(list(self._activities))
