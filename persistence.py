import json
import os
from contextlib import suppress
from datetime import date, timezone, tzinfo
from pathlib import Path
from typing import Iterable

from activities import Activity, ValidationError

DEFAULT_EXPORT_PREFIX = "aup_school_calendar"


class ParseError(ValueError):
    """The document is not JSON, or not an array of activity records."""

    def __init__(self, message, problems=None):
        self.problems = list(problems or [])
        if self.problems:
            message = f"{message}: {'; '.join(self.problems)}"
        super().__init__(message)


class StorageError(IOError):
    pass


def dumps(activities: Iterable[Activity]) -> str:
    records = [a.to_record() for a in activities]
    return json.dumps(records, indent=2, ensure_ascii=False)


def loads(document, tz: tzinfo = timezone.utc) -> list[Activity]:
    """
    Parse a whole document into activities.

    Either every record is valid and all of them are returned, or
    ParseError lists every offending record.
    """
    if isinstance(document, (bytes, bytearray)):
        try:
            document = document.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError("document is not UTF-8 text") from e

    try:
        data = json.loads(document)
    except (TypeError, ValueError) as e:
        raise ParseError("document is not valid JSON") from e

    if not isinstance(data, list):
        raise ParseError("document must be a JSON array of activities")

    activities = []
    problems = []
    for index, record in enumerate(data):
        try:
            activities.append(Activity.from_record(record, tz))
        except ValidationError as e:
            problems.append(f"record {index}: {', '.join(e.problems)}")
    if problems:
        raise ParseError("invalid activity records", problems)
    return activities


def export_filename(today: date, prefix: str = DEFAULT_EXPORT_PREFIX) -> str:
    return f"{prefix}_{today.isoformat()}.json"


class JsonFileGateway:
    """
    Reads and writes the whole activity collection as one JSON file.

    There is no locking: two overlapping writers race and the last
    os.replace wins.
    """

    def __init__(self, path, tz: tzinfo = timezone.utc):
        self.path = Path(path)
        self.tz = tz

    def save(self, activities: Iterable[Activity]) -> str:
        document = dumps(activities)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(document + "\n", encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            # leftover temp file, the write error is the one to report
            with suppress(OSError):
                tmp.unlink(missing_ok=True)
            raise StorageError(f"could not write {self.path}: {e.strerror or e}") from e
        return document

    def load(self) -> list[Activity]:
        try:
            document = self.path.read_bytes()
        except OSError as e:
            raise StorageError(f"could not read {self.path}: {e.strerror or e}") from e
        return loads(document, self.tz)
