"""
Unit tests for the activities module.
"""
import pytest
import threading
from datetime import date, datetime, timezone

from activities import (
    Activity, ActivityStore, ValidationError, parse_calendar_date, sort_activities
)


class TestParseCalendarDate:
    """Everything is normalised to a plain date at the input boundary."""

    def test_plain_iso_date(self):
        assert parse_calendar_date("2025-03-10") == date(2025, 3, 10)

    def test_plain_date_ignores_timezone(self, ist):
        # a bare date never shifts, whatever the zone
        assert parse_calendar_date("2025-03-10", ist) == date(2025, 3, 10)

    def test_date_object_passes_through(self):
        assert parse_calendar_date(date(2025, 1, 1)) == date(2025, 1, 1)

    def test_utc_datetime_string_is_moved_into_zone(self, ist):
        # midnight in India written out by toISOString()
        assert parse_calendar_date("2025-03-09T18:30:00.000Z", ist) == date(2025, 3, 10)

    def test_utc_datetime_string_in_utc(self):
        assert parse_calendar_date("2025-03-09T18:30:00.000Z") == date(2025, 3, 9)

    def test_offset_datetime_string(self, ist):
        assert parse_calendar_date("2025-03-10T23:00:00-05:00", ist) == date(2025, 3, 11)

    def test_naive_datetime_string_is_local(self, ist):
        assert parse_calendar_date("2025-03-10T23:59:00", ist) == date(2025, 3, 10)

    def test_aware_datetime_object(self, ist):
        dt = datetime(2025, 3, 9, 20, 0, tzinfo=timezone.utc)
        assert parse_calendar_date(dt, ist) == date(2025, 3, 10)

    @pytest.mark.parametrize("value", ["", "   ", None, "not a date", "2025-13-01", 20250310])
    def test_invalid_values(self, value):
        with pytest.raises(ValidationError):
            parse_calendar_date(value)


class TestActivity:

    def test_to_record(self):
        a = Activity(id="1", title="Sports Day", date=date(2025, 3, 10), description="Ground")
        assert a.to_record() == {
            "id": "1",
            "title": "Sports Day",
            "date": "2025-03-10",
            "description": "Ground",
        }

    def test_is_immutable(self):
        a = Activity(id="1", title="Sports Day", date=date(2025, 3, 10))
        with pytest.raises(AttributeError):
            a.title = "Other"

    def test_from_record_defaults_description(self):
        a = Activity.from_record({"id": "7", "title": "Onam", "date": "2025-09-05"})
        assert a == Activity(id="7", title="Onam", date=date(2025, 9, 5), description="")

    def test_from_record_numeric_id_becomes_string(self):
        a = Activity.from_record({"id": 1736899200000, "title": "Onam", "date": "2025-09-05"})
        assert a.id == "1736899200000"

    def test_from_record_reports_every_problem(self):
        with pytest.raises(ValidationError) as exc:
            Activity.from_record({"id": "1", "title": "", "date": ""})
        assert len(exc.value.problems) == 2

    def test_from_record_rejects_non_object(self):
        with pytest.raises(ValidationError):
            Activity.from_record(["Sports Day", "2025-03-10"])


class TestActivityStore:

    def test_add(self, empty_store):
        a = empty_store.add("Sports Day", "2025-03-10", "On the main ground")
        assert a.title == "Sports Day"
        assert a.date == date(2025, 3, 10)
        assert a.description == "On the main ground"
        assert empty_store.list() == [a]

    def test_add_description_optional(self, empty_store):
        a = empty_store.add("Sports Day", "2025-03-10")
        assert a.description == ""

    @pytest.mark.parametrize("title, day", [
        ("", "2025-03-10"),
        ("   ", "2025-03-10"),
        (None, "2025-03-10"),
        ("Sports Day", ""),
        ("Sports Day", None),
        ("Sports Day", "10/03/2025"),
    ])
    def test_add_rejects_missing_title_or_date(self, empty_store, title, day):
        empty_store.add("Existing", "2025-01-01")
        with pytest.raises(ValidationError):
            empty_store.add(title, day)
        assert len(empty_store) == 1

    def test_add_keeps_title_as_given(self, empty_store):
        a = empty_store.add("  Sports Day ", "2025-03-10")
        assert a.title == "  Sports Day "

    def test_ids_are_unique(self, empty_store):
        ids = {empty_store.add(f"Activity {i}", "2025-03-10").id for i in range(200)}
        assert len(ids) == 200

    def test_ids_are_monotonic(self, empty_store):
        first = empty_store.add("One", "2025-03-10")
        second = empty_store.add("Two", "2025-03-10")
        assert int(second.id) > int(first.id)

    def test_remove(self, empty_store):
        a = empty_store.add("Sports Day", "2025-03-10")
        b = empty_store.add("Onam", "2025-09-05")
        assert empty_store.remove(a.id) is True
        assert empty_store.list() == [b]

    def test_remove_missing_is_noop(self, empty_store):
        a = empty_store.add("Sports Day", "2025-03-10")
        assert empty_store.remove("does-not-exist") is False
        assert empty_store.list() == [a]

    def test_concurrent_adds_and_removes(self, empty_store):
        keep = empty_store.add("Keep", "2025-01-01")
        start = threading.Barrier(8)

        def add_many(n):
            start.wait()
            for i in range(50):
                empty_store.add(f"Activity {n}-{i}", "2025-03-10")

        def remove_many():
            start.wait()
            for _ in range(50):
                empty_store.remove("does-not-exist")

        threads = [threading.Thread(target=add_many, args=(n,)) for n in range(4)]
        threads += [threading.Thread(target=remove_many) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        activities = empty_store.list()
        assert len(activities) == 1 + 4 * 50
        assert len({a.id for a in activities}) == len(activities)
        assert activities[0] == keep

    def test_list_is_a_copy(self, empty_store):
        empty_store.add("Sports Day", "2025-03-10")
        empty_store.list().clear()
        assert len(empty_store) == 1

    def test_get(self, empty_store):
        a = empty_store.add("Sports Day", "2025-03-10")
        assert empty_store.get(a.id) == a
        assert empty_store.get("nope") is None

    def test_replace_all(self, empty_store):
        empty_store.add("Old", "2024-01-01")
        loaded = empty_store.replace_all([
            {"id": "1", "title": "Sports Day", "date": "2025-03-10", "description": ""},
            {"id": "2", "title": "Onam", "date": "2025-09-05"},
        ])
        assert [a.title for a in empty_store.list()] == ["Sports Day", "Onam"]
        assert loaded == empty_store.list()

    def test_replace_all_accepts_activities(self, empty_store):
        a = Activity(id="1", title="Sports Day", date=date(2025, 3, 10))
        empty_store.replace_all([a])
        assert empty_store.list() == [a]

    def test_replace_all_fills_missing_ids(self, empty_store):
        loaded = empty_store.replace_all([
            {"title": "Sports Day", "date": "2025-03-10"},
            {"title": "Onam", "date": "2025-09-05"},
        ])
        assert all(a.id for a in loaded)
        assert loaded[0].id != loaded[1].id

    def test_replace_all_is_atomic(self, empty_store):
        before = [empty_store.add("Old", "2024-01-01")]
        with pytest.raises(ValidationError) as exc:
            empty_store.replace_all([
                {"id": "1", "title": "Sports Day", "date": "2025-03-10"},
                {"id": "2", "date": "2025-09-05"},
                {"id": "3", "title": "No date"},
            ])
        assert empty_store.list() == before
        # both offending records are named
        assert len(exc.value.problems) == 2
        assert exc.value.problems[0].startswith("record 1")
        assert exc.value.problems[1].startswith("record 2")

    def test_replace_all_rejects_duplicate_ids(self, empty_store):
        with pytest.raises(ValidationError, match="duplicate id"):
            empty_store.replace_all([
                {"id": "1", "title": "A", "date": "2025-03-10"},
                {"id": "1", "title": "B", "date": "2025-03-11"},
            ])
        assert len(empty_store) == 0

    def test_replace_all_with_nothing_empties_store(self, empty_store):
        empty_store.add("Old", "2024-01-01")
        empty_store.replace_all([])
        assert empty_store.list() == []


def test_sort_activities_by_date_then_insertion():
    a = Activity(id="1", title="Late", date=date(2025, 5, 1))
    b = Activity(id="2", title="Early", date=date(2025, 1, 1))
    c = Activity(id="3", title="Late too", date=date(2025, 5, 1))
    assert sort_activities([a, b, c]) == [b, a, c]
