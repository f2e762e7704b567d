"""
Tests for the group availability calendar
"""

from datetime import date

import pytest

from conftest import count_rows
from tripsync.core.errors import NotAuthorized, NotFound, ValidationFailed
from tripsync.models import CalendarEntry

def test_set_date_replaces_entry(store, calendar, make_group):
    """Setting dates twice keeps one row per member with the latest range"""
    group_id, (host_id,) = make_group()

    calendar.set_date(group_id, host_id, date(2025, 8, 1), date(2025, 8, 3))
    entry = calendar.set_date(group_id, host_id, date(2025, 8, 10), date(2025, 8, 12))

    assert entry == {"user_id": host_id, "nickname": "host", "start": "2025-08-10", "end": "2025-08-12"}
    assert count_rows(store, CalendarEntry) == 1

def test_list_dates(calendar, make_group):
    group_id, (host_id, companion_id) = make_group(companions=1)
    calendar.set_date(group_id, companion_id, date(2025, 8, 5), date(2025, 8, 6))
    calendar.set_date(group_id, host_id, date(2025, 8, 1), date(2025, 8, 2))

    entries = calendar.list_dates(group_id)

    assert [e["user_id"] for e in entries] == [host_id, companion_id]
    with pytest.raises(NotFound):
        calendar.list_dates(404)

def test_clear_date(store, calendar, make_group):
    """Clearing reports whether an entry existed"""
    group_id, (host_id,) = make_group()

    assert calendar.clear_date(group_id, host_id) is False

    calendar.set_date(group_id, host_id, date(2025, 8, 1), date(2025, 8, 3))
    assert calendar.clear_date(group_id, host_id) is True
    assert count_rows(store, CalendarEntry) == 0

def test_set_date_rejections(store, calendar, make_group, make_user):
    """Reversed ranges and non-members never reach the store"""
    group_id, (host_id,) = make_group()

    with pytest.raises(ValidationFailed):
        calendar.set_date(group_id, host_id, date(2025, 8, 3), date(2025, 8, 1))
    with pytest.raises(NotAuthorized):
        calendar.set_date(group_id, make_user("outsider"), date(2025, 8, 1), date(2025, 8, 3))
    assert count_rows(store, CalendarEntry) == 0
