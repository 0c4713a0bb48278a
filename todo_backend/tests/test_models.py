from datetime import datetime

import pytest

from taskboard.models import TaskStatus, derive_status


def _sub(completed):
    return {
        "id": "s",
        "task_id": "t",
        "title": "step",
        "description": None,
        "completed": completed,
        "created_at": datetime(2025, 1, 1),
    }


@pytest.mark.parametrize(
    "flags, expected",
    [
        ([], TaskStatus.TODO),
        ([False], TaskStatus.TODO),
        ([True], TaskStatus.DONE),
        ([False, False, False], TaskStatus.TODO),
        ([True, False, False], TaskStatus.IN_PROGRESS),
        ([True, True, False], TaskStatus.IN_PROGRESS),
        ([True, True, True], TaskStatus.DONE),
    ],
)
def test_derive_status(flags, expected):
    assert derive_status(_sub(f) for f in flags) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("todo", TaskStatus.TODO),
        ("in-progress", TaskStatus.IN_PROGRESS),
        ("inprogress", TaskStatus.IN_PROGRESS),
        ("DONE", TaskStatus.DONE),
        (TaskStatus.DONE, TaskStatus.DONE),
        (None, TaskStatus.TODO),
        ("archived", TaskStatus.TODO),
    ],
)
def test_status_from_record(raw, expected):
    assert TaskStatus.from_record(raw) == expected


def test_status_values_are_wire_strings():
    assert [s.value for s in TaskStatus] == ["todo", "in-progress", "done"]
