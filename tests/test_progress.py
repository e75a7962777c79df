"""Tests for progress derivation."""

from datetime import timedelta

import pytest
from conftest import T0, make_roadmap

from roadmap_mentor.core.progress import compute_progress, percent, recent_completions
from roadmap_mentor.core.tree import toggle_sub_task, toggle_task
from roadmap_mentor.models import Phase, PhaseStatus, Roadmap, Task


class TestPercent:
    @pytest.mark.parametrize(
        "completed,total,expected",
        [(0, 0, 0), (0, 3, 0), (1, 3, 33), (1, 2, 50), (2, 3, 67), (3, 3, 100), (1, 1000, 1), (999, 1000, 99)],
    )
    def test_rounding_and_bounds(self, completed, total, expected):
        assert percent(completed, total) == expected


def test_single_task_scenario():
    roadmap = Roadmap(phases=[Phase(id="1", name="Only", tasks=[Task(id="1-1", name="t")])])
    progress = compute_progress(roadmap)
    assert progress.overall == 0
    assert progress.per_phase[0].status == PhaseStatus.PENDING

    progress = compute_progress(toggle_task(roadmap, "1", "1-1", True, at=T0))
    assert progress.overall == 100
    assert progress.per_phase[0].status == PhaseStatus.COMPLETED
    assert progress.milestones[0].name == "Only Complete"
    assert progress.milestones[0].completed is True


def test_parents_with_sub_tasks_are_not_counted():
    roadmap = make_roadmap()  # leaves: 1-1, 1-2-1, 1-2-2, 2-1
    roadmap = toggle_sub_task(roadmap, "1", "1-2", "1-2-1", True, at=T0)
    progress = compute_progress(roadmap)
    assert progress.overall == 25
    assert progress.per_phase[0].progress_pct == 33
    assert progress.per_phase[0].status == PhaseStatus.IN_PROGRESS
    assert progress.per_phase[1].status == PhaseStatus.PENDING


def test_overall_bounds_hold_for_every_partial_state():
    roadmap = make_roadmap()
    steps = [("1", "1-1", None), ("1", "1-2-1", "1-2"), ("1", "1-2-2", "1-2"), ("2", "2-1", None)]
    for i, (phase_id, task_id, parent) in enumerate(steps, 1):
        if parent:
            roadmap = toggle_sub_task(roadmap, phase_id, parent, task_id, True, at=T0)
        else:
            roadmap = toggle_task(roadmap, phase_id, task_id, True, at=T0)
        overall = compute_progress(roadmap).overall
        if i < len(steps):
            assert 0 < overall < 100
        else:
            assert overall == 100


def test_recent_completions_newest_first_and_capped():
    tasks = [Task(id=str(i), name=f"t{i}") for i in range(7)]
    roadmap = Roadmap(phases=[Phase(id="p", name="P", tasks=tasks)])
    for i in range(7):
        roadmap = toggle_task(roadmap, "p", str(i), True, at=T0 + timedelta(minutes=i))
    events = recent_completions(roadmap)
    assert [e.task for e in events] == ["t6", "t5", "t4", "t3", "t2"]
    assert events[0].id == "p-6"


def test_recent_completions_put_untimestamped_last():
    roadmap = Roadmap(
        phases=[
            Phase(
                id="1",
                name="A",
                tasks=[
                    Task(id="a", name="legacy", completed=True),
                    Task(id="b", name="stamped", completed=True, completed_at=T0),
                    Task(id="c", name="parent", sub_tasks=[Task(id="s", name="sub", completed=True, completed_at=T0)]),
                ],
            )
        ]
    )
    events = recent_completions(roadmap)
    assert [e.task for e in events] == ["stamped", "sub", "legacy"]
    assert events[1].parent_task == "parent"
    assert events[1].id == "1-c-s"


def test_missing_roadmap_yields_empty_progress():
    progress = compute_progress(None)
    assert progress.overall == 0
    assert progress.per_phase == []
    assert progress.recent_completions == []


def test_offset_less_stamps_read_as_utc():
    roadmap = Roadmap.model_validate(
        {
            "phases": [
                {
                    "id": "1",
                    "name": "A",
                    "tasks": [
                        {"id": "a", "name": "naive", "completed": True, "completedAt": "2025-01-01T00:00:00"},
                        {"id": "b", "name": "aware", "completed": True, "completedAt": "2025-01-02T00:00:00+00:00"},
                    ],
                }
            ]
        }
    )
    progress = compute_progress(roadmap)
    assert [e.task for e in progress.recent_completions] == ["aware", "naive"]
    assert progress.recent_completions[1].completed_at.utcoffset() == timedelta(0)
    assert progress.overall == 100
