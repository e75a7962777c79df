"""Tests for toggling and rollup on the roadmap tree."""

from datetime import timedelta

from conftest import T0, make_roadmap

from roadmap_mentor.core.tree import (
    apply_toggle,
    find_task,
    iter_leaves,
    normalize_roadmap,
    toggle_sub_task,
    toggle_task,
)
from roadmap_mentor.models import Phase, Roadmap, Task

T1 = T0 + timedelta(minutes=5)


class TestToggleTask:
    def test_completing_leaf_stamps_timestamp(self):
        roadmap = toggle_task(make_roadmap(), "1", "1-1", True, at=T0)
        task = find_task(roadmap, "1", "1-1")
        assert task.completed is True
        assert task.completed_at == T0

    def test_round_trip_restores_tree(self):
        original = make_roadmap()
        done = toggle_task(original, "1", "1-1", True, at=T0)
        undone = toggle_task(done, "1", "1-1", False, at=T1)
        assert undone == original
        assert find_task(undone, "1", "1-1").completed_at is None

    def test_unknown_ids_return_equal_tree(self):
        original = make_roadmap()
        assert toggle_task(original, "1", "nope", True, at=T0) == original
        assert toggle_task(original, "9", "1-1", True, at=T0) == original
        assert toggle_sub_task(original, "1", "1-2", "nope", True, at=T0) == original

    def test_parent_with_sub_tasks_is_not_toggled_directly(self):
        original = make_roadmap()
        assert toggle_task(original, "1", "1-2", True, at=T0) == original

    def test_input_is_not_mutated(self):
        original = make_roadmap()
        snapshot = original.model_copy(deep=True)
        toggle_task(original, "1", "1-1", True, at=T0)
        assert original == snapshot


class TestSubTaskRollup:
    def test_all_sub_tasks_complete_the_parent(self):
        roadmap = toggle_sub_task(make_roadmap(), "1", "1-2", "1-2-1", True, at=T0)
        assert find_task(roadmap, "1", "1-2").completed is False

        roadmap = toggle_sub_task(roadmap, "1", "1-2", "1-2-2", True, at=T1)
        parent = find_task(roadmap, "1", "1-2")
        assert parent.completed is True
        assert parent.completed_at == T1

    def test_uncompleting_one_sub_task_clears_parent(self):
        roadmap = make_roadmap()
        roadmap = toggle_sub_task(roadmap, "1", "1-2", "1-2-1", True, at=T0)
        roadmap = toggle_sub_task(roadmap, "1", "1-2", "1-2-2", True, at=T0)
        roadmap = toggle_sub_task(roadmap, "1", "1-2", "1-2-2", False, at=T1)
        parent = find_task(roadmap, "1", "1-2")
        assert parent.completed is False
        assert parent.completed_at is None
        assert find_task(roadmap, "1", "1-2-2", parent_task_id="1-2").completed_at is None

    def test_apply_toggle_dispatches_on_parent(self):
        roadmap = apply_toggle(make_roadmap(), "1", "1-2-1", True, at=T0, parent_task_id="1-2")
        assert find_task(roadmap, "1", "1-2-1", parent_task_id="1-2").completed is True
        assert find_task(roadmap, "1", "1-2-1") is None


def test_iter_leaves_skips_parents():
    phase = make_roadmap().phases[0]
    leaves = [(leaf.id, parent.id if parent else None) for leaf, parent in iter_leaves(phase)]
    assert leaves == [("1-1", None), ("1-2-1", "1-2"), ("1-2-2", "1-2")]


class TestNormalizeRoadmap:
    def test_fills_missing_and_duplicate_ids(self):
        raw = Roadmap(
            phases=[
                Phase(
                    name="A",
                    tasks=[
                        Task(name="t1"),
                        Task(id="x", name="t2"),
                        Task(id="x", name="t3", sub_tasks=[Task(name="s1"), Task(name="s2")]),
                    ],
                ),
                Phase(name="B"),
            ]
        )
        fixed = normalize_roadmap(raw, T0)
        assert [p.id for p in fixed.phases] == ["1", "2"]
        assert [t.id for t in fixed.phases[0].tasks] == ["1-1", "x", "1-3"]
        assert [s.id for s in fixed.phases[0].tasks[2].sub_tasks] == ["1-3-1", "1-3-2"]

    def test_rederives_parents_and_stamps_leaves(self):
        raw = Roadmap(
            phases=[
                Phase(
                    id="1",
                    name="A",
                    tasks=[
                        Task(id="1-1", name="done leaf", completed=True),
                        Task(
                            id="1-2",
                            name="parent",
                            completed=True,
                            sub_tasks=[Task(id="a", name="s", completed=False)],
                        ),
                    ],
                )
            ]
        )
        fixed = normalize_roadmap(raw, T0)
        assert fixed.phases[0].tasks[0].completed_at == T0
        assert fixed.phases[0].tasks[1].completed is False
        assert fixed.phases[0].tasks[1].completed_at is None


def test_stale_timestamp_is_cleared_on_load():
    task = Task.model_validate({"id": "1", "name": "t", "completed": False, "completedAt": T0.isoformat()})
    assert task.completed_at is None
