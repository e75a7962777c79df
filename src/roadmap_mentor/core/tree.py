"""Pure operations on the phase -> task -> sub-task tree.

Nothing in this module performs I/O or reads a clock. The caller passes the
toggle time as ``at``, so the same inputs always produce an equal tree. Ids
that do not resolve are absorbed as no-ops and the input tree is returned;
callers decide whether the UI action that led here was legal.

Completion rollup is exactly one level deep: a task with sub-tasks derives
its flag from them, and a phase never carries a completion flag of its own.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime

from roadmap_mentor.models import Phase, Roadmap, Task


def set_completed(task: Task, completed: bool, at: datetime) -> Task:
    """Return ``task`` with its flag set, stamping or clearing ``completed_at``."""
    if task.completed == completed:
        return task
    return task.model_copy(update={"completed": completed, "completed_at": at if completed else None})


def rollup(task: Task, at: datetime) -> Task:
    """Re-derive a parent task's flag from its sub-tasks. Leaves are returned as-is."""
    if task.is_leaf:
        return task
    return set_completed(task, all(sub.completed for sub in task.sub_tasks), at)


def toggle_task(roadmap: Roadmap, phase_id: str, task_id: str, completed: bool, *, at: datetime) -> Roadmap:
    """Set a phase's direct child task. Tasks with sub-tasks are derived, so this is a no-op for them."""

    def apply(task: Task) -> Task:
        if not task.is_leaf:
            return task
        return set_completed(task, completed, at)

    return _update_task(roadmap, phase_id, task_id, apply)


def toggle_sub_task(
    roadmap: Roadmap,
    phase_id: str,
    parent_task_id: str,
    sub_task_id: str,
    completed: bool,
    *,
    at: datetime,
) -> Roadmap:
    """Set a sub-task, then roll its parent up one level."""

    def apply(parent: Task) -> Task:
        idx = _index_of(parent.sub_tasks, sub_task_id)
        if idx is None:
            return parent
        sub = parent.sub_tasks[idx]
        updated = set_completed(sub, completed, at)
        if updated is sub:
            return parent
        subs = list(parent.sub_tasks)
        subs[idx] = updated
        return rollup(parent.model_copy(update={"sub_tasks": subs}), at)

    return _update_task(roadmap, phase_id, parent_task_id, apply)


def apply_toggle(
    roadmap: Roadmap,
    phase_id: str,
    task_id: str,
    completed: bool,
    *,
    at: datetime,
    parent_task_id: str | None = None,
) -> Roadmap:
    """Dispatch to ``toggle_task`` or, when ``parent_task_id`` is given, ``toggle_sub_task``."""
    if parent_task_id is None:
        return toggle_task(roadmap, phase_id, task_id, completed, at=at)
    return toggle_sub_task(roadmap, phase_id, parent_task_id, task_id, completed, at=at)


def find_task(roadmap: Roadmap, phase_id: str, task_id: str, parent_task_id: str | None = None) -> Task | None:
    phase = next((p for p in roadmap.phases if p.id == phase_id), None)
    if phase is None:
        return None
    if parent_task_id is None:
        return next((t for t in phase.tasks if t.id == task_id), None)
    parent = next((t for t in phase.tasks if t.id == parent_task_id), None)
    if parent is None:
        return None
    return next((s for s in parent.sub_tasks if s.id == task_id), None)


def iter_leaves(phase: Phase) -> Iterator[tuple[Task, Task | None]]:
    """Yield ``(leaf, parent)`` in display order. Parents with sub-tasks are not leaves."""
    for task in phase.tasks:
        if task.is_leaf:
            yield task, None
        else:
            for sub in task.sub_tasks:
                yield sub, task


def normalize_roadmap(roadmap: Roadmap, at: datetime) -> Roadmap:
    """Make a generated or legacy tree satisfy the model invariants.

    Missing or duplicate ids are replaced positionally ("1", "1-1", "1-1-1"),
    completed leaves without a stamp get ``at``, and parents are re-derived.
    """
    phases: list[Phase] = []
    phase_ids: set[str] = set()
    for p_idx, phase in enumerate(roadmap.phases, 1):
        phase_id = _unique_id(phase.id, str(p_idx), phase_ids)
        tasks: list[Task] = []
        task_ids: set[str] = set()
        for t_idx, task in enumerate(phase.tasks, 1):
            task_id = _unique_id(task.id, f"{phase_id}-{t_idx}", task_ids)
            subs: list[Task] = []
            sub_ids: set[str] = set()
            for s_idx, sub in enumerate(task.sub_tasks, 1):
                sub_id = _unique_id(sub.id, f"{task_id}-{s_idx}", sub_ids)
                subs.append(_stamp_leaf(sub.model_copy(update={"id": sub_id, "sub_tasks": []}), at))
            fixed = task.model_copy(update={"id": task_id, "sub_tasks": subs})
            tasks.append(rollup(fixed, at) if subs else _stamp_leaf(fixed, at))
        phases.append(phase.model_copy(update={"id": phase_id, "tasks": tasks}))
    return roadmap.model_copy(update={"phases": phases})


def _stamp_leaf(task: Task, at: datetime) -> Task:
    if task.completed and task.completed_at is None:
        return task.model_copy(update={"completed_at": at})
    return task


def _unique_id(preferred: str, fallback: str, seen: set[str]) -> str:
    candidate = preferred if preferred and preferred not in seen else fallback
    base = candidate
    counter = 1
    while candidate in seen:
        candidate = f"{base}-{counter}"
        counter += 1
    seen.add(candidate)
    return candidate


def _index_of(items: list[Phase] | list[Task], item_id: str) -> int | None:
    return next((i for i, item in enumerate(items) if item.id == item_id), None)


def _update_task(roadmap: Roadmap, phase_id: str, task_id: str, fn: Callable[[Task], Task]) -> Roadmap:
    p_idx = _index_of(roadmap.phases, phase_id)
    if p_idx is None:
        return roadmap
    phase = roadmap.phases[p_idx]
    t_idx = _index_of(phase.tasks, task_id)
    if t_idx is None:
        return roadmap
    task = phase.tasks[t_idx]
    updated = fn(task)
    if updated is task:
        return roadmap
    tasks = list(phase.tasks)
    tasks[t_idx] = updated
    phases = list(roadmap.phases)
    phases[p_idx] = phase.model_copy(update={"tasks": tasks})
    return roadmap.model_copy(update={"phases": phases})
