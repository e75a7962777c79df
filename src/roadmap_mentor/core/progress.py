"""Derive progress figures from a roadmap tree."""

from __future__ import annotations

import math

from roadmap_mentor.core.tree import iter_leaves
from roadmap_mentor.models import (
    CompletionEvent,
    Milestone,
    Phase,
    PhaseProgress,
    PhaseStatus,
    Progress,
    Roadmap,
)

RECENT_LIMIT = 5


def percent(completed: int, total: int) -> int:
    """Half-up rounded percentage; 100 only when complete and 0 only when nothing is."""
    if total <= 0:
        return 0
    pct = math.floor(100 * completed / total + 0.5)
    if completed < total:
        pct = min(pct, 99)
    if completed > 0:
        pct = max(pct, 1)
    return pct


def phase_status(pct: int) -> PhaseStatus:
    if pct >= 100:
        return PhaseStatus.COMPLETED
    if pct > 0:
        return PhaseStatus.IN_PROGRESS
    return PhaseStatus.PENDING


def count_leaves(phase: Phase) -> tuple[int, int]:
    """Return ``(completed, total)`` leaf counts for a phase."""
    completed = total = 0
    for leaf, _parent in iter_leaves(phase):
        total += 1
        if leaf.completed:
            completed += 1
    return completed, total


def recent_completions(roadmap: Roadmap, limit: int = RECENT_LIMIT) -> list[CompletionEvent]:
    """Completed leaves, newest first. Entries without a timestamp go last, in tree order."""
    stamped: list[CompletionEvent] = []
    unstamped: list[CompletionEvent] = []
    for phase in roadmap.phases:
        for leaf, parent in iter_leaves(phase):
            if not leaf.completed:
                continue
            event_id = f"{phase.id}-{parent.id}-{leaf.id}" if parent else f"{phase.id}-{leaf.id}"
            event = CompletionEvent(
                id=event_id,
                task=leaf.name,
                phase=phase.name,
                parent_task=parent.name if parent else None,
                completed_at=leaf.completed_at,
            )
            (stamped if leaf.completed_at is not None else unstamped).append(event)
    # sorted() stays stable under reverse=True, so equal stamps keep tree order
    stamped = sorted(stamped, key=lambda e: e.completed_at, reverse=True)
    return (stamped + unstamped)[:limit]


def compute_progress(roadmap: Roadmap | None) -> Progress:
    if roadmap is None or not roadmap.phases:
        return Progress()

    per_phase: list[PhaseProgress] = []
    done_total = leaf_total = 0
    for phase in roadmap.phases:
        completed, total = count_leaves(phase)
        done_total += completed
        leaf_total += total
        pct = percent(completed, total)
        per_phase.append(PhaseProgress(name=phase.name, progress_pct=pct, status=phase_status(pct)))

    milestones = [
        Milestone(name=f"{phase.name} Complete", completed=row.status == PhaseStatus.COMPLETED)
        for phase, row in zip(roadmap.phases, per_phase)
    ]
    return Progress(
        overall=percent(done_total, leaf_total),
        per_phase=per_phase,
        recent_completions=recent_completions(roadmap),
        milestones=milestones,
    )
