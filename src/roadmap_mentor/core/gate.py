"""The "can generate roadmap" gate and the greeting it selects."""

from __future__ import annotations

from collections.abc import Iterable

from roadmap_mentor.models import ChatMessage, DetailsCheck, Project, Role

MISSING_DESCRIPTION = "description"
MISSING_TECH_STACK = "tech stack"
MISSING_TIMELINE = "timeline/target date"

GREETING_OPENING = "Hello! I'm your AI Project Mentor. I'm here to help guide you through your project."
GREETING_OPEN_ENDED = "Feel free to ask me anything about your project."

_TARGETED_QUESTIONS = {
    MISSING_DESCRIPTION: "Can you describe your project and its goals?",
    MISSING_TECH_STACK: "What tech stack are you planning to use?",
    MISSING_TIMELINE: "What is your expected timeline?",
}


def check_project_details(project: Project) -> DetailsCheck:
    missing: list[str] = []
    if not (project.description or "").strip():
        missing.append(MISSING_DESCRIPTION)
    if not project.tech_stack:
        missing.append(MISSING_TECH_STACK)
    if project.target_date is None:
        missing.append(MISSING_TIMELINE)
    return DetailsCheck(has_all_details=not missing, missing_fields=missing)


def count_user_messages(messages: Iterable[ChatMessage]) -> int:
    return sum(1 for m in messages if m.role == Role.USER)


def can_generate(project: Project, messages: Iterable[ChatMessage]) -> bool:
    return check_project_details(project).has_all_details or count_user_messages(messages) > 0


def compose_greeting(project: Project) -> str:
    """Pick the greeting variant: a targeted question when details are missing, otherwise open-ended."""
    details = check_project_details(project)
    if details.has_all_details:
        return f"{GREETING_OPENING}\n\n{GREETING_OPEN_ENDED}"
    first_missing = details.missing_fields[0]
    return (
        f"{GREETING_OPENING}\n\n"
        f"I see some details are missing: {', '.join(details.missing_fields)}. Let's start with this:\n\n"
        f"{_TARGETED_QUESTIONS[first_missing]}"
    )
