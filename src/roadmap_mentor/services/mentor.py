"""AI project mentor: chat replies and roadmap generation.

Backends talk to a model provider and raise GenerationUnavailable when they
cannot produce output. ``Mentor`` wraps a backend and never raises: any
failure is logged and replaced by a local fallback reply or template roadmap.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from roadmap_mentor.config import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_OPENROUTER_MODEL,
    OPENROUTER_BASE_URL,
    Settings,
)
from roadmap_mentor.errors import GenerationUnavailable
from roadmap_mentor.json_utils import parse_json_robust
from roadmap_mentor.models import ChatMessage, Project, Role, Roadmap
from roadmap_mentor.prompts import CONVERSATION_CONTEXT, MENTOR_SYSTEM_PROMPT, ROADMAP_PROMPT

logger = logging.getLogger(__name__)

CHAT_HISTORY_LIMIT = 10
ROADMAP_HISTORY_LIMIT = 5


# --- Backends ---


class MentorBackend(ABC):
    name = "backend"

    @abstractmethod
    async def complete(self, system: str | None, messages: list[dict[str, str]]) -> str:
        """Return the model's text for ``messages``. Raises GenerationUnavailable."""


class OpenRouterBackend(MentorBackend):
    """OpenAI-compatible chat completions through OpenRouter."""

    name = "openrouter"

    def __init__(self, api_key: str, model: str = DEFAULT_OPENROUTER_MODEL, max_tokens: int = 4096):
        self.client = AsyncOpenAI(base_url=OPENROUTER_BASE_URL, api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens

    async def complete(self, system: str | None, messages: list[dict[str, str]]) -> str:
        payload = ([{"role": "system", "content": system}] if system else []) + messages
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=payload,
            )
        except OpenAIError as e:
            raise GenerationUnavailable(f"OpenRouter request failed: {e}") from e
        if response.choices and response.choices[0].message.content:
            return response.choices[0].message.content.strip()
        raise GenerationUnavailable("OpenRouter returned an empty response")


class GeminiBackend(MentorBackend):
    """Google Gemini through the google-genai async client."""

    name = "gemini"

    def __init__(self, api_key: str | None = None, model: str = DEFAULT_GEMINI_MODEL):
        self.client = genai.Client(api_key=api_key) if api_key else genai.Client()
        self.model = model

    async def complete(self, system: str | None, messages: list[dict[str, str]]) -> str:
        contents = [
            types.Content(
                role="model" if m["role"] == Role.ASSISTANT else "user",
                parts=[types.Part(text=m["content"])],
            )
            for m in messages
        ]
        config = types.GenerateContentConfig(system_instruction=system) if system else None
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )
        except genai_errors.APIError as e:
            raise GenerationUnavailable(f"Gemini request failed: {e}") from e
        if response.text:
            return response.text.strip()
        raise GenerationUnavailable("Gemini returned an empty response")


class OfflineBackend(MentorBackend):
    """No provider configured; every call falls through to the local fallbacks."""

    name = "offline"

    async def complete(self, system: str | None, messages: list[dict[str, str]]) -> str:
        raise GenerationUnavailable("No mentor provider configured")


def build_backend(settings: Settings) -> MentorBackend:
    match settings.provider:
        case "openrouter":
            return OpenRouterBackend(settings.openrouter_api_key, settings.openrouter_model)
        case "gemini":
            return GeminiBackend(settings.gemini_api_key or None, settings.gemini_model)
        case _:
            return OfflineBackend()


# --- Prompt building ---


def build_project_context(project: Project) -> str:
    parts = [f"Project Name: {project.name}"] if project.name else []
    parts.append(f"Description: {project.description}" if project.description else "Description: MISSING")
    parts.append(f"Tech Stack: {', '.join(project.tech_stack)}" if project.tech_stack else "Tech Stack: MISSING")
    parts.append(f"Target Date: {project.target_date.isoformat()}" if project.target_date else "Timeline: MISSING")
    if project.domain:
        parts.append(f"Domain: {project.domain}")
    if project.team_size:
        parts.append(f"Team Size: {project.team_size}")
    return "\n".join(parts)


def history_messages(history: Sequence[ChatMessage], limit: int) -> list[dict[str, str]]:
    return [{"role": m.role.value, "content": m.content} for m in list(history)[-limit:]]


def parse_roadmap(text: str) -> Roadmap:
    """Parse generator output into a Roadmap. Raises GenerationUnavailable when unusable."""
    try:
        data = parse_json_robust(text)
    except ValueError as e:
        raise GenerationUnavailable(str(e)) from e
    if isinstance(data.get("roadmap"), dict):
        data = data["roadmap"]
    try:
        roadmap = Roadmap.model_validate({"phases": data.get("phases") or []})
    except ValidationError as e:
        raise GenerationUnavailable(f"Generated roadmap has an invalid shape: {e}") from e
    if not roadmap.phases:
        raise GenerationUnavailable("Generated roadmap has no phases")
    return roadmap


# --- Fallbacks ---


def fallback_reply(user_message: str, project: Project) -> str:
    """Keyword-based reply used whenever no model output is available."""
    project_name = project.name or "your project"
    lower = user_message.lower()
    words = set(lower.replace("?", " ").replace("!", " ").replace(",", " ").split())

    if words & {"hello", "hi", "hey"}:
        return f"Hello! I'm your AI Project Mentor. I'm here to help guide you through {project_name}."
    if "roadmap" in lower or "plan" in lower:
        return (
            f"I'd be happy to help you create a roadmap for {project_name}!\n\n"
            "To generate a roadmap:\n"
            "1. Fill in your project details (description, tech stack, timeline)\n"
            "2. Or chat with me to gather information\n"
            "3. Then request a roadmap with the Generate action"
        )
    if "help" in lower or "what can you do" in lower:
        return (
            "I can help you with:\n\n"
            "1. **Project Planning**: questions about your project structure, features, or best practices\n"
            "2. **Roadmap Generation**: a step-by-step roadmap for your project\n"
            "3. **Technical Guidance**: advice on technologies, architecture, and development practices\n"
            "4. **Project Details**: I'll ask you questions to better understand your project needs"
        )
    if "description" in lower or "what is" in lower:
        return (
            f"I'd love to learn more about {project_name}!\n\n"
            "Could you tell me:\n"
            "- What is the main purpose of your project?\n"
            "- What problem does it solve?\n"
            "- Who is your target audience?"
        )
    if "tech" in lower or "stack" in lower:
        return (
            f"Great question about technology!\n\nFor {project_name}, consider:\n"
            "- Frontend: React, Vue, or Angular for web apps\n"
            "- Backend: Node.js, Python, or Java depending on your needs\n"
            "- Database: PostgreSQL, MongoDB, or Firebase\n\n"
            "What technologies are you considering?"
        )
    return (
        f"Thanks for your message about {project_name}!\n\n"
        "I'm here to help you with project planning, roadmap creation, and technical guidance. "
        "Feel free to ask me about your project structure, timelines, technical choices or feature ideas."
    )


_FALLBACK_PHASES = [
    (
        "Planning & Setup",
        "Initial project planning and environment setup",
        [
            "Define project requirements and goals",
            "Set up development environment",
            "Choose technology stack",
            "Create project repository",
        ],
    ),
    (
        "Core Development",
        "Build the main features and functionality",
        [
            "Implement core features",
            "Set up database and data models",
            "Create user interface",
            "Implement authentication (if needed)",
        ],
    ),
    (
        "Testing & Refinement",
        "Test, debug, and refine the application",
        [
            "Write and run unit tests",
            "Perform integration testing",
            "Fix bugs and issues",
            "Optimize performance",
        ],
    ),
    (
        "Deployment & Launch",
        "Deploy the application and prepare for launch",
        [
            "Set up production environment",
            "Deploy application",
            "Configure domain and SSL",
            "Monitor and maintain",
        ],
    ),
]


def fallback_roadmap(project: Project | None = None) -> Roadmap:
    return Roadmap.model_validate(
        {
            "phases": [
                {
                    "id": str(p_idx),
                    "name": name,
                    "description": description,
                    "tasks": [
                        {"id": f"{p_idx}-{t_idx}", "name": task, "completed": False}
                        for t_idx, task in enumerate(tasks, 1)
                    ],
                }
                for p_idx, (name, description, tasks) in enumerate(_FALLBACK_PHASES, 1)
            ]
        }
    )


# --- Mentor ---


class Mentor:
    def __init__(self, backend: MentorBackend | None = None):
        self.backend = backend or OfflineBackend()

    async def generate_reply(self, user_message: str, history: Sequence[ChatMessage], project: Project) -> str:
        """Reply to ``user_message``. ``history`` is the ordered log, usually ending with that message."""
        system = MENTOR_SYSTEM_PROMPT.format(
            project_name=project.name or "Untitled Project",
            project_context=build_project_context(project),
        )
        messages = history_messages(history, CHAT_HISTORY_LIMIT)
        current = {"role": Role.USER.value, "content": user_message}
        if not messages or messages[-1] != current:
            messages.append(current)
        try:
            return await self.backend.complete(system, messages)
        except GenerationUnavailable as e:
            logger.warning("Mentor reply unavailable (%s), using fallback", e)
        except Exception:
            logger.exception("Mentor backend '%s' failed, using fallback reply", self.backend.name)
        return fallback_reply(user_message, project)

    async def generate_roadmap(self, project: Project, history: Sequence[ChatMessage]) -> Roadmap:
        recent = list(history)[-ROADMAP_HISTORY_LIMIT:]
        conversation = (
            CONVERSATION_CONTEXT.format(messages="\n".join(f"{m.role.value}: {m.content}" for m in recent))
            if recent
            else ""
        )
        prompt = ROADMAP_PROMPT.format(project_context=build_project_context(project), conversation=conversation)
        try:
            text = await self.backend.complete(None, [{"role": Role.USER.value, "content": prompt}])
            roadmap = parse_roadmap(text)
            logger.info("Generated roadmap with %d phases for project %s", len(roadmap.phases), project.id)
            return roadmap
        except GenerationUnavailable as e:
            logger.warning("Roadmap generation unavailable (%s), using template roadmap", e)
        except Exception:
            logger.exception("Mentor backend '%s' failed, using template roadmap", self.backend.name)
        return fallback_roadmap(project)


def build_mentor(settings: Settings) -> Mentor:
    return Mentor(build_backend(settings))
