"""Chat view: ordered message log, optimistic appends and the one-shot greeting.

The engine moves through ``empty -> bootstrapping -> populated``. When the
first snapshot of a project's message log is empty, the engine claims the
session's bootstrap guard synchronously (before any suspension point) and
appends a greeting carrying ``GREETING_MARKER``. Any other view of the same
session that sees the empty log afterwards finds the guard claimed and waits
for the greeting snapshot instead of writing its own. If the greeting write
fails the claim is released: waiting views show the greeting as unsent, and
the next view to mount on the empty log writes it again.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from pydantic import ValidationError

from roadmap_mentor.clock import Clock
from roadmap_mentor.core.gate import can_generate, compose_greeting
from roadmap_mentor.errors import StoreWriteError
from roadmap_mentor.infrastructure.broker import SubscriptionBroker
from roadmap_mentor.infrastructure.store import DocumentStore, Unsubscribe
from roadmap_mentor.models import ChatMessage, MessageStatus, Project, Role
from roadmap_mentor.services.mentor import Mentor
from roadmap_mentor.services.projects import messages_collection

logger = logging.getLogger(__name__)

GREETING_MARKER = "bootstrap-greeting"
APOLOGY = "I apologize, but I encountered an error. Please try again."
# An optimistic entry is superseded by a confirmed message with the same role
# and content created within this window of it.
MATCH_WINDOW = timedelta(minutes=2)

MessagesHandler = Callable[[list[ChatMessage]], None]


class ChatState(enum.StrEnum):
    EMPTY = "empty"
    BOOTSTRAPPING = "bootstrapping"
    POPULATED = "populated"


class BootstrapGuard:
    """Per-session record of projects whose greeting is written or being written.

    A claim is only handed back when the greeting write failed, so nothing was
    stored and the next view to find the log empty may try again.
    """

    def __init__(self):
        self._claimed: set[str] = set()
        self._waiters: dict[str, list[Callable[[], None]]] = {}

    def claim(self, project_id: str) -> bool:
        """Return True for the first caller only, until the claim is released."""
        if project_id in self._claimed:
            return False
        self._claimed.add(project_id)
        return True

    def is_claimed(self, project_id: str) -> bool:
        return project_id in self._claimed

    def wait(self, project_id: str, on_release: Callable[[], None]) -> None:
        self._waiters.setdefault(project_id, []).append(on_release)

    def forget(self, project_id: str, on_release: Callable[[], None]) -> None:
        waiters = self._waiters.get(project_id, [])
        if on_release in waiters:
            waiters.remove(on_release)

    def release(self, project_id: str) -> None:
        self._claimed.discard(project_id)
        for on_release in self._waiters.pop(project_id, []):
            on_release()


def _local_id() -> str:
    return f"local-{uuid.uuid4().hex}"


def dedupe_greetings(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Drop every greeting but the earliest by ``created_at``; order is otherwise kept."""
    greetings = [m for m in messages if m.marker == GREETING_MARKER]
    if len(greetings) < 2:
        return messages
    keep = min(greetings, key=lambda m: m.created_at)
    return [m for m in messages if m.marker != GREETING_MARKER or m is keep]


class ChatSyncEngine:
    def __init__(
        self,
        store: DocumentStore,
        project: Project,
        guard: BootstrapGuard,
        mentor: Mentor,
        broker: SubscriptionBroker | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.project = project
        self.guard = guard
        self.mentor = mentor
        self.broker = broker or SubscriptionBroker(store)
        self.clock = clock or store.clock
        self.state = ChatState.EMPTY
        self.confirmed: list[ChatMessage] = []
        self.local: list[ChatMessage] = []  # pending or unsent, not yet seen in a snapshot
        self.listeners: list[MessagesHandler] = []
        self._active = False
        self._unsubscribe: Unsubscribe | None = None
        self._ready = asyncio.Event()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def collection(self) -> str:
        return messages_collection(self.project.id)

    @property
    def messages(self) -> list[ChatMessage]:
        """The displayed log: confirmed messages in server order, then local entries."""
        return dedupe_greetings(self.confirmed) + self.local

    # --- Lifecycle ---

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._unsubscribe = self.broker.watch_collection(
            self.collection, self._on_snapshot, order_by="createdAt", on_failure=self._on_watch_failed
        )

    def stop(self) -> None:
        self._active = False
        self.guard.forget(self.project.id, self._on_guard_released)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def ready(self) -> None:
        await self._ready.wait()

    # --- Snapshots ---

    def _on_snapshot(self, docs: list[dict[str, Any]]) -> None:
        if not self._active:
            return
        self.confirmed = self._parse(docs)
        self._reconcile_local()

        if self.confirmed:
            self._populated()
        elif self.state == ChatState.EMPTY:
            self.state = ChatState.BOOTSTRAPPING
            if self.guard.claim(self.project.id):
                self._spawn(self._bootstrap())
            else:
                logger.debug("Greeting for %s already claimed in this session", self.project.id)
                self.guard.wait(self.project.id, self._on_guard_released)
        self._notify()

    def _on_watch_failed(self, exc: Exception) -> None:
        # The log could not be read, which says nothing about whether it is empty
        if not self._active:
            return
        logger.warning("Message log for %s is unavailable: %s", self.project.id, exc)
        self._populated()
        self._notify()

    def _on_guard_released(self) -> None:
        if not self._active or self.state != ChatState.BOOTSTRAPPING or self.confirmed:
            return
        self._show_unsent_greeting(compose_greeting(self.project))

    def _parse(self, docs: list[dict[str, Any]]) -> list[ChatMessage]:
        messages = []
        for doc in docs:
            try:
                messages.append(ChatMessage.model_validate(doc))
            except ValidationError as e:
                logger.warning("Skipping malformed message %s: %s", doc.get("id"), e)
        return messages

    def _reconcile_local(self) -> None:
        claimed: set[str] = set()
        remaining = []
        for entry in self.local:
            match = None
            if entry.status == MessageStatus.PENDING:
                match = next(
                    (
                        m
                        for m in self.confirmed
                        if m.id not in claimed
                        and m.role == entry.role
                        and m.content == entry.content
                        and abs(m.created_at - entry.created_at) <= MATCH_WINDOW
                    ),
                    None,
                )
            if match is None:
                remaining.append(entry)
            else:
                claimed.add(match.id)
        self.local = remaining

    def _populated(self) -> None:
        if self.state != ChatState.POPULATED:
            self.state = ChatState.POPULATED
            self.guard.forget(self.project.id, self._on_guard_released)
            self._ready.set()

    def _notify(self) -> None:
        messages = self.messages
        for listener in self.listeners:
            listener(messages)

    # --- Writes ---

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _bootstrap(self) -> None:
        content = compose_greeting(self.project)
        try:
            await self.store.add(
                self.collection,
                {"role": Role.ASSISTANT.value, "content": content, "marker": GREETING_MARKER},
            )
            logger.info("Bootstrapped greeting for project %s", self.project.id)
        except StoreWriteError as e:
            logger.warning("Greeting for project %s was not saved: %s", self.project.id, e)
            # Nothing was stored, so a later view may write the greeting
            self.guard.release(self.project.id)
            if self._active:
                self._show_unsent_greeting(content)

    def _show_unsent_greeting(self, content: str) -> None:
        self.local.append(
            ChatMessage(
                id=_local_id(),
                role=Role.ASSISTANT,
                content=content,
                created_at=self.clock.now(),
                marker=GREETING_MARKER,
                status=MessageStatus.UNSENT,
            )
        )
        self._populated()
        self._notify()

    async def _append(self, role: Role, content: str) -> ChatMessage:
        entry = ChatMessage(
            id=_local_id(),
            role=role,
            content=content,
            created_at=self.clock.now(),
            status=MessageStatus.PENDING,
        )
        self.local.append(entry)
        self._notify()
        try:
            doc = await self.store.add(self.collection, {"role": role.value, "content": content})
        except StoreWriteError:
            self.local = [
                m.model_copy(update={"status": MessageStatus.UNSENT}) if m is entry else m for m in self.local
            ]
            self._notify()
            raise
        return ChatMessage.model_validate(doc)

    async def send_user_message(self, content: str) -> ChatMessage:
        """Append a user message. Raises StoreWriteError, leaving the entry flagged unsent."""
        content = content.strip()
        if not content:
            raise ValueError("Message content is empty")
        message = await self._append(Role.USER, content)
        logger.debug("User message %s appended to %s", message.id, self.project.id)
        return message

    async def request_reply(self, user_message: str) -> ChatMessage:
        history = [m for m in self.messages if m.status != MessageStatus.UNSENT]
        try:
            reply = await self.mentor.generate_reply(user_message, history, self.project)
        except Exception:
            logger.exception("Mentor reply failed for project %s", self.project.id)
            reply = APOLOGY
        return await self._append(Role.ASSISTANT, reply)

    async def send(self, content: str) -> ChatMessage:
        """Send a user message and append the mentor's reply to it."""
        await self.send_user_message(content)
        return await self.request_reply(content.strip())

    def can_generate(self) -> bool:
        return can_generate(self.project, [m for m in self.messages if m.status != MessageStatus.UNSENT])
