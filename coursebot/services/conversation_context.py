"""
Per-user conversation state persisted through the key-value store.

State lives under ``conversation:<user_id>`` with a sliding TTL that is
refreshed on every read and write. When the store is unreachable the turn
continues on a default in-memory state.
"""
import asyncio
import json
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar, Union

from coursebot.core.config import settings
from coursebot.core.exceptions import ContextUnavailable
from coursebot.services.kv_store import KeyValueStore, create_kv_store

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "conversation:"


class ConversationFlow(str, Enum):
    """Multi-step flows a user can be in the middle of"""

    course_creation = "course_creation"
    course_modification = "course_modification"
    content_recording = "content_recording"
    reminder_setup = "reminder_setup"


# Flow entered after a successful task, awaiting confirmation or changes
ACTION_FLOWS = {
    "record_course": ConversationFlow.course_creation,
    "create_recurring_course": ConversationFlow.course_creation,
    "modify_course": ConversationFlow.course_modification,
    "modify_recurring_course": ConversationFlow.course_modification,
    "record_lesson_content": ConversationFlow.content_recording,
    "record_homework": ConversationFlow.content_recording,
    "upload_class_photo": ConversationFlow.content_recording,
    "modify_course_content": ConversationFlow.content_recording,
    "set_reminder": ConversationFlow.reminder_setup,
}

# Slot key -> mentioned_entities bucket
ENTITY_BUCKETS = {
    "student_name": "students",
    "course_name": "courses",
    "date_phrase": "dates",
    "date": "dates",
    "time_phrase": "times",
    "time": "times",
}


def _empty_mentions() -> Dict[str, List[str]]:
    return {"students": [], "courses": [], "dates": [], "times": []}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConversationState:
    """Dialogue state for one user"""

    current_flow: Optional[ConversationFlow] = None
    expecting_input: List[str] = field(default_factory=list)
    last_actions: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    pending_data: Dict[str, Any] = field(default_factory=dict)
    history: List[Dict[str, Any]] = field(default_factory=list)
    mentioned_entities: Dict[str, List[str]] = field(default_factory=_empty_mentions)
    last_activity: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "current_flow": self.current_flow.value if self.current_flow else None,
            "expecting_input": list(self.expecting_input),
            "last_actions": dict(self.last_actions),
            "pending_data": dict(self.pending_data),
            "history": list(self.history),
            "mentioned_entities": {k: list(v) for k, v in self.mentioned_entities.items()},
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationState":
        """Create from dictionary; tolerates missing fields and unknown flows"""
        flow = data.get("current_flow")
        try:
            current_flow = ConversationFlow(flow) if flow else None
        except ValueError:
            logger.warning(f"Ignoring unknown conversation flow '{flow}'")
            current_flow = None

        mentions = _empty_mentions()
        for bucket, values in (data.get("mentioned_entities") or {}).items():
            mentions[bucket] = list(values or [])

        last_activity = data.get("last_activity")
        return cls(
            current_flow=current_flow,
            expecting_input=list(data.get("expecting_input") or []),
            last_actions=dict(data.get("last_actions") or {}),
            pending_data=dict(data.get("pending_data") or {}),
            history=list(data.get("history") or []),
            mentioned_entities=mentions,
            last_activity=datetime.fromisoformat(last_activity) if last_activity else None,
        )


class ConversationContextStore:
    """Shapes, bounds and persists ConversationState per user"""

    def __init__(
        self,
        kv_store: KeyValueStore,
        ttl_seconds: Optional[int] = None,
        history_limit: Optional[int] = None,
        entity_limit: Optional[int] = None,
        use_user_locks: bool = True,
    ):
        self.kv_store = kv_store
        self.ttl_seconds = ttl_seconds or settings.context_ttl_seconds
        self.history_limit = history_limit or settings.context_history_limit
        self.entity_limit = entity_limit or settings.mentioned_entity_limit
        self.use_user_locks = use_user_locks
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

        logger.info(
            f"Conversation context store initialized - TTL: {self.ttl_seconds}s, "
            f"history limit: {self.history_limit}, backend: {type(kv_store).__name__}"
        )

    @staticmethod
    def key_for(user_id: str) -> str:
        return f"{KEY_PREFIX}{user_id}"

    # ==================== persistence ====================

    async def _load(self, user_id: str) -> Optional[ConversationState]:
        """Stored state, or None when absent, unreadable or unreachable"""
        try:
            raw = await self.kv_store.get(self.key_for(user_id))
        except ContextUnavailable as e:
            logger.warning(f"Context store unavailable, using default state for {user_id}: {e}")
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            return ConversationState.from_dict(data)
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Discarding corrupt conversation state for {user_id}: {e}")
            return None

    async def _save(self, user_id: str, state: ConversationState):
        try:
            await self.kv_store.set(
                self.key_for(user_id),
                json.dumps(state.to_dict(), ensure_ascii=False, default=str),
                self.ttl_seconds,
            )
        except ContextUnavailable as e:
            logger.warning(f"Context store unavailable, state for {user_id} not persisted: {e}")

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def _serialized(self, user_id: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a read-then-write of one user's state under that user's lock"""
        if not self.use_user_locks:
            return await operation()
        async with self._lock_for(user_id):
            return await operation()

    async def _update(self, user_id: str, mutate: Callable[[ConversationState], T]) -> T:
        return await self._serialized(user_id, lambda: self._read_modify_write(user_id, mutate))

    async def _read_modify_write(self, user_id: str, mutate: Callable[[ConversationState], T]) -> T:
        state = await self._load(user_id) or ConversationState()
        value = mutate(state)
        state.last_activity = _now()
        await self._save(user_id, state)
        return value

    # ==================== reads ====================

    async def get_context(self, user_id: str) -> ConversationState:
        """Current state, created on first access; refreshes the TTL"""
        return await self._serialized(user_id, lambda: self._load_and_refresh(user_id))

    async def _load_and_refresh(self, user_id: str) -> ConversationState:
        state = await self._load(user_id)
        if state is None:
            state = ConversationState(last_activity=_now())
            logger.info(f"Created new conversation context for user {user_id}")
        await self._save(user_id, state)
        return state

    async def is_expecting_input(self, user_id: str, category: str) -> bool:
        state = await self.get_context(user_id)
        return category in state.expecting_input

    async def get_last_action(self, user_id: str, action: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Latest record for an action, or the most recent action of any kind"""
        state = await self.get_context(user_id)
        if action is not None:
            return state.last_actions.get(action)
        if not state.last_actions:
            return None
        return list(state.last_actions.values())[-1]

    # ==================== writes ====================

    async def record_user_message(
        self,
        user_id: str,
        text: str,
        intent: Optional[str] = None,
        slots: Optional[Dict[str, Any]] = None,
    ) -> ConversationState:
        """Append a user turn and remember the entities it mentioned"""
        slots = dict(slots or {})

        def mutate(state: ConversationState) -> ConversationState:
            self._append_history(
                state,
                {"role": "user", "text": text, "intent": intent, "slots": slots, "timestamp": _now().isoformat()},
            )
            self._remember_entities(state, slots)
            return state

        return await self._update(user_id, mutate)

    async def record_bot_response(
        self, user_id: str, text: str, meta: Optional[Dict[str, Any]] = None
    ) -> ConversationState:
        def mutate(state: ConversationState) -> ConversationState:
            self._append_history(
                state, {"role": "bot", "text": text, "meta": dict(meta or {}), "timestamp": _now().isoformat()}
            )
            return state

        return await self._update(user_id, mutate)

    async def record_task_result(
        self,
        user_id: str,
        action: str,
        task_input: Optional[Dict[str, Any]] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> ConversationState:
        """
        Record the outcome of an executed task.

        The record is kept in last_actions for undo. A successful task opens
        the matching flow and waits for confirmation or modification.
        """
        task_input = dict(task_input or {})
        result = dict(result or {})
        success = bool(result.get("success"))

        def mutate(state: ConversationState) -> ConversationState:
            timestamp = _now().isoformat()
            # Insertion order of last_actions is recency order
            state.last_actions.pop(action, None)
            state.last_actions[action] = {
                "action": action,
                "input": task_input,
                "result": result,
                "timestamp": timestamp,
            }
            self._append_history(
                state, {"role": "action", "action": action, "success": success, "timestamp": timestamp}
            )
            self._remember_entities(state, task_input)
            if success:
                state.expecting_input = ["confirmation", "modification"]
                state.current_flow = ACTION_FLOWS.get(action)
            return state

        return await self._update(user_id, mutate)

    async def set_expected_input(
        self,
        user_id: str,
        flow: Union[ConversationFlow, str, None],
        categories: Iterable[str],
        pending_data: Optional[Dict[str, Any]] = None,
    ) -> ConversationState:
        """
        Mark the user as in the middle of a flow and awaiting input.

        Raises:
            ValueError: flow is not a ConversationFlow value
        """
        current_flow = ConversationFlow(flow) if flow else None
        ordered = list(dict.fromkeys(categories))

        def mutate(state: ConversationState) -> ConversationState:
            state.current_flow = current_flow
            state.expecting_input = ordered
            if pending_data is not None:
                state.pending_data = dict(pending_data)
            return state

        return await self._update(user_id, mutate)

    async def clear_expected_input(self, user_id: str) -> ConversationState:
        """Leave the current flow; pending_data is kept for follow-up turns"""

        def mutate(state: ConversationState) -> ConversationState:
            state.expecting_input = []
            state.current_flow = None
            return state

        return await self._update(user_id, mutate)

    async def clear_context(self, user_id: str) -> bool:
        """Delete all state for one user"""
        try:
            await self.kv_store.delete(self.key_for(user_id))
        except ContextUnavailable as e:
            logger.warning(f"Context store unavailable, could not clear {user_id}: {e}")
            return False
        logger.info(f"Cleared context for user {user_id}")
        return True

    async def health_check(self) -> Dict[str, Any]:
        healthy = await self.kv_store.ping()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "backend": type(self.kv_store).__name__,
            "ttl_seconds": self.ttl_seconds,
        }

    # ==================== helpers ====================

    def _append_history(self, state: ConversationState, entry: Dict[str, Any]):
        state.history.append(entry)
        if len(state.history) > self.history_limit:
            state.history = state.history[-self.history_limit :]

    def _remember_entities(self, state: ConversationState, slots: Dict[str, Any]):
        for key, bucket in ENTITY_BUCKETS.items():
            value = slots.get(key)
            if isinstance(value, str) and value.strip():
                self._remember(state.mentioned_entities.setdefault(bucket, []), value.strip())

    def _remember(self, values: List[str], value: str):
        """Recency-ordered set: re-mention moves the value to the newest end"""
        if value in values:
            values.remove(value)
        values.append(value)
        del values[: max(0, len(values) - self.entity_limit)]


_context_store: Optional[ConversationContextStore] = None


def get_conversation_context_store() -> ConversationContextStore:
    """Get or create the shared store backed by settings.kv_backend"""
    global _context_store
    if _context_store is None:
        _context_store = ConversationContextStore(create_kv_store())
    return _context_store
