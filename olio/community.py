"""Community feed backed by a remote record store.

Shared workouts, their exercises and the chat messages attached to them
live in three Supabase tables.  Remote rows are weakly typed, so every
record is turned into a value object by a decoder that never fails: text
that is missing or not a string becomes a placeholder and numbers that are
missing or not numeric become ``0``.

Feeds fetch on a worker thread and publish their results on the Kivy main
thread.  Each feed runs its fetch at most once until :meth:`Feed.reset` is
called.
"""

from __future__ import annotations

import logging
import math
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable

import httpx
from kivy.clock import mainthread
from kivy.event import EventDispatcher
from kivy.properties import ListProperty, ObjectProperty, OptionProperty
from postgrest.exceptions import APIError
from supabase import Client, create_client

from . import settings
from .data_controller import ValidationError
from .queries import exercises_in_order, sets_for

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from .data_controller import DataController
    from .models import Workout

# Remote record types and the tables that hold them
RECORD_TABLES = {
    "Workout": "shared_workouts",
    "Exercise": "shared_exercises",
    "Message": "messages",
}

MAX_RESULTS = 50

MIN_MESSAGE_LENGTH = 3

SERVICE_NAME = "the community server"


# ----------------------------------------------------------------------
# Record store
# ----------------------------------------------------------------------
class RecordStore:
    """Thin wrapper over a Supabase client speaking in record types."""

    def __init__(self, client: Client) -> None:
        self.client = client

    @staticmethod
    def _table_name(record_type: str) -> str:
        try:
            return RECORD_TABLES[record_type]
        except KeyError:
            raise ValueError(f"Unknown record type: {record_type}") from None

    def query(
        self,
        record_type: str,
        *,
        equals: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        fields: Iterable[str] | None = None,
        limit: int = MAX_RESULTS,
    ) -> list[dict]:
        """Return at most ``limit`` records (never more than 50)."""

        columns = ",".join(fields) if fields else "*"
        request = self.client.table(self._table_name(record_type)).select(columns)
        for column, value in (equals or {}).items():
            request = request.eq(column, value)
        if order_by:
            request = request.order(order_by, desc=not ascending)
        request = request.limit(max(0, min(int(limit), MAX_RESULTS)))
        response = request.execute()
        return response.data or []

    def save(self, record_type: str, records: list[dict]) -> list[dict]:
        """Insert or update ``records`` by id and return what the server stored."""

        if not records:
            return []
        response = self.client.table(self._table_name(record_type)).upsert(records).execute()
        return response.data or []

    def delete(self, record_type: str, ids: list[str]) -> None:
        if not ids:
            return
        self.client.table(self._table_name(record_type)).delete().in_("id", ids).execute()


def get_record_store() -> RecordStore | None:
    """Build a :class:`RecordStore` from the community settings.

    Returns ``None`` when the server URL or key is not configured, or when the
    client cannot be created.
    """

    url = settings.get_value("community_url")
    key = settings.get_value("community_key")
    if not url or not key:
        logging.warning("Community server not configured. Sharing will be disabled.")
        return None
    try:
        return RecordStore(create_client(url, key))
    except Exception:
        logging.exception("Failed to create community client")
        return None


# ----------------------------------------------------------------------
# Value types and decoders
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class SharedWorkout:
    id: str
    name: str
    owner: str


@dataclass(frozen=True)
class SharedExercise:
    id: str
    name: str
    category: str
    muscle_group: str
    placement: int
    set_count: int
    target_reps: int
    target_weight: float


@dataclass(frozen=True)
class ChatMessage:
    id: str
    sender: str
    text: str
    date: datetime | None


def _record(data: Any) -> dict:
    return data if isinstance(data, dict) else {}


def _text(record: dict, key: str, placeholder: str) -> str:
    value = record.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return placeholder


def _identifier(record: dict) -> str:
    value = record.get("id")
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return str(value)
    return ""


def _number(record: dict, key: str, kind: Callable[[Any], Any] = int):
    """Return ``record[key]`` as ``kind``.

    Strings, bools, NaN and infinities are not numbers and decode as ``0``.
    """

    value = record.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return kind(0)
    try:
        if not math.isfinite(value):
            return kind(0)
        return kind(value)
    except (OverflowError, ValueError):
        return kind(0)


def _date(record: dict, key: str) -> datetime | None:
    value = record.get(key)
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def decode_shared_workout(data: Any) -> SharedWorkout:
    record = _record(data)
    return SharedWorkout(
        id=_identifier(record),
        name=_text(record, "workout_name", "No name"),
        owner=_text(record, "owner", "Unknown owner"),
    )


def decode_shared_exercise(data: Any) -> SharedExercise:
    record = _record(data)
    return SharedExercise(
        id=_identifier(record),
        name=_text(record, "exercise_name", "Unknown exercise"),
        category=_text(record, "category", "Unknown category"),
        muscle_group=_text(record, "muscle_group", "Unknown muscle group"),
        placement=_number(record, "exercise_placement"),
        set_count=_number(record, "set_count"),
        target_reps=_number(record, "target_reps"),
        target_weight=_number(record, "target_weight", float),
    )


def decode_chat_message(data: Any) -> ChatMessage:
    record = _record(data)
    return ChatMessage(
        id=_identifier(record),
        sender=_text(record, "sender", "Unknown user"),
        text=_text(record, "text", ""),
        date=_date(record, "created_at"),
    )


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------
class CloudErrorKind(Enum):
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNKNOWN = "unknown"


_MESSAGES = {
    CloudErrorKind.NETWORK: (
        f"There was a problem communicating with {SERVICE_NAME}; "
        "please check your network connection and try again."
    ),
    CloudErrorKind.AUTHENTICATION: (
        f"There was a problem with your {SERVICE_NAME} account; "
        "please check you are logged in."
    ),
    CloudErrorKind.RATE_LIMITED: (
        f"You've hit {SERVICE_NAME}'s rate limit; "
        "please wait a moment then try again."
    ),
    CloudErrorKind.QUOTA_EXCEEDED: (
        f"You've exceeded your {SERVICE_NAME} quota; "
        "please clear up some space and try again."
    ),
}

_AUTH_STATUS = {401, 403}
_RATE_LIMIT_STATUS = {429}
_QUOTA_STATUS = {413, 507}
_UNAVAILABLE_STATUS = {502, 503, 504}

# PostgREST / PostgreSQL error codes
_AUTH_CODES = {"PGRST301", "PGRST302", "42501", "28000", "28P01"}
_RATE_LIMIT_CODES = {"53300"}
_QUOTA_CODES = {"53100", "53200", "54000"}


class CloudError(Exception):
    """A remote failure with a message that can be shown to the user."""

    def __init__(self, kind: CloudErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @classmethod
    def of_kind(cls, kind: CloudErrorKind, detail: object = "") -> "CloudError":
        message = _MESSAGES.get(kind) or f"An unknown error occurred: {detail}"
        return cls(kind, message)


def _kind_for_status(status: int) -> CloudErrorKind:
    if status in _UNAVAILABLE_STATUS:
        return CloudErrorKind.NETWORK
    if status in _AUTH_STATUS:
        return CloudErrorKind.AUTHENTICATION
    if status in _RATE_LIMIT_STATUS:
        return CloudErrorKind.RATE_LIMITED
    if status in _QUOTA_STATUS:
        return CloudErrorKind.QUOTA_EXCEEDED
    return CloudErrorKind.UNKNOWN


def cloud_error_from(exc: BaseException) -> CloudError:
    """Categorise ``exc`` into a :class:`CloudError`."""

    if isinstance(exc, CloudError):
        return exc
    if isinstance(exc, httpx.TransportError):
        kind = CloudErrorKind.NETWORK
    elif isinstance(exc, httpx.HTTPStatusError):
        kind = _kind_for_status(exc.response.status_code)
    elif isinstance(exc, APIError):
        code = str(exc.code or "")
        if code in _AUTH_CODES:
            kind = CloudErrorKind.AUTHENTICATION
        elif code in _RATE_LIMIT_CODES:
            kind = CloudErrorKind.RATE_LIMITED
        elif code in _QUOTA_CODES:
            kind = CloudErrorKind.QUOTA_EXCEEDED
        elif code.isdigit():
            kind = _kind_for_status(int(code))
        else:
            kind = CloudErrorKind.UNKNOWN
    else:
        kind = CloudErrorKind.UNKNOWN
    return CloudError.of_kind(kind, exc)


# ----------------------------------------------------------------------
# Feeds
# ----------------------------------------------------------------------
class LoadState(Enum):
    INACTIVE = "inactive"
    LOADING = "loading"
    SUCCESS = "success"
    NO_RESULTS = "no_results"
    ERROR = "error"


class Feed(EventDispatcher):
    """Base class of the remote feeds.

    ``state`` follows ``INACTIVE -> LOADING -> SUCCESS | NO_RESULTS | ERROR``.
    ``items`` holds the decoded records of the last successful fetch and
    ``error`` the :class:`CloudError` of the last failed one.
    """

    state = OptionProperty(LoadState.INACTIVE, options=list(LoadState))
    items = ListProperty([])
    error = ObjectProperty(None, allownone=True)

    def __init__(self, store: RecordStore | None, background: bool = True, **kwargs) -> None:
        super().__init__(**kwargs)
        self.store = store
        self.background = background

    # Subclasses provide the query and the decoder
    def _query(self) -> list[dict]:
        raise NotImplementedError

    def _decode(self, record: Any):
        raise NotImplementedError

    def fetch(self) -> bool:
        """Start a fetch unless one already ran; returns whether it started."""

        if self.state is not LoadState.INACTIVE:
            return False
        self.state = LoadState.LOADING
        self.error = None
        if self.background:
            threading.Thread(target=self._load, args=(self._publish_on_main_thread,), daemon=True).start()
        else:
            self._load(self._publish)
        return True

    def reset(self) -> None:
        self.state = LoadState.INACTIVE

    def _load(self, publish) -> None:
        if self.store is None:
            publish([], CloudError.of_kind(CloudErrorKind.AUTHENTICATION))
            return
        try:
            items = [self._decode(record) for record in self._query()]
        except Exception as exc:
            logging.exception("Failed to fetch %s", type(self).__name__)
            publish([], cloud_error_from(exc))
            return
        publish(items, None)

    def _publish(self, items: list, error: CloudError | None) -> None:
        if error is not None:
            self.error = error
            self.state = LoadState.ERROR
            return
        self.items = items
        self.state = LoadState.SUCCESS if items else LoadState.NO_RESULTS

    @mainthread
    def _publish_on_main_thread(self, items: list, error: CloudError | None) -> None:
        self._publish(items, error)


class SharedWorkoutsFeed(Feed):
    """The newest shared workouts."""

    def _query(self) -> list[dict]:
        return self.store.query(
            "Workout",
            order_by="created_at",
            ascending=False,
            fields=["id", "workout_name", "owner"],
        )

    def _decode(self, record: Any) -> SharedWorkout:
        return decode_shared_workout(record)


class SharedExercisesFeed(Feed):
    """Exercises of one shared workout in placement order."""

    def __init__(self, store: RecordStore | None, workout_id: str, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self.workout_id = workout_id

    def _query(self) -> list[dict]:
        return self.store.query(
            "Exercise",
            equals={"workout_id": self.workout_id},
            order_by="exercise_placement",
        )

    def _decode(self, record: Any) -> SharedExercise:
        return decode_shared_exercise(record)


class ChatMessagesFeed(Feed):
    """Messages about one shared workout, oldest first."""

    def __init__(self, store: RecordStore | None, workout_id: str, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self.workout_id = workout_id

    def _query(self) -> list[dict]:
        return self.store.query(
            "Message",
            equals={"workout_id": self.workout_id},
            order_by="created_at",
        )

    def _decode(self, record: Any) -> ChatMessage:
        return decode_chat_message(record)


# ----------------------------------------------------------------------
# Sharing
# ----------------------------------------------------------------------
def prepare_cloud_records(
    controller: "DataController", workout: "Workout", owner: str
) -> tuple[dict, list[dict]]:
    """Return the workout record and one record per exercise of ``workout``.

    Each exercise record carries its set count and the highest reps and
    weight among its sets in the workout.
    """

    workout_record = {
        "id": workout.id,
        "workout_name": workout.workout_name,
        "owner": owner,
    }
    exercise_records = []
    for position, exercise in enumerate(exercises_in_order(workout)):
        exercise_sets = sets_for(exercise, workout)
        placement = controller.placement_index(exercise, workout)
        exercise_records.append(
            {
                "id": f"{workout.id}-{exercise.id}",
                "workout_id": workout.id,
                "exercise_name": exercise.exercise_name,
                "category": exercise.category.label,
                "muscle_group": exercise.muscle_group.label,
                "exercise_placement": position if placement is None else placement,
                "set_count": len(exercise_sets),
                "target_reps": max((s.reps or 0 for s in exercise_sets), default=0),
                "target_weight": max((s.weight or 0.0 for s in exercise_sets), default=0.0),
            }
        )
    return workout_record, exercise_records


def upload_workout(
    store: RecordStore, controller: "DataController", workout: "Workout", owner: str
) -> None:
    """Share ``workout`` on the community server.

    Raises :class:`CloudError` when the upload fails.
    """

    workout_record, exercise_records = prepare_cloud_records(controller, workout, owner)
    try:
        store.save("Workout", [workout_record])
        store.save("Exercise", exercise_records)
    except (APIError, httpx.HTTPError) as exc:
        logging.exception("Failed to upload workout %s", workout.id)
        raise cloud_error_from(exc) from exc
    logging.info("Uploaded workout %s with %d exercises", workout.id, len(exercise_records))


def remove_workout_from_cloud(store: RecordStore, workout_id: str) -> None:
    """Delete a shared workout and its exercises from the community server."""

    try:
        exercise_ids = [
            record.get("id")
            for record in store.query("Exercise", equals={"workout_id": workout_id}, fields=["id"])
        ]
        store.delete("Exercise", [i for i in exercise_ids if i])
        store.delete("Workout", [workout_id])
    except (APIError, httpx.HTTPError) as exc:
        logging.exception("Failed to remove workout %s", workout_id)
        raise cloud_error_from(exc) from exc
    logging.info("Removed workout %s from the community server", workout_id)


def send_chat_message(
    store: RecordStore, workout_id: str, text: str, username: str | None
) -> ChatMessage:
    """Post ``text`` to the chat of a shared workout.

    The trimmed text must be at least three characters long and a username
    is required; otherwise :class:`ValidationError` is raised and nothing is
    sent.
    """

    text = text.strip()
    if len(text) < MIN_MESSAGE_LENGTH:
        raise ValidationError("Messages must be at least three characters long.")
    if not username or not username.strip():
        raise ValidationError("Please choose a username before sending messages.")

    record = {
        "id": uuid.uuid4().hex,
        "workout_id": workout_id,
        "sender": username.strip(),
        "text": text,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        stored = store.save("Message", [record])
    except (APIError, httpx.HTTPError) as exc:
        logging.exception("Failed to send message for workout %s", workout_id)
        raise cloud_error_from(exc) from exc
    return decode_chat_message(stored[0] if stored else record)
