"""
ScoutNet project API (https://scoutnet.se): participants of an event and their form answers.
Answers live in a `questions` map keyed by numeric question id; which id means what is
deployment configuration (the question map), not code.
"""
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import httpx

from linked_roles.config import SCOUTNET_API_BASE, SCOUTNET_CACHE_SECONDS
from linked_roles.retry import raise_for_provider, send_with_retry

logger = logging.getLogger(__name__)

PROVIDER = "scoutnet"

FLAG_FIELDS = ("is_leader", "is_ist")
NUMBER_FIELDS = ("troop", "patrol")

# WSJ 2027 registration form
DEFAULT_QUESTION_MAP = [
    {"field": "is_leader", "question_id": "82553", "true_answer": "55897"},
    {"field": "is_ist", "question_id": "82555", "true_answer": "55897"},
    {"field": "troop", "question_id": "82552"},
    {"field": "patrol", "question_id": "82554"},
]


@dataclass(frozen=True)
class QuestionRule:
    field: str
    question_id: str
    # Answer id meaning "yes" for flag fields; None for number fields
    true_answer: str | None = None


def load_question_map(rows: list[dict] | None = None) -> list[QuestionRule]:
    """Validate question map rows: known fields only, one rule per field, flags need a true_answer."""
    rows = DEFAULT_QUESTION_MAP if rows is None else rows
    rules: list[QuestionRule] = []
    seen: set[str] = set()
    for row in rows:
        field = row.get("field")
        question_id = row.get("question_id")
        if field not in FLAG_FIELDS + NUMBER_FIELDS:
            raise ValueError(f"Unknown question map field: {field!r}")
        if field in seen:
            raise ValueError(f"Duplicate question map field: {field!r}")
        if not question_id:
            raise ValueError(f"Question map field {field!r} has no question_id")
        true_answer = row.get("true_answer")
        if field in FLAG_FIELDS and not true_answer:
            raise ValueError(f"Question map flag {field!r} needs a true_answer")
        seen.add(field)
        rules.append(
            QuestionRule(
                field=field,
                question_id=str(question_id),
                true_answer=str(true_answer) if true_answer is not None else None,
            )
        )
    return rules


def question_map_from_config(inline: str | None, path: str | None) -> list[QuestionRule]:
    """Inline JSON wins over a file; neither set = defaults."""
    if inline:
        return load_question_map(json.loads(inline))
    if path:
        return load_question_map(json.loads(Path(path).read_text(encoding="utf-8")))
    return load_question_map()


@dataclass(frozen=True)
class ParticipantProfile:
    is_participant: bool = False
    is_leader: bool = False
    is_ist: bool = False
    troop: int | None = None
    patrol: int | None = None


def _as_number(answer: Any) -> int:
    if answer in (None, ""):
        return 0
    try:
        return int(str(answer).strip())
    except ValueError:
        logger.warning("Non-numeric ScoutNet answer %r; using 0", answer)
        return 0


def derive_profile(participant: dict | None, question_map: list[QuestionRule]) -> ParticipantProfile:
    """Participant record -> profile. Missing participant = all false/None."""
    if participant is None:
        return ParticipantProfile()
    questions = participant.get("questions")
    values: dict[str, Any] = {"is_participant": participant.get("cancelled_date") is None}
    for rule in question_map:
        if rule.field in FLAG_FIELDS:
            values[rule.field] = bool(questions) and questions.get(rule.question_id) == rule.true_answer
        else:
            values[rule.field] = _as_number(questions.get(rule.question_id)) if questions else None
    return ParticipantProfile(**values)


class ScoutNetClient:
    """API-key authenticated; responses cached in-process for cache_seconds."""

    def __init__(
        self,
        *,
        event_id: str,
        participants_key: str,
        http: httpx.Client,
        api_base: str = SCOUTNET_API_BASE,
        cache_seconds: int = SCOUTNET_CACHE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.event_id = event_id
        self.participants_key = participants_key
        self.api_base = api_base.rstrip("/")
        self.cache_seconds = cache_seconds
        self._http = http
        self._sleep = sleep
        self._clock = clock
        self._cache: dict[str, tuple[float, Any]] = {}

    def _cached(self, key: str) -> Any | None:
        hit = self._cache.get(key)
        if hit is None:
            return None
        stored_at, value = hit
        if self._clock() - stored_at > self.cache_seconds:
            del self._cache[key]
            return None
        return value

    def _remember(self, key: str, value: Any) -> Any:
        self._cache[key] = (self._clock(), value)
        return value

    def _get(self, path: str, params: dict, action: str) -> dict:
        response = send_with_retry(
            self._http,
            "GET",
            f"{self.api_base}{path}",
            sleep=self._sleep,
            params=params,
            headers={"Accept": "application/json"},
        )
        return raise_for_provider(response, PROVIDER, action).json()

    def get_participants(self) -> dict[str, dict]:
        """
        All participants of the event keyed by member number, e.g.
        {"123": {"member_no": 123, "cancelled_date": null, "questions": {"82553": "55897", ...}}}
        """
        cached = self._cached("participants")
        if cached is not None:
            return cached
        if not self.participants_key:
            raise RuntimeError("SCOUTNET_PARTICIPANTS_APIKEY is not configured")
        data = self._get(
            "/project/get/participants",
            {"id": self.event_id, "key": self.participants_key},
            "fetching ScoutNet participants",
        )
        # ScoutNet returns [] instead of {} for an event without participants
        return self._remember("participants", data.get("participants") or {})

    def get_participant(self, member_no: str | int) -> dict | None:
        """Participant record, or None if the member is not registered for the event."""
        return self.get_participants().get(str(member_no))
