from __future__ import annotations

import base64
import json
import logging
import secrets
import threading
from contextlib import AbstractContextManager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Protocol

import redis
from cachetools import TTLCache

from relohire.core.config import settings
from relohire.core.errors import NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)

SEVERITIES = ("low", "medium", "high", "critical")
TERMINATION_TYPE = "session_terminated"
MAX_VIOLATIONS_REASON = "Maximum violations exceeded"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RequestContext:
    user_agent: str = ""
    accept_language: str = ""
    accept_encoding: str = ""
    ip_address: str = "unknown"

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        headers = request.headers
        client = request.client
        return cls(
            user_agent=headers.get("user-agent", ""),
            accept_language=headers.get("accept-language", ""),
            accept_encoding=headers.get("accept-encoding", ""),
            ip_address=(client.host if client else None) or "unknown",
        )

    @property
    def fingerprint(self) -> str:
        raw = f"{self.user_agent}{self.accept_language}{self.accept_encoding}"
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")


@dataclass
class ExamSession:
    session_id: str
    user_id: int
    exam_id: int
    started_at: str
    browser_fingerprint: str
    ip_address: str
    user_agent: str
    question_ids: list[int] = field(default_factory=list)
    is_active: bool = True
    violations: list[dict[str, Any]] = field(default_factory=list)
    ended_at: str | None = None
    termination_reason: str | None = None

    @property
    def started(self) -> datetime:
        return datetime.fromisoformat(self.started_at)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExamSession":
        return cls(**data)


def violation_counts(session: ExamSession) -> dict[str, int]:
    counts = {s: 0 for s in SEVERITIES}
    for v in session.violations:
        if v.get("type") == TERMINATION_TYPE:
            continue
        severity = v.get("severity")
        if severity in counts:
            counts[severity] += 1
    return counts


# -------------------------
# Session stores
# -------------------------
class SessionStore(Protocol):
    def load(self, session_id: str) -> dict[str, Any] | None:
        ...

    def save(self, session_id: str, data: dict[str, Any], ttl_seconds: int) -> None:
        ...

    def delete(self, session_id: str) -> None:
        ...

    def session_ids(self) -> Iterator[str]:
        ...

    def lock(self, session_id: str) -> AbstractContextManager:
        ...


class InMemorySessionStore:
    """
    Single-process store. Entries are copied in and out as JSON so callers
    never share mutable state with the cache.
    """

    def __init__(self, ttl_seconds: int, maxsize: int = 10_000) -> None:
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=max(1, ttl_seconds))
        self._lock = threading.RLock()

    def load(self, session_id: str) -> dict[str, Any] | None:
        with self._lock:
            raw = self._cache.get(session_id)
        return json.loads(raw) if raw is not None else None

    def save(self, session_id: str, data: dict[str, Any], ttl_seconds: int) -> None:
        with self._lock:
            self._cache[session_id] = json.dumps(data)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._cache.pop(session_id, None)

    def session_ids(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._cache.keys()))

    def lock(self, session_id: str) -> AbstractContextManager:
        return self._lock


class RedisSessionStore:
    """Shared store so any instance can validate or terminate a session."""

    KEY_PREFIX = "exam_session:"

    def __init__(self, client: redis.Redis, *, lock_timeout: int = 10) -> None:
        self._client = client
        self._lock_timeout = lock_timeout

    def _key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    def load(self, session_id: str) -> dict[str, Any] | None:
        raw = self._client.get(self._key(session_id))
        return json.loads(raw) if raw else None

    def save(self, session_id: str, data: dict[str, Any], ttl_seconds: int) -> None:
        self._client.setex(self._key(session_id), max(1, int(ttl_seconds)), json.dumps(data))

    def delete(self, session_id: str) -> None:
        self._client.delete(self._key(session_id))

    def session_ids(self) -> Iterator[str]:
        for key in self._client.scan_iter(match=f"{self.KEY_PREFIX}*"):
            k = key.decode() if isinstance(key, bytes) else key
            yield k[len(self.KEY_PREFIX):]

    def lock(self, session_id: str) -> AbstractContextManager:
        return self._client.lock(f"{self._key(session_id)}:lock", timeout=self._lock_timeout)


# -------------------------
# Manager
# -------------------------
class ExamSecurityManager:
    """
    Tracks proctoring violations per exam session.

    A session is active until a severity count reaches its ceiling or it is
    terminated explicitly; termination is one-way.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        thresholds: dict[str, int] | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self.store = store
        self.thresholds = dict(thresholds or settings.exam_violation_thresholds)
        self.ttl_seconds = int(ttl_seconds or settings.EXAM_SESSION_TTL_SECONDS)

    def _remaining_ttl(self, session: ExamSession) -> int:
        elapsed = (_now() - session.started).total_seconds()
        return max(1, int(self.ttl_seconds - elapsed))

    def _is_expired(self, session: ExamSession) -> bool:
        return (_now() - session.started).total_seconds() > self.ttl_seconds

    def _save(self, session: ExamSession) -> None:
        self.store.save(session.session_id, session.to_dict(), self._remaining_ttl(session))

    def get_session(self, session_id: str) -> ExamSession | None:
        if not session_id:
            return None
        data = self.store.load(session_id)
        if data is None:
            return None
        session = ExamSession.from_dict(data)
        if self._is_expired(session):
            self.store.delete(session_id)
            return None
        return session

    def initialize_session(
        self,
        user_id: int,
        exam_id: int,
        context: RequestContext,
        question_ids: Iterable[int] = (),
    ) -> str:
        session_id = secrets.token_urlsafe(32)
        session = ExamSession(
            session_id=session_id,
            user_id=user_id,
            exam_id=exam_id,
            started_at=_now().isoformat(),
            browser_fingerprint=context.fingerprint,
            ip_address=context.ip_address,
            user_agent=context.user_agent or "unknown",
            question_ids=[int(q) for q in question_ids],
        )
        self._save(session)
        logger.info("Exam session started: user=%s exam=%s", user_id, exam_id)
        return session_id

    def record_violation(self, session_id: str, violation_type: str, severity: str, description: str) -> bool:
        """
        Returns True when the session is (now or already) terminated.
        """
        normalized = (severity or "").strip().lower()
        if normalized not in self.thresholds:
            raise ValidationFailedError(
                f"Unknown severity {severity!r}",
                details={"allowed": list(SEVERITIES)},
            )

        with self.store.lock(session_id):
            session = self.get_session(session_id)
            if session is None:
                raise NotFoundError("Exam session not found")
            if not session.is_active:
                return True

            session.violations.append(
                {
                    "type": violation_type,
                    "severity": normalized,
                    "description": description,
                    "timestamp": _now().isoformat(),
                }
            )
            counts = violation_counts(session)
            exceeded = [s for s, limit in self.thresholds.items() if counts.get(s, 0) >= limit]
            if exceeded:
                self._close(session, MAX_VIOLATIONS_REASON)
            self._save(session)

        if exceeded:
            logger.warning(
                "Exam session for user %s terminated: %s threshold reached", session.user_id, ",".join(exceeded)
            )
            return True
        logger.info("Exam violation recorded: user=%s type=%s severity=%s", session.user_id, violation_type, normalized)
        return False

    def _close(self, session: ExamSession, reason: str) -> None:
        session.is_active = False
        session.ended_at = _now().isoformat()
        session.termination_reason = reason
        session.violations.append(
            {
                "type": TERMINATION_TYPE,
                "severity": "critical",
                "description": reason,
                "timestamp": session.ended_at,
            }
        )

    def terminate_session(self, session_id: str, reason: str) -> None:
        with self.store.lock(session_id):
            session = self.get_session(session_id)
            if session is None or not session.is_active:
                return
            self._close(session, reason)
            self._save(session)
        logger.info("Exam session for user %s terminated: %s", session.user_id, reason)

    def validate_session(self, session_id: str, context: RequestContext) -> bool:
        session = self.get_session(session_id)
        if session is None or not session.is_active:
            return False

        if context.fingerprint != session.browser_fingerprint:
            self.record_violation(session_id, "browser_change", "critical", "Browser fingerprint mismatch")
            return False

        if context.ip_address != session.ip_address:
            self.record_violation(session_id, "ip_change", "high", "IP address changed during exam")

        return True

    def violation_counts(self, session_id: str) -> dict[str, int]:
        session = self.get_session(session_id)
        if session is None:
            raise NotFoundError("Exam session not found")
        return violation_counts(session)

    def cleanup_expired_sessions(self) -> int:
        removed = 0
        for session_id in list(self.store.session_ids()):
            data = self.store.load(session_id)
            if data is None:
                continue
            if self._is_expired(ExamSession.from_dict(data)):
                self.store.delete(session_id)
                removed += 1
        if removed:
            logger.info("Removed %s expired exam sessions", removed)
        return removed


_manager: ExamSecurityManager | None = None
_manager_lock = threading.Lock()


def get_exam_security_manager() -> ExamSecurityManager:
    global _manager
    if _manager is not None:
        return _manager
    with _manager_lock:
        if _manager is None:
            _manager = ExamSecurityManager(_build_store())
    return _manager


def reset_exam_security_manager() -> None:
    """
    Test helper so the next call rebuilds the manager (and its store) from settings.
    """

    global _manager
    with _manager_lock:
        _manager = None


def _build_store() -> SessionStore:
    ttl = settings.EXAM_SESSION_TTL_SECONDS
    if settings.REDIS_URL:
        logger.info("Exam sessions stored in Redis")
        return RedisSessionStore(redis.Redis.from_url(settings.REDIS_URL, decode_responses=True))
    logger.warning("REDIS_URL is not set; exam sessions are process-local and lost on restart")
    return InMemorySessionStore(ttl_seconds=ttl)
