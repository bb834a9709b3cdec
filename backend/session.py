import asyncio
import contextlib
import logging
from collections import OrderedDict
from typing import Callable, Optional

from config import MAX_SESSIONS
from exceptions import DuplicateSubmission, RateLimited
from executor import ExecutionService
from judge import Judge, Verdict
from rate_limit import RateLimiter
from schemas import ExecutionResult, LanguageDescriptor, ProblemBase

logger = logging.getLogger(__name__)


class JudgeSession:
    """
    Per-user controller for Run/Submit actions.

    Owns the session's RateLimiter; every action goes through one lock so a
    session never judges two submissions at the same time. `judge_slots` is the
    semaphore shared by all sessions and is only taken once the session lock is
    held, so a session queueing on itself never occupies a slot.
    """

    def __init__(self, session_id: str, execution_service: ExecutionService,
                 rate_limiter: Optional[RateLimiter] = None,
                 judge_slots: Optional[asyncio.Semaphore] = None):
        self.session_id = session_id
        self.execution_service = execution_service
        self.rate_limiter = rate_limiter or RateLimiter()
        self.judge_slots = judge_slots
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def idle(self) -> bool:
        return not self.busy and self.rate_limiter.idle

    def _slot(self):
        return self.judge_slots if self.judge_slots is not None else contextlib.nullcontext()

    async def run(self, problem: ProblemBase, code: str,
                  language: LanguageDescriptor) -> ExecutionResult:
        async with self._lock:
            judge = Judge(problem, code, language, self.execution_service)
            async with self._slot():
                return await judge.run()

    async def submit(self, problem: ProblemBase, code: str, language: LanguageDescriptor) -> Verdict:
        async with self._lock:
            judge = Judge(problem, code, language, self.execution_service)
            judge.validate()

            check = self.rate_limiter.check(code)
            if not check.allowed:
                logger.info(f"[Session {self.session_id}] submission rejected: {check.message}")
                if check.duplicate:
                    raise DuplicateSubmission(check.message)
                raise RateLimited(check.message, check.wait_time_seconds)

            try:
                async with self._slot():
                    return await judge.judge()
            finally:
                self.rate_limiter.record_attempt(code)


class SessionRegistry:
    """
    JudgeSessions by id, least recently used first.

    Once `max_sessions` is reached, creating a session first drops every idle
    one. Sessions that are judging or still rate limited are kept.
    """

    def __init__(self, execution_service: ExecutionService,
                 judge_slots: Optional[asyncio.Semaphore] = None,
                 max_sessions: int = MAX_SESSIONS,
                 limiter_factory: Callable[[], RateLimiter] = RateLimiter):
        self.execution_service = execution_service
        self.judge_slots = judge_slots
        self.max_sessions = max_sessions
        self.limiter_factory = limiter_factory
        self.sessions: "OrderedDict[str, JudgeSession]" = OrderedDict()

    def __len__(self):
        return len(self.sessions)

    def __contains__(self, session_id):
        return session_id in self.sessions

    def get(self, session_id: str) -> JudgeSession:
        session = self.sessions.get(session_id)
        if session is None:
            if len(self.sessions) >= self.max_sessions:
                self.evict_idle()
            session = JudgeSession(session_id, self.execution_service,
                                   self.limiter_factory(), self.judge_slots)
            self.sessions[session_id] = session
            logger.debug(f"new judge session {session_id}")
        self.sessions.move_to_end(session_id)
        return session

    def evict_idle(self) -> int:
        idle = [sid for sid, session in self.sessions.items() if session.idle]
        for sid in idle:
            del self.sessions[sid]
        if len(self.sessions) >= self.max_sessions:
            logger.warning(f"{len(self.sessions)} judge sessions still active after eviction")
        else:
            logger.debug(f"evicted {len(idle)} idle judge sessions")
        return len(idle)
