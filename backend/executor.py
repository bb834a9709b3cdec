"""
Remote code execution backends.

Two interchangeable strategies (Piston, Judge0) behind one interface, plus the
service that probes them in registration order and binds to the first one
that answers.
"""
import abc
import asyncio
import base64
import logging
from typing import List, Optional

import aiohttp

from config import (
    PISTON_URL,
    JUDGE0_URL,
    JUDGE0_HOST,
    JUDGE0_API_KEY,
    HTTP_TIMEOUT,
    COMPILE_TIMEOUT,
    JUDGE0_POLL_INTERVAL,
    JUDGE0_MAX_POLLS,
)
from models import JudgeStatus
from schemas import ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)

# Judge0 status ids
JUDGE0_IN_QUEUE = 1
JUDGE0_PROCESSING = 2
JUDGE0_TIME_LIMIT = 5
JUDGE0_COMPILE_ERROR = 6


class ExecutionStrategy(abc.ABC):
    name = ""

    def __init__(self, base_url: str, timeout: float = HTTP_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @abc.abstractmethod
    async def is_available(self) -> bool:
        ...

    @abc.abstractmethod
    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        ...

    async def _probe(self, path: str, headers: Optional[dict] = None) -> bool:
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(f"{self.base_url}{path}", headers=headers) as response:
                    return response.status < 400
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.info(f"[{self.name}] unavailable: {e}")
            return False


class PistonStrategy(ExecutionStrategy):
    """Free tier, no API key: submit and wait for the run in one call"""
    name = "Piston"

    def __init__(self, base_url: str = PISTON_URL, timeout: float = HTTP_TIMEOUT):
        super().__init__(base_url, timeout)

    async def is_available(self) -> bool:
        return await self._probe("/runtimes")

    def _payload(self, request: ExecutionRequest) -> dict:
        return {
            "language": request.language.piston_id,
            "version": "*",
            "files": [
                {
                    "name": f"main.{request.language.extension}",
                    "content": request.source_code,
                }
            ],
            "stdin": request.stdin,
            "args": [],
            "compile_timeout": COMPILE_TIMEOUT,
            "run_timeout": request.time_limit_ms,
            "compile_memory_limit": -1,
            "run_memory_limit": request.memory_limit_mb * 1024 * 1024,
        }

    @staticmethod
    def parse_result(result: dict) -> ExecutionResult:
        compile_stage = result.get("compile")
        if compile_stage and compile_stage.get("code") != 0:
            return ExecutionResult.failure(
                JudgeStatus.COMPILE_ERROR,
                compile_stage.get("stderr") or compile_stage.get("output") or "Compilation error",
            )

        run = result["run"]
        stdout = run.get("stdout") or ""
        stderr = run.get("stderr") or ""
        if run.get("code") != 0 and run.get("signal"):
            if run["signal"] == "SIGKILL":
                return ExecutionResult.failure(JudgeStatus.TIME_LIMIT,
                                               "Time or memory limit exceeded")
            return ExecutionResult.failure(JudgeStatus.RUNTIME_ERROR, stderr or "Runtime error")

        if stderr.strip():
            return ExecutionResult.failure(JudgeStatus.RUNTIME_ERROR, stderr, output=stdout)

        return ExecutionResult.ok(stdout)

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        if not request.language.piston_id:
            return ExecutionResult.failure(
                JudgeStatus.COMPILE_ERROR,
                f"Language {request.language.name} not supported by Piston",
            )
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(f"{self.base_url}/execute",
                                        json=self._payload(request)) as response:
                    if response.status >= 400:
                        return ExecutionResult.failure(
                            JudgeStatus.RUNTIME_ERROR,
                            f"Piston API error: {response.reason}",
                        )
                    result = await response.json()
            return self.parse_result(result)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"[Piston] execution failed: {type(e).__name__}: {e}")
            return ExecutionResult.failure(JudgeStatus.RUNTIME_ERROR, str(e) or "Execution failed")


def _b64encode(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _b64decode(data: Optional[str]) -> str:
    if not data:
        return ""
    return base64.b64decode(data).decode("utf-8", errors="replace")


class Judge0Strategy(ExecutionStrategy):
    """Keyed tier: base64 bodies, numeric status ids"""
    name = "Judge0"

    def __init__(self, api_key: str, base_url: str = JUDGE0_URL, host: str = JUDGE0_HOST,
                 timeout: float = HTTP_TIMEOUT, poll_interval: float = JUDGE0_POLL_INTERVAL,
                 max_polls: int = JUDGE0_MAX_POLLS):
        super().__init__(base_url, timeout)
        self.api_key = api_key
        self.host = host
        self.poll_interval = poll_interval
        self.max_polls = max_polls

    @property
    def headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": self.host,
        }

    async def is_available(self) -> bool:
        if not self.api_key:
            return False
        return await self._probe("/languages", headers=self.headers)

    @staticmethod
    def parse_result(result: dict) -> ExecutionResult:
        status_id = (result.get("status") or {}).get("id")
        runtime_ms = float(result["time"]) * 1000 if result.get("time") else None

        if status_id == JUDGE0_COMPILE_ERROR:
            return ExecutionResult.failure(
                JudgeStatus.COMPILE_ERROR,
                _b64decode(result.get("compile_output")) or "Compilation error",
            )
        if status_id == JUDGE0_TIME_LIMIT:
            return ExecutionResult.failure(JudgeStatus.TIME_LIMIT, "Time limit exceeded",
                                           runtime_ms=runtime_ms)
        if isinstance(status_id, int) and status_id > JUDGE0_COMPILE_ERROR:
            return ExecutionResult.failure(
                JudgeStatus.RUNTIME_ERROR,
                _b64decode(result.get("stderr")) or "Runtime error",
            )

        memory = result.get("memory")
        return ExecutionResult.ok(
            _b64decode(result.get("stdout")),
            runtime_ms=runtime_ms,
            memory_kb=int(memory) if memory else None,
        )

    async def _wait_for_result(self, session: aiohttp.ClientSession, result: dict) -> Optional[dict]:
        token = result.get("token")
        polls = 0
        while (result.get("status") or {}).get("id") in (JUDGE0_IN_QUEUE, JUDGE0_PROCESSING):
            if not token or polls >= self.max_polls:
                return None
            polls += 1
            await asyncio.sleep(self.poll_interval)
            async with session.get(f"{self.base_url}/submissions/{token}",
                                   params={"base64_encoded": "true"},
                                   headers=self.headers) as response:
                response.raise_for_status()
                result = await response.json()
        return result

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        if not request.language.judge0_id:
            return ExecutionResult.failure(
                JudgeStatus.COMPILE_ERROR,
                f"Language {request.language.name} not supported by Judge0",
            )
        payload = {
            "language_id": request.language.judge0_id,
            "source_code": _b64encode(request.source_code),
            "stdin": _b64encode(request.stdin),
            "cpu_time_limit": request.time_limit_ms / 1000,
            "memory_limit": request.memory_limit_mb * 1024,
        }
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(f"{self.base_url}/submissions",
                                        params={"base64_encoded": "true", "wait": "true"},
                                        json=payload,
                                        headers=self.headers) as response:
                    if response.status >= 400:
                        return ExecutionResult.failure(
                            JudgeStatus.RUNTIME_ERROR,
                            f"Judge0 API error: {response.reason}",
                        )
                    result = await response.json()
                result = await self._wait_for_result(session, result)
            if result is None:
                return ExecutionResult.failure(JudgeStatus.RUNTIME_ERROR,
                                               "Judge0 did not finish the submission in time")
            return self.parse_result(result)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"[Judge0] execution failed: {type(e).__name__}: {e}")
            return ExecutionResult.failure(JudgeStatus.RUNTIME_ERROR, str(e) or "Execution failed")


class ExecutionService:
    """Ordered strategy registry with a cached binding"""

    def __init__(self, strategies: Optional[List[ExecutionStrategy]] = None):
        self.strategies: List[ExecutionStrategy] = list(strategies or [])
        self.current_strategy: Optional[ExecutionStrategy] = None

    def register(self, strategy: ExecutionStrategy):
        self.strategies.append(strategy)

    def invalidate(self):
        self.current_strategy = None

    async def select_best_strategy(self) -> Optional[ExecutionStrategy]:
        for strategy in self.strategies:
            if await strategy.is_available():
                logger.info(f"Using execution backend {strategy.name}")
                self.current_strategy = strategy
                return strategy
        logger.error("No execution backend available")
        return None

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        if self.current_strategy is None:
            await self.select_best_strategy()

        if self.current_strategy is None:
            return ExecutionResult.failure(JudgeStatus.RUNTIME_ERROR,
                                           "No execution backend available")

        return await self.current_strategy.execute(request)


def build_execution_service(judge0_api_key: str = JUDGE0_API_KEY) -> ExecutionService:
    service = ExecutionService([PistonStrategy()])
    if judge0_api_key:
        service.register(Judge0Strategy(judge0_api_key))
    return service
