import logging
import textwrap
from dataclasses import dataclass
from typing import List, Optional

from checker import compare
from exceptions import MalformedProblemError, SqlExecutionError
from executor import ExecutionService
from models import JudgeStatus
from schemas import (
    AlgorithmProblem,
    ExecutionRequest,
    ExecutionResult,
    LanguageDescriptor,
    ProblemBase,
    SqlProblem,
    TestCase,
)
from sql_runner import format_rows, run_sql

logger = logging.getLogger(__name__)


@dataclass
class CaseLog:
    index: int  # 1-based
    passed: bool
    status: JudgeStatus
    visible_diff: Optional[str] = None


class Verdict:
    def __init__(self, total_count: int):
        self.status = JudgeStatus.RUNNING
        self.passed_count = 0
        self.total_count = total_count
        self.per_case_log: List[CaseLog] = []
        self.transcript: List[str] = []
        self.error: Optional[str] = None
        self.runtime_ms: Optional[float] = None
        self.memory_kb: Optional[int] = None
        self.score = 0
        self.failed_case = 0

    @property
    def accepted(self) -> bool:
        return self.status == JudgeStatus.ACCEPTED

    @property
    def console(self) -> str:
        return "\n".join(self.transcript)

    def track_usage(self, result: ExecutionResult):
        if result.runtime_ms is not None:
            self.runtime_ms = max(self.runtime_ms or 0, result.runtime_ms)
        if result.memory_kb is not None:
            self.memory_kb = max(self.memory_kb or 0, result.memory_kb)


class Judge:
    def __init__(self, problem: ProblemBase, code: str, language: LanguageDescriptor,
                 execution_service: ExecutionService):
        self.problem = problem
        self.code = code
        self.language = language
        self.execution_service = execution_service

    def validate(self, submit: bool = True):
        """Reject problem/language combinations that cannot be judged"""
        if isinstance(self.problem, SqlProblem):
            if self.language.id != "sql":
                raise MalformedProblemError(f"Problem {self.problem.id} only accepts SQL")
        elif isinstance(self.problem, AlgorithmProblem):
            if self.language.id == "sql":
                raise MalformedProblemError(f"Problem {self.problem.id} does not accept SQL")
        else:
            raise MalformedProblemError(f"Unknown problem kind: {type(self.problem).__name__}")
        if submit and not self.problem.test_cases:
            raise MalformedProblemError(f"Problem {self.problem.id} has no test cases")

    async def run(self) -> ExecutionResult:
        """Execute the first visible test case and hand back the raw result"""
        self.validate(submit=False)
        case = self.problem.first_visible_case()
        logger.info(f"[Run] Problem: {self.problem.id}, Language: {self.language.id}")
        return await self._execute_case(case)

    async def judge(self) -> Verdict:
        self.validate()
        cases = self.problem.test_cases
        verdict = Verdict(len(cases))
        verdict.transcript.append("Submitting solution...")
        logger.info(f"[Judge] Problem: {self.problem.id}, "
                    f"Language: {self.language.id}, Cases: {len(cases)}")

        for idx, case in enumerate(cases, 1):
            result = await self._execute_case(case)

            if not result.success:
                logger.info(f"[Judge {self.problem.id}] Test {idx}: {result.status.value}")
                verdict.per_case_log.append(CaseLog(idx, False, result.status))
                verdict.status = result.status
                verdict.error = result.error or "Execution failed"
                verdict.failed_case = idx
                verdict.transcript.append(f"✗ Test case {idx}: {result.status.value}\n  {verdict.error}")
                break

            reference = await self._expected_output(case)
            if not reference.success:
                verdict.per_case_log.append(CaseLog(idx, False, reference.status))
                verdict.status = reference.status
                verdict.error = reference.error
                verdict.failed_case = idx
                verdict.transcript.append(f"✗ Test case {idx}: {reference.status.value}\n  {verdict.error}")
                break

            expected = reference.output
            actual = result.output or ""
            if compare(actual, expected, self.problem.checker):
                verdict.passed_count += 1
                verdict.track_usage(result)
                verdict.per_case_log.append(CaseLog(idx, True, JudgeStatus.ACCEPTED))
                verdict.transcript.append(
                    f"✓ Test case {verdict.passed_count}/{verdict.total_count} passed")
                continue

            logger.info(f"[Judge {self.problem.id}] Test {idx}: wrong answer")
            logger.debug(f"[Judge {self.problem.id}] expected {textwrap.shorten(expected, 80)!r}, "
                         f"got {textwrap.shorten(actual, 80)!r}")
            verdict.status = JudgeStatus.WRONG_ANSWER
            verdict.failed_case = idx
            if case.is_hidden:
                verdict.per_case_log.append(CaseLog(idx, False, JudgeStatus.WRONG_ANSWER))
                verdict.transcript.append("✗ Hidden test case failed")
            else:
                diff = f"  Expected: {expected.strip()}\n  Got: {actual.strip()}"
                verdict.per_case_log.append(CaseLog(idx, False, JudgeStatus.WRONG_ANSWER, diff))
                verdict.transcript.append(f"✗ Test case failed\n{diff}")
            break

        self._finish(verdict)
        logger.info(f"[Judge {self.problem.id}] Result: {verdict.status.value}, "
                    f"{verdict.passed_count}/{verdict.total_count}")
        return verdict

    def _finish(self, verdict: Verdict):
        cases = self.problem.test_cases
        total_weight = sum(tc.weight for tc in cases)
        passed_weight = sum(tc.weight for tc in cases[:verdict.passed_count])

        if verdict.passed_count == verdict.total_count:
            verdict.status = JudgeStatus.ACCEPTED
            verdict.score = 100
            verdict.transcript.append(
                f"\n🎉 All {verdict.total_count} test cases passed! Solution accepted.")
        else:
            verdict.score = int(passed_weight * 100 / total_weight) if total_weight else 0
            verdict.transcript.append(
                f"\n❌ {verdict.passed_count}/{verdict.total_count} test cases passed.")

    async def _execute_case(self, case: Optional[TestCase]) -> ExecutionResult:
        if isinstance(self.problem, SqlProblem):
            return await self._run_sql(self.code, case)

        constraints = self.problem.constraints
        request = ExecutionRequest(
            source_code=self.code,
            language=self.language,
            stdin=case.input if case else "",
            time_limit_ms=(case and case.time_limit_ms) or constraints.time_limit_ms,
            memory_limit_mb=(case and case.memory_limit_mb) or constraints.memory_limit_mb,
        )
        return await self.execution_service.execute(request)

    async def _run_sql(self, query: str, case: Optional[TestCase]) -> ExecutionResult:
        try:
            result = await run_sql(
                query,
                global_setup=self.problem.sql_global_setup,
                per_test_setup=case.sql_setup if case else None,
            )
        except SqlExecutionError as e:
            message = f"Setup failed: {e.message}" if e.stage == "setup" else e.message
            return ExecutionResult.failure(JudgeStatus.RUNTIME_ERROR, message)
        return ExecutionResult.ok(format_rows(result.rows))

    async def _expected_output(self, case: TestCase) -> ExecutionResult:
        """Stored expected text, or the author query's output computed on a fresh database"""
        if isinstance(self.problem, SqlProblem) and case.sql_expected_from_author:
            reference = await self._run_sql(case.sql_query, case)
            if not reference.success:
                return ExecutionResult.failure(reference.status,
                                               f"Reference query failed: {reference.error}")
            return reference
        return ExecutionResult.ok(case.expected_output)
