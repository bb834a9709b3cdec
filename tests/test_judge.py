import pytest

from exceptions import MalformedProblemError
from executor import ExecutionService
from judge import Judge
from models import JudgeStatus
from schemas import AlgorithmProblem, CheckerConfig, CheckerKind, SqlProblem, TestCase
from tests.fakes import ScriptedStrategy

CORRECT = "print(sum(map(int, input().split())))"
WRONG = "print(sum(map(int, input().split())) + 1)  # off_by_one"

SQL_SETUP = """
CREATE TABLE orders (id INTEGER PRIMARY KEY, amount INTEGER);
INSERT INTO orders (amount) VALUES (1), (2), (3);
"""


def adder_problem(cases, checker=CheckerKind.TRIM, **kwargs):
    return AlgorithmProblem(
        id="sum",
        title="A + B",
        checker=CheckerConfig(kind=checker),
        test_cases=[TestCase(id=str(i + 1), **case) for i, case in enumerate(cases)],
        **kwargs,
    )


def sql_problem(cases, **kwargs):
    return SqlProblem(
        id="orders",
        sql_global_setup=SQL_SETUP,
        test_cases=[TestCase(id=str(i + 1), **case) for i, case in enumerate(cases)],
        **kwargs,
    )


THREE_CASES = [
    {"input": "1 2", "expected_output": "3"},
    {"input": "4 5", "expected_output": "9"},
    {"input": "10 20", "expected_output": "30"},
]


async def test_all_cases_pass(python_lang, adder_service):
    verdict = await Judge(adder_problem(THREE_CASES), CORRECT, python_lang, adder_service).judge()

    assert verdict.accepted
    assert verdict.passed_count == verdict.total_count == 3
    assert verdict.score == 100
    assert verdict.failed_case == 0
    assert [log.passed for log in verdict.per_case_log] == [True, True, True]
    assert verdict.transcript == [
        "Submitting solution...",
        "✓ Test case 1/3 passed",
        "✓ Test case 2/3 passed",
        "✓ Test case 3/3 passed",
        "\n🎉 All 3 test cases passed! Solution accepted.",
    ]


async def test_trailing_newline_depends_on_checker(python_lang, adder_service):
    cases = [{"input": "2 4", "expected_output": "6"}]

    exact = await Judge(adder_problem(cases, CheckerKind.EXACT), CORRECT,
                        python_lang, adder_service).judge()
    trim = await Judge(adder_problem(cases, CheckerKind.TRIM), CORRECT,
                       python_lang, adder_service).judge()

    assert exact.status == JudgeStatus.WRONG_ANSWER
    assert trim.status == JudgeStatus.ACCEPTED


async def test_stops_at_first_wrong_answer(python_lang, adder_strategy, adder_service):
    cases = [
        {"input": "1 2", "expected_output": "3"},
        {"input": "4 5", "expected_output": "10"},
        {"input": "10 20", "expected_output": "30"},
    ]
    verdict = await Judge(adder_problem(cases), CORRECT, python_lang, adder_service).judge()

    assert verdict.status == JudgeStatus.WRONG_ANSWER
    assert verdict.passed_count == 1
    assert verdict.failed_case == 2
    assert len(verdict.per_case_log) == 2
    assert len(adder_strategy.requests) == 2
    assert verdict.per_case_log[1].visible_diff == "  Expected: 10\n  Got: 9"
    assert "✗ Test case failed\n  Expected: 10\n  Got: 9" in verdict.transcript
    assert verdict.transcript[-1] == "\n❌ 1/3 test cases passed."
    assert verdict.score == 33


async def test_hidden_case_does_not_leak(python_lang, adder_service):
    cases = [
        {"input": "1 2", "expected_output": "3"},
        {"input": "7 8", "expected_output": "15", "is_hidden": True},
    ]
    verdict = await Judge(adder_problem(cases), WRONG, python_lang, adder_service).judge()
    assert verdict.status == JudgeStatus.WRONG_ANSWER
    assert verdict.failed_case == 1
    assert verdict.per_case_log[0].visible_diff == "  Expected: 3\n  Got: 4"

    verdict = await Judge(adder_problem(cases[::-1]), WRONG, python_lang, adder_service).judge()
    assert verdict.status == JudgeStatus.WRONG_ANSWER
    assert verdict.failed_case == 1
    assert verdict.per_case_log[-1].visible_diff is None
    assert "✗ Hidden test case failed" in verdict.transcript
    assert "15" not in verdict.console
    assert "16" not in verdict.console
    assert "7 8" not in verdict.console


async def test_weighted_score(python_lang, adder_service):
    cases = [
        {"input": "1 1", "expected_output": "2", "weight": 1},
        {"input": "2 2", "expected_output": "5", "weight": 3},
    ]
    verdict = await Judge(adder_problem(cases), CORRECT, python_lang, adder_service).judge()
    assert verdict.score == 25


async def test_execution_failure_aborts(python_lang, adder_strategy, adder_service):
    verdict = await Judge(adder_problem(THREE_CASES), "compile_me_not", python_lang,
                          adder_service).judge()

    assert verdict.status == JudgeStatus.COMPILE_ERROR
    assert verdict.error == "main.py:1: SyntaxError"
    assert verdict.failed_case == 1
    assert len(verdict.per_case_log) == 1
    assert len(adder_strategy.requests) == 1
    assert verdict.score == 0
    assert verdict.transcript[-2:] == [
        "✗ Test case 1: compile_error\n  main.py:1: SyntaxError",
        "\n❌ 0/3 test cases passed.",
    ]


async def test_no_backend(python_lang):
    service = ExecutionService([])
    verdict = await Judge(adder_problem(THREE_CASES), CORRECT, python_lang, service).judge()
    assert verdict.status == JudgeStatus.RUNTIME_ERROR
    assert verdict.error == "No execution backend available"


async def test_usage_is_the_worst_case(python_lang, adder_service):
    verdict = await Judge(adder_problem(THREE_CASES), CORRECT, python_lang, adder_service).judge()
    # adder reports 10ms per stdin character
    assert verdict.runtime_ms == 50.0
    assert verdict.memory_kb == 2048


async def test_limits_per_case_override_problem(python_lang, adder_strategy, adder_service):
    cases = [
        {"input": "1 2", "expected_output": "3", "time_limit_ms": 100},
        {"input": "4 5", "expected_output": "9", "memory_limit_mb": 32},
    ]
    problem = adder_problem(cases, constraints={"time_limit_ms": 2000, "memory_limit_mb": 128})
    await Judge(problem, CORRECT, python_lang, adder_service).judge()

    first, second = adder_strategy.requests
    assert (first.time_limit_ms, first.memory_limit_mb) == (100, 128)
    assert (second.time_limit_ms, second.memory_limit_mb) == (2000, 32)


async def test_run_uses_first_visible_case_without_checking(python_lang, adder_strategy,
                                                            adder_service):
    cases = [
        {"input": "7 8", "expected_output": "15", "is_hidden": True},
        {"input": "1 2", "expected_output": "999"},
    ]
    result = await Judge(adder_problem(cases), CORRECT, python_lang, adder_service).run()

    assert result.success
    assert result.output == "3\n"
    assert adder_strategy.requests[0].stdin == "1 2"


async def test_run_without_cases_sends_empty_stdin(python_lang, adder_strategy, adder_service):
    result = await Judge(adder_problem([]), CORRECT, python_lang, adder_service).run()
    assert result.output == "0\n"
    assert adder_strategy.requests[0].stdin == ""


async def test_submit_without_cases_is_malformed(python_lang, adder_service):
    with pytest.raises(MalformedProblemError):
        await Judge(adder_problem([]), CORRECT, python_lang, adder_service).judge()


def test_language_must_match_problem_kind(python_lang, sql_lang, adder_service):
    with pytest.raises(MalformedProblemError):
        Judge(adder_problem(THREE_CASES), "SELECT 1", sql_lang, adder_service).validate()
    with pytest.raises(MalformedProblemError):
        Judge(sql_problem([{"expected_output": "6"}]), CORRECT, python_lang,
              adder_service).validate()


# ===== SQL problems =====

def no_remote_calls(request):
    raise AssertionError("SQL problems must not reach an execution backend")


@pytest.fixture
def sql_service():
    return ExecutionService([ScriptedStrategy(no_remote_calls)])


async def test_sql_against_stored_output(sql_lang, sql_service):
    problem = sql_problem([{"expected_output": "6"}])
    verdict = await Judge(problem, "SELECT SUM(amount) FROM orders;", sql_lang,
                          sql_service).judge()
    assert verdict.accepted


async def test_sql_against_author_query(sql_lang, sql_service):
    problem = sql_problem([
        {"sql_query": "SELECT SUM(amount) FROM orders", "sql_expected_from_author": True},
        {
            "sql_setup": "INSERT INTO orders (amount) VALUES (4);",
            "sql_query": "SELECT SUM(amount) FROM orders",
            "sql_expected_from_author": True,
            "is_hidden": True,
        },
    ])
    accepted = await Judge(problem, "SELECT SUM(amount) FROM orders", sql_lang,
                           sql_service).judge()
    assert accepted.accepted

    # state from the first case must not carry into the second
    mutating = await Judge(problem,
                           "INSERT INTO orders (amount) VALUES (100); SELECT SUM(amount) - 100 FROM orders",
                           sql_lang, sql_service).judge()
    assert mutating.accepted

    wrong = await Judge(problem, "SELECT COUNT(*) FROM orders", sql_lang, sql_service).judge()
    assert wrong.status == JudgeStatus.WRONG_ANSWER
    assert wrong.failed_case == 1
    assert wrong.per_case_log[0].visible_diff == "  Expected: 6\n  Got: 3"


async def test_sql_query_error(sql_lang, sql_service):
    verdict = await Judge(sql_problem([{"expected_output": "6"}]), "SELEC oops", sql_lang,
                          sql_service).judge()
    assert verdict.status == JudgeStatus.RUNTIME_ERROR
    assert "syntax error" in verdict.error
    assert verdict.failed_case == 1


async def test_sql_setup_error(sql_lang, sql_service):
    problem = sql_problem([{"expected_output": "6", "sql_setup": "INSERT INTO nowhere VALUES (1);"}])
    verdict = await Judge(problem, "SELECT 1", sql_lang, sql_service).judge()
    assert verdict.status == JudgeStatus.RUNTIME_ERROR
    assert verdict.error.startswith("Setup failed:")


async def test_sql_broken_author_query(sql_lang, sql_service):
    problem = sql_problem([{"sql_query": "SELECT * FROM nowhere", "sql_expected_from_author": True}])
    verdict = await Judge(problem, "SELECT 1", sql_lang, sql_service).judge()
    assert verdict.status == JudgeStatus.RUNTIME_ERROR
    assert verdict.error.startswith("Reference query failed:")
    assert "✗ Test case 1: runtime_error\n  Reference query failed:" in verdict.console
