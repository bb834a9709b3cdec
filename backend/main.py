import logging
from asyncio import Semaphore
from typing import Optional

from fastapi import FastAPI, UploadFile, File, Form, Header, HTTPException, Depends, Request
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import LANGUAGES, LOG_LEVEL, MAX_CONCURRENT_JUDGES, DEFAULT_TIME_LIMIT, DEFAULT_MEMORY_LIMIT
from exceptions import MalformedProblemError, SubmissionRejected, TestCaseParseError
from executor import build_execution_service
from judge import Verdict
from models import init_db, get_session, ProblemRecord, Submission
from schemas import ProblemBase, ProblemDocument, get_language, LanguageDescriptor
from session import JudgeSession, SessionRegistry
from testcase_parser import parse_test_cases

logger = logging.getLogger(__name__)

app = FastAPI(title="Judge Pipeline")

# Semaphore for concurrent judge limit across sessions, taken inside each session lock
judge_semaphore = Semaphore(MAX_CONCURRENT_JUDGES)

@app.on_event("startup")
async def startup():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()
    app.state.execution_service = build_execution_service()
    app.state.sessions = SessionRegistry(app.state.execution_service, judge_semaphore)

def get_judge_session(request: Request, x_session_id: str = Header(...)) -> JudgeSession:
    return request.app.state.sessions.get(x_session_id)

async def load_problem(session: AsyncSession, problem_id: str) -> ProblemBase:
    record = await session.get(ProblemRecord, problem_id)
    if not record:
        raise HTTPException(404, "Problem not found")
    return ProblemDocument.model_validate_json(record.payload).problem

def resolve_language(language: str) -> LanguageDescriptor:
    try:
        return get_language(language)
    except ValueError:
        raise HTTPException(400, f"Unsupported language. Available: {list(LANGUAGES.keys())}")

def problem_summary(problem: ProblemBase) -> dict:
    return {
        "id": problem.id,
        "title": problem.title,
        "kind": problem.kind,
        "time_limit": problem.constraints.time_limit_ms,
        "memory_limit": problem.constraints.memory_limit_mb,
        "checker": problem.checker.model_dump(mode="json"),
        "test_case_count": len(problem.test_cases),
    }

# ===== Problem APIs =====

@app.post("/api/problems")
async def create_problem(
    problem_id: str = Form(...),
    title: str = Form(""),
    problem_type: str = Form("algorithm"),
    time_limit: int = Form(DEFAULT_TIME_LIMIT),
    memory_limit: int = Form(DEFAULT_MEMORY_LIMIT),
    checker_kind: str = Form("exact"),
    checker_case_insensitive: bool = Form(False),
    checker_float_tolerance: Optional[float] = Form(None),
    sql_global_setup: Optional[str] = Form(None),
    testcases: UploadFile = File(...),
    session: AsyncSession = Depends(get_session)
):
    """Upload a problem with its test case file (JSON or text format)"""
    try:
        content = (await testcases.read()).decode("utf-8")
        test_cases = parse_test_cases(content, testcases.filename)
    except (UnicodeDecodeError, TestCaseParseError) as e:
        raise HTTPException(400, f"Failed to parse test cases: {e}")

    data = {
        "kind": problem_type,
        "id": problem_id,
        "title": title,
        "constraints": {"time_limit_ms": time_limit, "memory_limit_mb": memory_limit},
        "checker": {
            "kind": checker_kind,
            "case_insensitive": checker_case_insensitive,
            "float_tolerance": checker_float_tolerance,
        },
        "test_cases": [tc.model_dump() for tc in test_cases],
    }
    if problem_type == "sql":
        data["sql_global_setup"] = sql_global_setup
    try:
        problem = ProblemDocument.model_validate({"problem": data}).problem
    except ValidationError as e:
        raise HTTPException(400, f"Invalid problem: {e}")

    payload = ProblemDocument(problem=problem).model_dump_json()

    # Upsert
    existing = await session.get(ProblemRecord, problem_id)
    if existing:
        existing.title = title
        existing.problem_type = problem.kind
        existing.payload = payload
    else:
        session.add(ProblemRecord(id=problem_id, title=title,
                                  problem_type=problem.kind, payload=payload))

    await session.commit()
    logger.info(f"saved problem {problem_id} with {len(test_cases)} test cases")

    return {"success": True, **problem_summary(problem)}

@app.get("/api/problems")
async def list_problems(session: AsyncSession = Depends(get_session)):
    """List all problems"""
    result = await session.execute(select(ProblemRecord).order_by(ProblemRecord.id))
    return [
        {"id": p.id, "title": p.title, "kind": p.problem_type}
        for p in result.scalars().all()
    ]

@app.get("/api/problems/{problem_id}")
async def get_problem(problem_id: str, session: AsyncSession = Depends(get_session)):
    """Get problem details; hidden test cases are counted but never shown"""
    problem = await load_problem(session, problem_id)
    return {
        **problem_summary(problem),
        "examples": [
            {"id": tc.id, "input": tc.input, "expected_output": tc.expected_output}
            for tc in problem.test_cases if not tc.is_hidden
        ],
    }

@app.delete("/api/problems/{problem_id}")
async def delete_problem(problem_id: str, session: AsyncSession = Depends(get_session)):
    """Delete a problem"""
    record = await session.get(ProblemRecord, problem_id)
    if record:
        await session.delete(record)
        await session.commit()
    return {"success": True}

# ===== Run / Submit APIs =====

@app.post("/api/run")
async def run(
    problem_id: str = Form(...),
    code: str = Form(...),
    language: str = Form(...),
    judge_session: JudgeSession = Depends(get_judge_session),
    session: AsyncSession = Depends(get_session)
):
    """Run code against the first visible test case, no checking"""
    problem = await load_problem(session, problem_id)
    lang = resolve_language(language)
    try:
        result = await judge_session.run(problem, code, lang)
    except MalformedProblemError as e:
        raise HTTPException(400, str(e))

    return {
        "success": result.success,
        "status": result.status.value,
        "output": result.output,
        "error": result.error,
        "runtime": result.runtime_ms,
        "memory": result.memory_kb,
    }

def verdict_detail(verdict: Verdict) -> dict:
    return {
        "passed_count": verdict.passed_count,
        "total_count": verdict.total_count,
        "failed_case": verdict.failed_case,
        "cases": [
            {
                "index": log.index,
                "passed": log.passed,
                "status": log.status.value,
                "diff": log.visible_diff,
            }
            for log in verdict.per_case_log
        ],
        "console": verdict.console,
    }

def submission_dict(s: Submission) -> dict:
    return {
        "id": s.id,
        "problem_id": s.problem_id,
        "user_id": s.user_id,
        "language": s.language,
        "status": s.status,
        "runtime": s.runtime,
        "memory": s.memory,
        "test_cases_passed": s.test_cases_passed,
        "total_test_cases": s.total_test_cases,
        "score": s.score,
        "error_message": s.error_message,
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }

@app.post("/api/submit")
async def submit(
    problem_id: str = Form(...),
    code: str = Form(...),
    language: str = Form(...),
    user_id: str = Form(""),
    judge_session: JudgeSession = Depends(get_judge_session),
    session: AsyncSession = Depends(get_session)
):
    """Judge code against every test case and store the submission"""
    problem = await load_problem(session, problem_id)
    lang = resolve_language(language)
    try:
        verdict = await judge_session.submit(problem, code, lang)
    except SubmissionRejected as e:
        raise HTTPException(429, {"message": e.message, "wait_time_seconds": e.wait_time_seconds})
    except MalformedProblemError as e:
        raise HTTPException(400, str(e))

    submission = Submission(
        problem_id=problem_id,
        user_id=user_id,
        code=code,
        language=language,
        status=verdict.status.value,
        runtime=verdict.runtime_ms,
        memory=verdict.memory_kb,
        test_cases_passed=verdict.passed_count,
        total_test_cases=verdict.total_count,
        error_message=verdict.error or "",
        score=verdict.score,
    )
    session.add(submission)
    await session.commit()
    await session.refresh(submission)
    logger.info(f"[Submission #{submission.id}] Result: {verdict.status.value}, Score: {verdict.score}")

    return {**submission_dict(submission), **verdict_detail(verdict)}

@app.get("/api/submissions/{submission_id}")
async def get_submission(submission_id: int, session: AsyncSession = Depends(get_session)):
    """Get submission status and result"""
    submission = await session.get(Submission, submission_id)
    if not submission:
        raise HTTPException(404, "Submission not found")
    return submission_dict(submission)

@app.get("/api/submissions")
async def list_submissions(
    problem_id: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = 50,
    session: AsyncSession = Depends(get_session)
):
    """List recent submissions"""
    query = select(Submission).order_by(Submission.id.desc()).limit(limit)
    if problem_id:
        query = query.where(Submission.problem_id == problem_id)
    if user_id:
        query = query.where(Submission.user_id == user_id)

    result = await session.execute(query)
    return [submission_dict(s) for s in result.scalars().all()]

# ===== Config APIs =====

@app.get("/api/languages")
async def get_languages():
    """Get supported languages and their backend ids"""
    return {
        lang: {
            "name": cfg["name"],
            "extension": cfg["extension"],
            "piston": cfg["piston_id"] is not None,
            "judge0": cfg["judge0_id"] is not None,
            "default_code": cfg["default_code"],
        }
        for lang, cfg in LANGUAGES.items()
    }

@app.get("/api/session/rate-limit")
async def get_rate_limit(judge_session: JudgeSession = Depends(get_judge_session)):
    """Remaining submissions for the calling session"""
    limiter = judge_session.rate_limiter
    return {
        "remaining_attempts": limiter.remaining_attempts(),
        "cooldown_remaining": limiter.cooldown_remaining(),
        "in_cooldown": limiter.in_cooldown,
    }

@app.post("/api/backends/refresh")
async def refresh_backend(request: Request):
    """Drop the cached backend binding and probe again"""
    service = request.app.state.execution_service
    service.invalidate()
    strategy = await service.select_best_strategy()
    return {"backend": strategy.name if strategy else None}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
