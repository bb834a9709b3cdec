import enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from config import (
    LANGUAGES,
    DEFAULT_TIME_LIMIT,
    DEFAULT_MEMORY_LIMIT,
    DEFAULT_FLOAT_TOLERANCE,
)
from models import JudgeStatus


class LanguageDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    piston_id: Optional[str] = None
    judge0_id: Optional[int] = None
    extension: str
    default_code: str = ""


def get_language(language_id: str) -> LanguageDescriptor:
    if language_id not in LANGUAGES:
        raise ValueError(f"Unknown language: {language_id}")
    return LanguageDescriptor(id=language_id, **LANGUAGES[language_id])


class ExecutionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_code: str
    language: LanguageDescriptor
    stdin: str = ""
    time_limit_ms: int = DEFAULT_TIME_LIMIT
    memory_limit_mb: int = DEFAULT_MEMORY_LIMIT


class ExecutionResult(BaseModel):
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    runtime_ms: Optional[float] = None
    memory_kb: Optional[int] = None
    status: JudgeStatus

    @model_validator(mode="after")
    def check_populated(self):
        if self.success and (self.output is None or self.error is not None):
            raise ValueError("successful result needs output and no error")
        return self

    @classmethod
    def ok(cls, output: str, runtime_ms: Optional[float] = None,
           memory_kb: Optional[int] = None) -> "ExecutionResult":
        return cls(success=True, output=output, runtime_ms=runtime_ms,
                   memory_kb=memory_kb, status=JudgeStatus.ACCEPTED)

    @classmethod
    def failure(cls, status: JudgeStatus, error: str, output: Optional[str] = None,
                runtime_ms: Optional[float] = None) -> "ExecutionResult":
        return cls(success=False, status=status, error=error, output=output,
                   runtime_ms=runtime_ms)


class CheckerKind(str, enum.Enum):
    EXACT = "exact"
    TRIM = "trim"
    TOKEN = "token"
    FLOAT_TOLERANCE = "float_tolerance"


class CheckerConfig(BaseModel):
    kind: CheckerKind = CheckerKind.EXACT
    case_insensitive: bool = False
    float_tolerance: Optional[float] = Field(default=None, ge=0)

    @property
    def tolerance(self) -> float:
        if self.float_tolerance is None:
            return DEFAULT_FLOAT_TOLERANCE
        return self.float_tolerance


class TestCase(BaseModel):
    __test__ = False

    id: str
    input: str = ""
    expected_output: str = ""
    is_hidden: bool = False
    weight: int = Field(default=1, ge=0)
    # per-case overrides of the problem constraints
    time_limit_ms: Optional[int] = Field(default=None, gt=0)
    memory_limit_mb: Optional[int] = Field(default=None, gt=0)
    # SQL only
    sql_setup: Optional[str] = None
    sql_query: Optional[str] = None
    sql_expected_from_author: bool = False

    @model_validator(mode="after")
    def check_author_query(self):
        if self.sql_expected_from_author and not self.sql_query:
            raise ValueError("sql_expected_from_author requires sql_query")
        return self


class ProblemConstraints(BaseModel):
    time_limit_ms: int = Field(default=DEFAULT_TIME_LIMIT, gt=0)
    memory_limit_mb: int = Field(default=DEFAULT_MEMORY_LIMIT, gt=0)


class ProblemBase(BaseModel):
    id: str
    title: str = ""
    constraints: ProblemConstraints = Field(default_factory=ProblemConstraints)
    checker: CheckerConfig = Field(default_factory=CheckerConfig)
    test_cases: List[TestCase] = Field(default_factory=list)

    def first_visible_case(self) -> Optional[TestCase]:
        return next((tc for tc in self.test_cases if not tc.is_hidden), None)


class AlgorithmProblem(ProblemBase):
    kind: Literal["algorithm"] = "algorithm"


class SqlProblem(ProblemBase):
    kind: Literal["sql"] = "sql"
    sql_global_setup: Optional[str] = None


Problem = Annotated[Union[AlgorithmProblem, SqlProblem], Field(discriminator="kind")]


class ProblemDocument(BaseModel):
    '''
    wrapper used to (de)serialize either problem kind
    '''
    problem: Problem
