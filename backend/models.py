from sqlalchemy import Column, Integer, String, Text, Float, DateTime
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool
from datetime import datetime
import enum

from config import DATABASE_URL

engine = create_async_engine(DATABASE_URL, echo=False, poolclass=NullPool)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
Base = declarative_base()

class JudgeStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    ACCEPTED = "accepted"
    WRONG_ANSWER = "wrong_answer"
    TIME_LIMIT = "time_limit"
    MEMORY_LIMIT = "memory_limit"
    RUNTIME_ERROR = "runtime_error"
    COMPILE_ERROR = "compile_error"

class ProblemRecord(Base):
    __tablename__ = "problems"

    id = Column(String(64), primary_key=True)
    title = Column(String(256), default="")
    problem_type = Column(String(16), default="algorithm")
    payload = Column(Text, nullable=False)  # validated problem as JSON
    created_at = Column(DateTime, default=datetime.utcnow)

class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    problem_id = Column(String(64), nullable=False)
    user_id = Column(String(64), default="")
    code = Column(Text, nullable=False)
    language = Column(String(16), nullable=False)
    status = Column(String(32), default=JudgeStatus.PENDING.value)
    runtime = Column(Float, nullable=True)  # ms
    memory = Column(Integer, nullable=True)  # KB
    test_cases_passed = Column(Integer, default=0)
    total_test_cases = Column(Integer, default=0)
    error_message = Column(Text, default="")
    score = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def get_session():
    async with async_session() as session:
        yield session
