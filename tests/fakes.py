import asyncio

from executor import ExecutionStrategy
from models import JudgeStatus
from schemas import ExecutionResult


class ScriptedStrategy(ExecutionStrategy):
    '''
    in-process backend: `handler(request)` decides the result
    '''
    name = "Scripted"

    def __init__(self, handler, available=True, delay=0.0):
        super().__init__("http://scripted.invalid")
        self.handler = handler
        self.available = available
        self.delay = delay
        self.requests = []
        self.probes = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def is_available(self):
        self.probes += 1
        return self.available

    async def execute(self, request):
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            return self.handler(request)
        finally:
            self.in_flight -= 1


def adder(request):
    '''sums the numbers on stdin; code containing "off_by_one" is wrong'''
    if "compile_me_not" in request.source_code:
        return ExecutionResult.failure(JudgeStatus.COMPILE_ERROR, "main.py:1: SyntaxError")
    total = sum(int(x) for x in request.stdin.split())
    if "off_by_one" in request.source_code:
        total += 1
    return ExecutionResult.ok(f"{total}\n", runtime_ms=len(request.stdin) * 10.0, memory_kb=2048)
