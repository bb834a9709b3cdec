from typing import Optional


class JudgeError(Exception):
    pass


class MalformedProblemError(JudgeError):
    pass


class SubmissionRejected(JudgeError):
    '''
    a submit was refused before any test case ran
    '''

    def __init__(self, message: str, wait_time_seconds: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.wait_time_seconds = wait_time_seconds


class RateLimited(SubmissionRejected):
    pass


class DuplicateSubmission(SubmissionRejected):
    pass


class SqlExecutionError(JudgeError):

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage  # 'setup' or 'query'
        self.message = message


class TestCaseParseError(ValueError):
    __test__ = False  # keep pytest from collecting it
