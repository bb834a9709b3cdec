"""
Parse uploaded test case files.

JSON: an array of cases (or an object with a ``testCases`` array). Text: either
``---INPUT--- / ---OUTPUT--- / ---END---`` blocks (``---HIDDEN---`` instead of
``---END---`` hides the case), or ``input --- output [--- hidden] ===`` blocks.
Strings may use C-style escapes.
"""
import json
import re
from typing import Any, List, Optional

from pydantic import ValidationError

from exceptions import TestCaseParseError
from schemas import TestCase

_ESCAPES = {
    '"': '"',
    '\\': '\\',
    'n': '\n',
    't': '\t',
    'r': '\r',
    '*': '*',
}


def parse_c_escapes(s: str) -> str:
    result = []
    i = 0
    while i < len(s):
        if s[i] == '\\' and i + 1 < len(s) and s[i + 1] in _ESCAPES:
            result.append(_ESCAPES[s[i + 1]])
            i += 2
        else:
            result.append(s[i])
            i += 1
    return ''.join(result)


def _text_field(value: Any) -> str:
    if isinstance(value, str):
        return parse_c_escapes(value)
    if isinstance(value, list):
        return '\n'.join(parse_c_escapes(v) if isinstance(v, str) else str(v) for v in value)
    return '' if value is None else str(value)


def _case_from_dict(index: int, item: dict) -> TestCase:
    expected = item.get('expectedOutput')
    if expected is None:
        expected = item.get('output')
    try:
        return TestCase(
            id=str(item.get('id') or index + 1),
            input=_text_field(item.get('input')),
            expected_output=_text_field(expected),
            is_hidden=bool(item.get('isHidden', item.get('hidden', False))),
            weight=item.get('weight', 1),
            time_limit_ms=item.get('timeLimitMs'),
            memory_limit_mb=item.get('memoryLimitMb'),
            sql_setup=item.get('sqlSetup'),
            sql_query=item.get('sqlQuery'),
            sql_expected_from_author=bool(item.get('sqlExpectedFromAuthor', False)),
        )
    except ValidationError as e:
        raise TestCaseParseError(f'Test case {index + 1} is invalid: {e}') from e


def parse_json_test_cases(content: str) -> List[TestCase]:
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        raise TestCaseParseError(f'Invalid JSON: {e}') from e

    if isinstance(parsed, dict) and isinstance(parsed.get('testCases'), list):
        parsed = parsed['testCases']
    if not isinstance(parsed, list):
        raise TestCaseParseError('JSON must be an array or contain a testCases array')

    cases = []
    for i, item in enumerate(parsed):
        if not isinstance(item, dict):
            raise TestCaseParseError(f'Test case {i + 1} is not an object')
        cases.append(_case_from_dict(i, item))
    return cases


def _parse_structured_text(content: str) -> List[TestCase]:
    cases = []
    parts = [p for p in content.split('---INPUT---') if p.strip()]
    for part in parts:
        if '---OUTPUT---' not in part:
            continue
        input_part, output_part = part.split('---OUTPUT---', 1)
        is_hidden = '---HIDDEN---' in output_part
        output_part = re.split(r'---END---|---HIDDEN---', output_part)[0]
        cases.append(TestCase(
            id=str(len(cases) + 1),
            input=parse_c_escapes(input_part.strip()),
            expected_output=parse_c_escapes(output_part.strip()),
            is_hidden=is_hidden,
        ))
    return cases


def _parse_delimited_text(content: str) -> List[TestCase]:
    cases = []
    for block in content.split('==='):
        parts = block.strip().split('---')
        if len(parts) < 2:
            continue
        cases.append(TestCase(
            id=str(len(cases) + 1),
            input=parse_c_escapes(parts[0].strip()),
            expected_output=parse_c_escapes(parts[1].strip()),
            is_hidden=len(parts) > 2 and 'hidden' in parts[2].lower(),
        ))
    return cases


def parse_text_test_cases(content: str) -> List[TestCase]:
    if '---INPUT---' in content:
        return _parse_structured_text(content)
    if '===' in content:
        return _parse_delimited_text(content)

    # single case: input and output separated by a blank line
    sections = re.split(r'\n\s*\n', content)
    if len(sections) >= 2:
        return [TestCase(
            id='1',
            input=parse_c_escapes(sections[0].strip()),
            expected_output=parse_c_escapes(sections[1].strip()),
        )]
    raise TestCaseParseError(
        'Could not parse text format. Use structured format with ---INPUT--- and ---OUTPUT--- markers.')


def parse_test_cases(content: str, filename: Optional[str] = None) -> List[TestCase]:
    content = content.strip()
    if filename:
        ext = filename.rsplit('.', 1)[-1].lower()
        if ext == 'json':
            return parse_json_test_cases(content)
        if ext in ('txt', 'text'):
            return parse_text_test_cases(content)

    if content.startswith('[') or content.startswith('{'):
        return parse_json_test_cases(content)
    return parse_text_test_cases(content)
