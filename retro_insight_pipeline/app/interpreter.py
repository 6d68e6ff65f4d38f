"""
Turns raw model text into exactly one InterpretedAnswer.

Flow:
1. Empty text -> PlainText(NO_ANSWER)
2. Take the substring from the first "{" to the last "}" as a JSON candidate
3. Parse it and classify on "type":
   - "chart" with a list "data" -> ChartResult
   - "value" with a number      -> ScalarResult
4. Anything else -> PlainText(trimmed text, single newlines doubled)

The brace scan is deliberately naive: prose such as "{1}" or two separate
objects in one reply produce an unparseable candidate and fall back to text.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .schemas import ChartPayload, ChartResult, InterpretedAnswer, PlainText, ScalarResult

logger = logging.getLogger(__name__)

NO_ANSWER = "no answer available"

# A newline with no newline on either side.
_LONE_NEWLINE = re.compile(r"(?<!\n)\n(?!\n)")


def _extract_json_candidate(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return text[start:end + 1]


def _reject_constant(token: str):
    # NaN and Infinity are not JSON
    raise ValueError(f"Non-JSON constant {token}")


def _parse_candidate(text: str) -> Optional[Dict[str, Any]]:
    candidate = _extract_json_candidate(text)
    if candidate is None:
        return None
    try:
        parsed = json.loads(candidate, parse_constant=_reject_constant)
    except ValueError as e:
        logger.debug(f"JSON candidate did not parse: {e}")
        return None
    return parsed if isinstance(parsed, dict) else None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _classify(parsed: Dict[str, Any]) -> Optional[InterpretedAnswer]:
    kind = parsed.get("type")

    if kind == "chart":
        data = parsed.get("data")
        if not isinstance(data, list):
            return None
        title = parsed.get("title")
        try:
            chart = ChartPayload(title="" if title is None else str(title), series=data)
        except ValidationError as e:
            logger.warning(f"Chart payload has malformed series: {e.error_count()} error(s)")
            return None
        return ChartResult(chart=chart)

    if kind == "value":
        value = parsed.get("value")
        if not _is_number(value):
            return None
        return ScalarResult(value=value)

    return None


def format_plain_text(text: str) -> str:
    """Trim and turn single line breaks into paragraph breaks."""
    text = text.strip().replace("\r\n", "\n").replace("\r", "\n")
    return _LONE_NEWLINE.sub("\n\n", text)


def interpret(raw_text: str) -> InterpretedAnswer:
    if not raw_text or not raw_text.strip():
        logger.info("Empty completion, using fallback answer")
        return PlainText(text=NO_ANSWER)

    parsed = _parse_candidate(raw_text)
    if parsed is not None:
        result = _classify(parsed)
        if result is not None:
            logger.info(f"Interpreted completion as {result.kind}")
            return result
        logger.info(f"JSON in completion did not match a known shape (type={parsed.get('type')!r})")

    return PlainText(text=format_plain_text(raw_text))


def display_text(answer: InterpretedAnswer) -> str:
    """Text shown to the user (and stored in history) for an interpreted answer."""
    if isinstance(answer, ScalarResult):
        return f"The result is {answer.value}."
    if isinstance(answer, ChartResult):
        title = answer.chart.title or "untitled"
        return f"Chart generated: {title}. See the chart panel for details."
    return answer.text
