"""
Prompt construction for retrospective questions.

The prompt carries three parts:
1. the retrospective data (JSON records plus a per-category item count summary)
2. the user's question, verbatim
3. a fixed output-format contract (chart JSON, value JSON, or plain text) that
   interpreter.interpret() relies on
"""

import json
import os
from typing import Dict, List

from .aggregate import distribution_frame
from .store_client import is_empty_category

# Prompt file paths
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
ANSWER_FORMAT_PROMPT_PATH = os.path.join(BASE_DIR, "prompts", "answer_format.txt")


def _read_prompt(path: str) -> str:
    """Read a prompt text file."""
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _as_items(records: List[Dict[str, str]]) -> list:
    # plain-text items were wrapped as {"text": ...}; unwrap so the sentinel check sees them
    return [r.get("text", r) for r in records]


def _serialize_recordset(recordset: Dict[str, List[Dict[str, str]]]) -> str:
    cleaned = {
        name: ([] if is_empty_category(_as_items(records)) else records)
        for name, records in recordset.items()
    }
    return json.dumps(cleaned, indent=2, ensure_ascii=False)


def _format_counts(recordset: Dict[str, List[Dict[str, str]]]) -> str:
    df = distribution_frame({name: _as_items(records) for name, records in recordset.items()})
    if df.empty:
        return "  (no categories with data)"
    return "\n".join(f"  - {row.name}: {row.value}" for row in df.itertuples(index=False))


def build_prompt(recordset: Dict[str, List[Dict[str, str]]], question: str) -> str:
    """
    Build the single text prompt sent to the completion endpoint.
    An empty recordset (store not loaded yet, or unreachable) still yields a valid prompt.
    """
    instructions = _read_prompt(ANSWER_FORMAT_PROMPT_PATH).strip()
    return (
        "Here is the team's retrospective summary in JSON format, grouped by category:\n\n"
        f"{_serialize_recordset(recordset)}\n\n"
        f"Items per category:\n{_format_counts(recordset)}\n\n"
        f"Question: {question}\n\n"
        f"{instructions}"
    )
