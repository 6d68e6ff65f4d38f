"""
Core orchestration / pipeline.

Flow:
1. Fetch the retrospective recordset (soft: empty on failure, so an early question still works)
2. Build the prompt with the output-format contract
3. One completion call
4. Interpret the raw text into text / value / chart
5. Persist: chart payload (chart answers only) and the QA entry
6. Return formatted response

A failed completion returns an error response and leaves history and chart untouched.
"""

import logging
from typing import Optional

import httpx

from .errors import CompletionFailed
from .history import DashboardState
from .interpreter import display_text, interpret
from .llm_client import complete
from .prompt import build_prompt
from .schemas import AskResponse, ChartResult, ScalarResult
from .store_client import fetch_recordset

logger = logging.getLogger(__name__)


async def ask(
    question: str,
    state: DashboardState,
    store_client: Optional[httpx.AsyncClient] = None,
    completion_client: Optional[httpx.AsyncClient] = None,
) -> AskResponse:
    """
    Main question pipeline with a single completion call.

    Args:
        question: The user's question
        state: Dashboard state receiving the history entry and chart
        store_client / completion_client: optional shared httpx clients

    Returns:
        AskResponse with the displayed answer, plus value/chart for structured answers
    """
    # 1) Dataset for the prompt
    recordset = await fetch_recordset(client=store_client)
    if not recordset:
        logger.warning("Asking with an empty retrospective dataset")

    # 2) Prompt
    prompt = build_prompt(recordset, question)

    # 3) Completion
    try:
        raw_text = await complete(prompt, client=completion_client)
    except CompletionFailed as e:
        logger.error(f"Completion failed: {e}")
        return AskResponse(question=question, error=f"Error getting the answer: {e}")

    # 4) Interpret
    answer = interpret(raw_text)
    shown = display_text(answer)

    # 5) Persist
    if isinstance(answer, ChartResult):
        state.record_chart(answer.chart)
    state.record_answer(question, shown)

    return AskResponse(
        question=question,
        kind=answer.kind,
        answer=shown,
        value=answer.value if isinstance(answer, ScalarResult) else None,
        chart=answer.chart if isinstance(answer, ChartResult) else None,
    )
