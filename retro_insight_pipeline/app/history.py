"""
Durable dashboard state: question/answer history, last chart, chart type.

Rationale:
- StateStorage is a small JSON-file key/value store playing the role of browser local storage.
- DashboardState owns the in-memory copy and writes through on every change, so a
  fresh DashboardState(...).load() reproduces what the user last saw.
- History, chart payload and chart type live under separate keys and never overwrite each other.
"""

import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .schemas import CHART_TYPES, DEFAULT_CHART_TYPE, ChartPayload, ChartState, QAEntry

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "./data/dashboard_state.json"

HISTORY_KEY = "retroHistory"
CHART_DATA_KEY = "chartData"
CHART_TITLE_KEY = "chartTitle"
CHART_TYPE_KEY = "chartType"


def _reject_constant(token: str):
    raise ValueError(f"Non-JSON constant {token}")


class StateStorage:
    """JSON file holding a flat key -> value mapping. Synchronous reads and writes."""

    def __init__(self, path: Optional[str] = None):
        self.path = path or os.getenv("DASHBOARD_STATE_FILE", DEFAULT_STATE_FILE)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f, parse_constant=_reject_constant)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring state file {self.path}: top level is not an object")
            return {}
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, allow_nan=False)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: Dict[str, Any]) -> None:
        """Write several keys in one file write; all of them land or none do."""
        with self._lock:
            data = self._load()
            data.update(values)
            self._save(data)


def _history_limit() -> int:
    return int(os.getenv("HISTORY_LIMIT", "0"))


class DashboardState:
    """
    Application state shared by the ask pipeline and the dashboard views.
    `version` increases on every mutation so views can tell stale snapshots apart.
    """

    def __init__(self, storage: StateStorage, history_limit: Optional[int] = None):
        self.storage = storage
        self.history_limit = _history_limit() if history_limit is None else history_limit
        self.history: List[QAEntry] = []
        self.chart = ChartPayload()
        self.chart_type = DEFAULT_CHART_TYPE
        self.version = 0
        self._busy = threading.Lock()

    # ---------- reload ----------

    def load(self) -> "DashboardState":
        """Replace in-memory state with whatever durable storage holds."""
        self.history = self._load_history()
        self.chart = self._load_chart()
        chart_type = self.storage.get(CHART_TYPE_KEY)
        self.chart_type = chart_type if chart_type in CHART_TYPES else DEFAULT_CHART_TYPE
        logger.info(f"Loaded dashboard state: {len(self.history)} history entries, chart type {self.chart_type}")
        return self

    def _load_history(self) -> List[QAEntry]:
        raw = self.storage.get(HISTORY_KEY, [])
        try:
            return [QAEntry(**entry) for entry in raw]
        except (TypeError, ValidationError) as e:
            logger.warning(f"Discarding malformed stored history: {e}")
            return []

    def _load_chart(self) -> ChartPayload:
        title = self.storage.get(CHART_TITLE_KEY, "")
        series = self.storage.get(CHART_DATA_KEY, [])
        try:
            return ChartPayload(title=title or "", series=series or [])
        except ValidationError as e:
            logger.warning(f"Discarding malformed stored chart: {e}")
            return ChartPayload()

    # ---------- writes ----------

    def record_answer(self, question: str, answer: str) -> QAEntry:
        """Prepend a QA entry (most recent first) and persist the whole log."""
        entry = QAEntry(question=question, answer=answer)
        history = [entry] + self.history
        if self.history_limit > 0:
            history = history[:self.history_limit]
        self.storage.set(HISTORY_KEY, [e.model_dump() for e in history])
        self.history = history
        self.version += 1
        return entry

    def record_chart(self, payload: ChartPayload) -> None:
        """Replace the stored chart entirely; the chart type is left alone."""
        self.storage.update({
            CHART_DATA_KEY: [point.model_dump() for point in payload.series],
            CHART_TITLE_KEY: payload.title,
        })
        self.chart = payload
        self.version += 1

    def record_chart_type(self, chart_type: str) -> None:
        if chart_type not in CHART_TYPES:
            raise ValueError(f"Unknown chart type: {chart_type}")
        self.storage.set(CHART_TYPE_KEY, chart_type)
        self.chart_type = chart_type
        self.version += 1

    # ---------- views ----------

    def chart_state(self) -> ChartState:
        return ChartState(
            title=self.chart.title,
            series=self.chart.series,
            chart_type=self.chart_type,
            version=self.version,
        )

    # ---------- in-flight guard ----------

    def try_begin_request(self) -> bool:
        """Claim the single completion slot. False if a request is already running."""
        return self._busy.acquire(blocking=False)

    def end_request(self) -> None:
        self._busy.release()

    @property
    def busy(self) -> bool:
        return self._busy.locked()
