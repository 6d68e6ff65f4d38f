"""
Pydantic models for the dashboard state and the API.

Rationale:
- InterpretedAnswer is a tagged union: callers switch on `kind` and never see raw model JSON.
- Keep request/response models small so the frontend knows exactly what to send and expect.
"""

from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr


ChartType = Literal["pie", "bar", "line", "area", "scatter"]
CHART_TYPES = ("pie", "bar", "line", "area", "scatter")
DEFAULT_CHART_TYPE: ChartType = "bar"


class ChartPoint(BaseModel):
    # extra keys from the model (colors etc.) are kept so the series round-trips unchanged
    model_config = ConfigDict(extra="allow")

    name: Union[StrictStr, StrictInt, StrictFloat]
    value: Union[StrictInt, StrictFloat]


class ChartPayload(BaseModel):
    title: str = ""
    series: List[ChartPoint] = Field(default_factory=list)


class QAEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str
    answer: str


class PlainText(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class ScalarResult(BaseModel):
    kind: Literal["value"] = "value"
    value: Union[int, float]


class ChartResult(BaseModel):
    kind: Literal["chart"] = "chart"
    chart: ChartPayload


InterpretedAnswer = Union[PlainText, ScalarResult, ChartResult]


# ---------- API models ----------

class AskRequest(BaseModel):
    question: str


class AskResponse(BaseModel):
    question: str
    kind: Optional[str] = None
    answer: Optional[str] = None
    value: Optional[Union[int, float]] = None
    chart: Optional[ChartPayload] = None
    error: Optional[str] = None


class ChartState(BaseModel):
    title: str = ""
    series: List[ChartPoint] = Field(default_factory=list)
    chart_type: ChartType = DEFAULT_CHART_TYPE
    version: int = 0


class ChartTypeUpdate(BaseModel):
    chart_type: ChartType


class CategoryCreate(BaseModel):
    name: str


class CategoryUpdate(BaseModel):
    values: List[str]


class CategoryInfo(BaseModel):
    key: str
    label: str


class CsvUploadResponse(BaseModel):
    category: str
    rows: List[str]
    store_response: Optional[Any] = None


class DashboardResponse(BaseModel):
    dataset: Dict[str, List[str]]
    distribution: List[Dict[str, Any]]
    chart: ChartState
    history: List[QAEntry]
    version: int = 0
