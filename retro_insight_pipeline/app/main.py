"""
FastAPI entrypoint for the retrospective dashboard.

Serves the dashboard views (distribution, chart, history), the /ask question
pipeline and the data manager routes that edit the remote store.
Completion credentials are read here on the server and never sent to the browser.
"""

import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from typing import List, Optional
import httpx

from .aggregate import build_distribution
from .analyzer import ask
from .errors import InsufficientCsv, TransportFailure
from .history import DashboardState, StateStorage
from . import store_client
from .schemas import (
    AskRequest,
    AskResponse,
    CategoryCreate,
    CategoryInfo,
    CategoryUpdate,
    ChartState,
    ChartTypeUpdate,
    CsvUploadResponse,
    DashboardResponse,
    QAEntry,
)
from .utils import decode_csv_bytes, parse_csv_text


def create_app(
    storage: Optional[StateStorage] = None,
    store_http: Optional[httpx.AsyncClient] = None,
    completion_http: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the app with its own DashboardState, reloaded from durable storage.
    store_http / completion_http let callers share (or mock) the outbound clients.
    """
    app = FastAPI(title="Retrospective Insight Dashboard")
    app.state.dashboard = DashboardState(storage or StateStorage()).load()
    app.state.store_http = store_http
    app.state.completion_http = completion_http

    def _state(request: Request) -> DashboardState:
        return request.app.state.dashboard

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # ---------- dashboard ----------

    @app.get("/dashboard", response_model=DashboardResponse)
    async def dashboard(request: Request):
        state = _state(request)
        dataset = await store_client.fetch_display_dataset(client=request.app.state.store_http)
        return DashboardResponse(
            dataset=dataset,
            distribution=build_distribution(dataset),
            chart=state.chart_state(),
            history=state.history,
            version=state.version,
        )

    @app.get("/distribution")
    async def distribution(request: Request):
        dataset = await store_client.fetch_display_dataset(client=request.app.state.store_http)
        return build_distribution(dataset)

    @app.post("/ask", response_model=AskResponse)
    async def ask_endpoint(body: AskRequest, request: Request):
        question = body.question.strip()
        if not question:
            raise HTTPException(status_code=400, detail="question must not be empty")

        state = _state(request)
        if not state.try_begin_request():
            raise HTTPException(status_code=409, detail="A question is already being answered")
        try:
            return await ask(
                question,
                state,
                store_client=request.app.state.store_http,
                completion_client=request.app.state.completion_http,
            )
        finally:
            state.end_request()

    @app.get("/history", response_model=List[QAEntry])
    async def history(request: Request):
        return _state(request).history

    @app.get("/chart", response_model=ChartState)
    async def chart(request: Request):
        return _state(request).chart_state()

    @app.put("/chart/type", response_model=ChartState)
    async def chart_type(body: ChartTypeUpdate, request: Request):
        state = _state(request)
        state.record_chart_type(body.chart_type)
        return state.chart_state()

    # ---------- data manager ----------

    @app.get("/categories", response_model=List[CategoryInfo])
    async def categories(request: Request):
        keys = await store_client.fetch_categories(client=request.app.state.store_http)
        return [CategoryInfo(key=k, label=store_client.format_category_name(k)) for k in keys]

    @app.post("/categories")
    async def create_category(body: CategoryCreate, request: Request):
        name = body.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="category name must not be empty")
        try:
            return await store_client.add_category(name, client=request.app.state.store_http)
        except TransportFailure as e:
            raise HTTPException(status_code=502, detail=str(e))

    @app.put("/categories/{name}")
    async def update_category(name: str, body: CategoryUpdate, request: Request):
        try:
            return await store_client.save_category(name, body.values, client=request.app.state.store_http)
        except TransportFailure as e:
            raise HTTPException(status_code=502, detail=str(e))

    @app.post("/categories/{name}/csv", response_model=CsvUploadResponse)
    async def upload_category_csv(name: str, request: Request, file: UploadFile = File(...)):
        content = await file.read()
        try:
            rows = parse_csv_text(decode_csv_bytes(content))
        except InsufficientCsv as e:
            raise HTTPException(status_code=400, detail=str(e))
        except UnicodeDecodeError:
            raise HTTPException(status_code=400, detail="CSV file must be UTF-8 encoded")

        try:
            result = await store_client.upload_csv(
                name,
                file.filename or "upload.csv",
                content,
                client=request.app.state.store_http,
            )
        except TransportFailure as e:
            raise HTTPException(status_code=502, detail=str(e))

        return CsvUploadResponse(category=store_client.revert_category_name(name), rows=rows, store_response=result)

    return app


app = create_app()
