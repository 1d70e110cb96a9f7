# sflibrary/main.py
import logging.config
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from . import ai
from .catalog import catalog_router
from .catalog.router import get_gateway
from .catalog.store import CatalogGateway
from .config import Settings, get_settings
from .errors import RelayError
from .models import AIQueryAnswer, AIQueryRequest, ErrorResponse
from .storage import RecentSearchStore


logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level.upper(),
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "sflibrary": {"handlers": ["console"], "level": level.upper(), "propagate": False},
            "httpx": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        },
    })


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    if not settings.store_ready:
        logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set: catalog requests will fail")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set: /api/ai-query will report a configuration error")

    app.state.gateway = CatalogGateway(settings)
    app.state.completion = ai.CompletionClient(settings)
    app.state.recent_store = RecentSearchStore(settings.recent_searches_file)
    try:
        yield
    finally:
        await app.state.gateway.aclose()
        await app.state.completion.aclose()


app = FastAPI(
    title="SF Library",
    description=(
        "Catalog browser for a personal vintage science-fiction collection: "
        "search, autocomplete suggestions, discovery browsing and an AI "
        "librarian grounded in the catalog."
    ),
    version="1.0.0",
    lifespan=lifespan,
)
app.include_router(catalog_router)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def get_completion_client(request: Request) -> ai.CompletionClient:
    return request.app.state.completion


# Health check
@app.get("/")
def health_check():
    return {"status": "ok", "message": "SF Library API live"}


@app.post(
    "/api/ai-query",
    response_model=AIQueryAnswer,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": AIQueryRequest.model_json_schema()}},
        },
    },
)
async def ai_query(
    request: Request,
    settings: Settings = Depends(get_settings),
    gateway: CatalogGateway = Depends(get_gateway),
    completion: ai.CompletionClient = Depends(get_completion_client),
) -> AIQueryAnswer:
    payload: Any
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    return await ai.answer_question(payload, settings, gateway, completion)
