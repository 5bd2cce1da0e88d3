from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from causal_manifold.api.middleware import RequestLoggingMiddleware
from causal_manifold.api.routes import embeddings, graph, projection
from causal_manifold.config import settings
from causal_manifold.errors import InputValidationError, ManifoldError, MissingEndpointError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Log startup and shutdown; the service holds no external connections."""
    logger.info(
        "starting_up",
        app=settings.app_name,
        version=settings.app_version,
        embedding_dim=settings.transformer_embedding_dim,
        n_components=settings.umap_n_components,
    )
    logger.info("startup_complete")
    yield
    logger.info("shutdown_complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Causal graphs refined over simplicial complexes and projected onto low-dimensional manifolds.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware ────────────────────────────────────────────
# Order matters: outermost middleware runs first on request, last on response.

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Exception Handlers ───────────────────────────────────

def _error_body(error: str, exc: ManifoldError) -> dict:
    return {"error": error, "detail": str(exc), "code": exc.code}


@app.exception_handler(InputValidationError)
async def input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    logger.warning("request_rejected", path=request.url.path, code=exc.code, error=str(exc))
    return JSONResponse(status_code=400, content=_error_body("Bad Request", exc))


@app.exception_handler(MissingEndpointError)
async def missing_endpoint_handler(request: Request, exc: MissingEndpointError) -> JSONResponse:
    logger.warning("request_rejected", path=request.url.path, code=exc.code, error=str(exc))
    return JSONResponse(status_code=400, content=_error_body("Bad Request", exc))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred.",
            "code": "INTERNAL_ERROR",
        },
    )


# ── Health Check ─────────────────────────────────────────

@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
    }


# ── Routers ──────────────────────────────────────────────

app.include_router(embeddings.router, prefix="/embeddings", tags=["Embeddings"])
app.include_router(projection.router, prefix="/projection", tags=["Projection"])
app.include_router(graph.router,      prefix="/graph",      tags=["Graph"])


def run() -> None:
    """Serve the app with uvicorn on settings.host:settings.port."""
    import uvicorn

    uvicorn.run("causal_manifold.main:app", host=settings.host, port=settings.port)
