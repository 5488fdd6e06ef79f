"""
FastAPI application for the agent gateway.

Serves chat, conversation, memory and integration endpoints for the agents
loaded from the agents directory.

Usage:
    # Development server with auto-reload
    uvicorn agent_gateway.api.main:app --reload --host 0.0.0.0 --port 3939

    # Production server
    agent-gateway

    # Debug mode (verbose logging)
    LOG_LEVEL=DEBUG uvicorn agent_gateway.api.main:app --reload --port 3939
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ..config import config
from ..errors import GatewayError
from ..gateway import Gateway, build_gateway, prepare_gateway
from ..llm_client import ModelRuntimeUnavailable
from ..tracing import init_tracing_client, shutdown_tracing
from .routes import agents, chat, conversations, health, integrations, models


def configure_logging():
    """Configure logging based on LOG_LEVEL environment variable."""
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("agent_gateway").setLevel(log_level)


configure_logging()
logger = logging.getLogger(__name__)


def _log_startup(gateway: Gateway) -> None:
    runtime = gateway.config.model_runtime
    logger.info("=" * 60)
    logger.info("MODEL RUNTIME")
    logger.info(f"  Type: {runtime.type.value}")
    logger.info(f"  Base URL: {runtime.base_url}")
    logger.info(f"  Default model: {runtime.model}")
    logger.info(f"  Agent models: {'ENABLED' if runtime.use_agent_models else 'DISABLED'}")
    logger.info(f"  Max tool iterations: {gateway.config.chat.max_tool_iterations}")

    logger.info("-" * 60)
    logger.info(f"AGENTS ({len(gateway.agents)})")
    for agent in gateway.agents.values():
        tools = ", ".join(agent.allowed_tools) or "none"
        logger.info(f"  - {agent.id}: {agent.name} (tools: {tools})")

    logger.info("-" * 60)
    logger.info("INTEGRATIONS")
    for service, credential in gateway.default_credentials().items():
        logger.info(f"  {service}: {'configured' if credential else 'not configured'}")
    logger.info("=" * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the gateway on startup (unless one was injected) and release it on shutdown."""
    logger.info("Starting agent gateway API server")

    owned = getattr(app.state, "gateway", None) is None
    if owned:
        app.state.gateway = build_gateway(config)
        prepare_gateway(app.state.gateway)
    _log_startup(app.state.gateway)

    tracing_client = init_tracing_client(config.langfuse)
    if tracing_client.enabled:
        logger.info(f"Langfuse tracing: ENABLED ({config.langfuse.host or 'https://cloud.langfuse.com'})")
    else:
        logger.info(f"Langfuse tracing: DISABLED ({tracing_client.error})")

    yield

    logger.info("Shutting down agent gateway API server")
    if owned:
        app.state.gateway.close()
        app.state.gateway = None
    shutdown_tracing()


def create_app(gateway: Optional[Gateway] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        gateway: Prebuilt collaborators. When omitted the lifespan handler
            builds them from configuration.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Agent Gateway API",
        description="Chat with configured agents that can call GitHub and Linear tools.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.gateway = gateway

    # CORS middleware - allow all origins for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(agents.router, tags=["Agents"])
    app.include_router(chat.router, tags=["Chat"])
    app.include_router(conversations.router, tags=["Conversations"])
    app.include_router(models.router, tags=["Models"])
    app.include_router(integrations.router, tags=["Integrations"])

    @app.exception_handler(GatewayError)
    async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(ModelRuntimeUnavailable)
    async def runtime_unavailable_handler(request: Request, exc: ModelRuntimeUnavailable) -> JSONResponse:
        logger.error(f"Model runtime unavailable on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=503,
            content={
                "error": "Model runtime is not reachable. Check that it is running.",
                "code": exc.error_code,
                "details": exc.message,
            },
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Database operation failed", "code": "database_error", "details": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Log validation errors before returning 400 response."""
        logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        body = await request.body()
        logger.debug(f"Request body: {body.decode('utf-8', errors='replace')[:1000]}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request",
                "code": "validation_error",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    return app


# Create the application instance
app = create_app()


def run_server():
    """
    Run the server using uvicorn.

    This is the entry point for the ``agent-gateway`` console script.
    """
    import uvicorn

    uvicorn.run(
        "agent_gateway.api.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
        workers=1 if config.server.reload else config.server.workers,
    )


if __name__ == "__main__":
    run_server()
