"""FastAPI application for the desktop agent.

This is the main entry point for the agent API server.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import create_agent_dependencies, reset_agent_dependencies
from .api import router as agent_router
from .config import AUTH_MODE_API_KEY, PROVIDER_KIMI, PROVIDER_OPENAI, Settings
from .domain.ports import ICredentialProvider, IModelProvider
from .orchestrator import (
    AgentConfig,
    AgentOrchestrator,
    ApprovalService,
    ChatService,
    EventStreamer,
    PromptBuilder,
    ToolDispatcher,
)
from .providers import (
    KimiProvider,
    LLMProviderConfig,
    OpenAIProvider,
    StaticCredentialProvider,
    TokenFileCredentialProvider,
)
from .sessions import SessionStore
from .tools import LocalToolBackend, ToolCatalog

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_credentials(settings: Settings) -> ICredentialProvider:
    """Credential provider for the configured auth mode."""
    if settings.auth_mode == AUTH_MODE_API_KEY:
        return StaticCredentialProvider(settings.api_key)
    return TokenFileCredentialProvider(settings.credentials_file)


def build_provider(settings: Settings, credentials: ICredentialProvider) -> IModelProvider:
    """Model provider for the configured client library."""
    config = LLMProviderConfig(
        base_url=settings.resolved_api_base,
        model=settings.model,
        timeout=settings.request_timeout,
    )
    if settings.provider == PROVIDER_OPENAI:
        return OpenAIProvider(config, credentials)
    if settings.provider != PROVIDER_KIMI:
        logger.warning(f"Unknown provider {settings.provider!r}, using {PROVIDER_KIMI}")
    return KimiProvider(config, credentials)


def build_chat_service(
    settings: Settings,
    provider: Optional[IModelProvider] = None,
) -> ChatService:
    """Wire the orchestrator and its collaborators.

    Args:
        settings: Resolved settings
        provider: Model provider (built from settings if omitted)
    """
    credentials = build_credentials(settings)
    if provider is None:
        provider = build_provider(settings, credentials)

    emitter = EventStreamer()
    catalog = ToolCatalog()
    orchestrator = AgentOrchestrator(
        provider=provider,
        catalog=catalog,
        dispatcher=ToolDispatcher(
            catalog,
            LocalToolBackend(search_url=settings.search_url, credentials=credentials),
        ),
        approvals=ApprovalService(emitter=emitter),
        emitter=emitter,
        prompt_builder=PromptBuilder(),
        config=AgentConfig(max_steps=settings.max_steps, default_model=settings.model),
    )
    return ChatService(orchestrator, SessionStore(settings.share_dir), settings)


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[IModelProvider] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings (read from the environment if omitted)
        provider: Model provider override
    """
    settings = settings or Settings.from_env()
    chat_service = build_chat_service(settings, provider)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        Handles startup and shutdown events:
        - Startup: Inject agent dependencies
        - Shutdown: Cancel live turns and close the provider client
        """
        logger.info(f"Starting desktop agent API (work_dir={settings.work_dir})")
        create_agent_dependencies(
            chat_service=chat_service,
            store=chat_service.store,
            provider=chat_service.orchestrator.provider,
            settings=settings,
        )

        yield

        logger.info("Shutting down desktop agent API...")
        chat_service.cancel_all()
        closer = getattr(chat_service.orchestrator.provider, "aclose", None)
        if closer is not None:
            await closer()
        reset_agent_dependencies()

    app = FastAPI(
        title="Desktop Agent API",
        description="Tool-calling agent with approvals, cancellation and session history.",
        version="0.1.0",
        lifespan=lifespan,
    )

    cors_origins = os.getenv(
        "CORS_ORIGINS", "http://localhost:1420,http://localhost:5173"
    ).split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    app.include_router(agent_router)

    @app.get("/health")
    async def health():
        """Global health check."""
        return {"status": "healthy"}

    return app


# Entry point for running with uvicorn
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        create_app(),
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )
