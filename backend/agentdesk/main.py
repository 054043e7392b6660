from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentdesk.core.config import settings
from agentdesk.core.errors import register_exception_handlers
from agentdesk.core.logging import configure_logging
import agentdesk.models  # noqa: F401  # force model registration

from agentdesk.api.v1.permissions import router as permissions_router
from agentdesk.api.v1.platform import router as platform_router


def create_application() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="agentdesk authorization API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            # Local development (Vite dashboard)
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        # X-Tenant-Id carries the super-admin tenant selection
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "agentdesk"}

    app.include_router(permissions_router, prefix="/api/v1")
    app.include_router(platform_router, prefix="/api/v1")

    return app


app = create_application()
