# backend/app/main.py
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from backend.app.api.accounts import auth_router, router as accounts_router
from backend.app.api.actions import router as actions_router
from backend.app.api.emails import router as emails_router
from backend.app.api.rules import router as rules_router
from backend.app.services import Services, build_services
from mailnick.config.settings import load_settings, validate_environment
from mailnick.errors import (
    AlreadyUndoneError,
    ExpiredError,
    MailNickError,
    NotFoundError,
    ReauthRequiredError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFoundError: 404,
    AlreadyUndoneError: 400,
    ExpiredError: 400,
    ReauthRequiredError: 401,
}


async def mailnick_error_handler(_request: Request, exc: MailNickError) -> JSONResponse:
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if isinstance(exc, ReauthRequiredError):
        return JSONResponse({"error": "Re-authentication required", "code": exc.code}, status_code=status)
    return JSONResponse({"error": str(exc)}, status_code=status)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the API. Tests pass ready-made services; otherwise they are wired
    from the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is None:
            logging.basicConfig(
                level=logging.INFO,
                format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            )
            validate_environment()
            app.state.services = build_services(load_settings())
        else:
            app.state.services = services
        # Drop ledger rows past the retention period on every start.
        app.state.services.ledger.purge_expired()
        yield

    app = FastAPI(title="MailNick API", lifespan=lifespan)
    app.add_exception_handler(MailNickError, mailnick_error_handler)
    app.include_router(accounts_router, prefix="/api")
    app.include_router(emails_router, prefix="/api")
    app.include_router(actions_router, prefix="/api")
    app.include_router(rules_router, prefix="/api")
    app.include_router(auth_router)

    repo_root = Path(__file__).resolve().parents[2]
    frontend_dist = repo_root / "frontend" / "dist"

    if frontend_dist.exists():
        app.mount("/static", StaticFiles(directory=frontend_dist), name="static")

        @app.get("/", include_in_schema=False)
        def index() -> FileResponse:
            return FileResponse(frontend_dist / "index.html")

    return app


app = create_app()


def main() -> None:
    uvicorn.run(
        "backend.app.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
