import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from .config import SESSION_COOKIE, RelaySettings
from .relay_store import UploadRelay, error

log = logging.getLogger(__name__)

DENIED_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><title>Forbidden</title></head>
<body><h1>Forbidden</h1></body>
</html>"""

ACTIONS = ("getShareNonce", "uploadImage")


class RelayResponse(BaseModel):
    state: str
    data: str


def create_app(settings: RelaySettings = None, relay: UploadRelay = None) -> FastAPI:
    settings = settings or RelaySettings.from_env()
    relay = relay or UploadRelay(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Starting share relay for origin %s", settings.allowed_origin)
        yield
        log.info("Shutting down share relay")

    app = FastAPI(title="DepthVision Share Relay", lifespan=lifespan)
    app.state.relay = relay

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin],
        allow_credentials=True,
        allow_methods=["POST"],
        allow_headers=["Content-Type"],
    )

    # must run before anything touches the relay session
    @app.middleware("http")
    async def require_origin(request: Request, call_next):
        if request.url.path == "/api" and request.headers.get("origin") != settings.allowed_origin:
            return HTMLResponse(DENIED_PAGE, status_code=403)
        return await call_next(request)

    @app.post("/api", response_model=RelayResponse)
    def api(
        request: Request,
        action: Optional[str] = Form(None),
        shareNonce: Optional[str] = Form(None),
        file: Optional[UploadFile] = File(None),
    ):
        session_id = request.cookies.get(SESSION_COOKIE)
        new_session = not session_id
        if new_session:
            session_id = secrets.token_hex(16)

        if action == "getShareNonce":
            result = relay.get_share_nonce(session_id)
        elif action == "uploadImage":
            result = relay.upload_image(session_id, shareNonce, file)
        else:
            result = error("Unknown action")

        response = JSONResponse(RelayResponse(**result).model_dump())
        if new_session:
            response.set_cookie(SESSION_COOKIE, session_id, httponly=True, secure=True, samesite="strict")
        return response

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "timestamp": time.time()}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("share_relay.main:app", host="0.0.0.0", port=8000)
