"""FastAPI application for the WebWhispr dictation service."""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .constants import APP_HOST, APP_ID, APP_PORT, APP_VERSION, ENGINE_PROVIDER
from .livetypes import (
    HealthResponse,
    SessionResponse,
    SettingsUpdateRequest,
    TranscriptionProviderException,
)
from .models import MODEL_SIZES, get_supported_languages
from .protocols.messages import MessageType, encode_message, parse_message
from .service import Application
from .utils import check_engine_available, is_modal_configured

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

# Application instance
app_service = Application()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(
        "Starting WebWhispr dictation service",
        extra={
            "app_id": APP_ID,
            "version": APP_VERSION,
            "port": APP_PORT,
            "provider": ENGINE_PROVIDER,
        },
    )
    check_engine_available(ENGINE_PROVIDER)
    await app_service.start()

    yield

    # Shutdown
    logger.info("Shutting down WebWhispr dictation service")
    await app_service.shutdown()


# Create FastAPI app
app = FastAPI(
    title="WebWhispr",
    description="Push-to-talk dictation with local or remote speech-to-text",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(TranscriptionProviderException)
async def transcription_exception_handler(
    request: Request, exc: TranscriptionProviderException
):
    """Handle transcription provider exceptions."""
    return JSONResponse(
        status_code=exc.retcode,
        content={"error": str(exc)},
    )


@app.get("/heartbeat")
async def heartbeat():
    """Liveness endpoint."""
    return {"status": "ok"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=APP_VERSION,
        engine_provider=app_service.provider,
        modal_configured=is_modal_configured(),
    )


@app.get("/api/v1/languages")
async def get_languages():
    """Get available transcription languages and model sizes."""
    return {"languages": get_supported_languages(), "modelSizes": list(MODEL_SIZES)}


@app.post("/api/v1/session/start")
async def start_session() -> SessionResponse:
    """Start recording (key pressed)."""
    response = app_service.begin_session()
    logger.info(
        "Session start requested",
        extra={"accepted": response.accepted, "state": response.state},
    )
    return response


@app.post("/api/v1/session/end")
async def end_session() -> SessionResponse:
    """Stop recording and transcribe (key released)."""
    response = app_service.end_session()
    logger.info(
        "Session end requested",
        extra={"accepted": response.accepted, "state": response.state},
    )
    return response


@app.get("/api/v1/settings")
async def get_settings():
    """Get the persisted dictation preferences."""
    return app_service.get_settings()


@app.put("/api/v1/settings")
async def update_settings(request: SettingsUpdateRequest):
    """Update preferences; changing them reloads the model on next use."""
    logger.info(
        "Settings change requested",
        extra={"model_size": request.modelSize, "language": request.language},
    )
    try:
        prefs = app_service.update_settings(request)
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported setting: {e.errors()[0]['msg']}",
        )
    return prefs


@app.post("/api/v1/mic/test")
async def mic_test() -> SessionResponse:
    """Record briefly to check microphone access."""
    return app_service.mic_test()


@app.get("/api/v1/status")
async def status():
    """Get current status of the dictation service."""
    return {
        **app_service.status(),
        "version": APP_VERSION,
        "modal_configured": is_modal_configured(),
    }


@app.websocket("/api/v1/stream")
async def stream(websocket: WebSocket):
    """Bidirectional surface channel.

    Incoming: START_SESSION / END_SESSION. Outgoing: SESSION_STATUS,
    SESSION_RESULT and SESSION_ERROR, encoded as JSON text frames.
    """
    await websocket.accept()
    surface_id, queue = await app_service.register_surface()

    async def forward():
        while True:
            message = await queue.get()
            await websocket.send_text(encode_message(message))

    sender = asyncio.create_task(forward(), name=f"surface-{surface_id}")
    try:
        while True:
            message = parse_message(await websocket.receive_text())
            if message.type == MessageType.START_SESSION:
                app_service.begin_session()
            elif message.type == MessageType.END_SESSION:
                app_service.end_session()
            else:
                logger.debug(
                    "Ignoring surface message",
                    extra={"surface_id": surface_id, "message_type": message.type.value},
                )
    except WebSocketDisconnect:
        logger.debug("Surface websocket closed", extra={"surface_id": surface_id})
    finally:
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(
                "Surface sender failed: %s", e, extra={"surface_id": surface_id}
            )
        await app_service.unregister_surface(surface_id)


if __name__ == "__main__":
    uvicorn.run(app, host=APP_HOST, port=APP_PORT, log_level="info")
