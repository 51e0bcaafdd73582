"""
Behavioral Trust Engine API

FastAPI application exposing:
- POST   /sessions                          → create a capture session
- POST   /sessions/{id}/keyboard            → 204 (ingest key events)
- POST   /sessions/{id}/pointer             → 204 (ingest pointer events)
- POST   /sessions/{id}/device              → DeviceFingerprint
- GET    /sessions/{id}/keystrokes          → KeystrokeSnapshot
- GET    /sessions/{id}/keystrokes/analysis → KeystrokeAnalysis
- GET    /sessions/{id}/pointer/analysis    → PointerAnalysis
- GET    /sessions/{id}/trust               → TrustScore
- POST   /sessions/{id}/clear               → 204
- DELETE /sessions/{id}                     → 204
- POST   /device-fingerprint                → DeviceAnalysis
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from engine.config import RegistryConfig, SessionConfig
from engine.models.device import DeviceAnalyzer
from engine.schemas.inputs import (
    DeviceProbe,
    KeyboardBatch,
    PointerBatch,
    SessionCreateRequest,
)
from engine.schemas.outputs import (
    DeviceAnalysis,
    DeviceFingerprint,
    KeystrokeAnalysis,
    KeystrokeSnapshot,
    PointerAnalysis,
    TrustScore,
)
from engine.registry import SessionRegistry
from engine.session import CaptureSession
from persistence.trust_history import get_trust_history


load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# =============================================================================
# Application State
# =============================================================================

class AppState:
    """Application state container."""
    config: Optional[SessionConfig] = None
    history = None
    analyzer: Optional[DeviceAnalyzer] = None
    sessions: Optional[SessionRegistry] = None


state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Behavioral Trust Engine API...")
    state.config = SessionConfig.from_env()
    state.history = get_trust_history(state.config.trust.history_size)
    state.analyzer = DeviceAnalyzer()
    state.sessions = SessionRegistry(RegistryConfig.from_env())
    logger.info("Behavioral Trust Engine ready")

    yield

    logger.info("Shutting down Behavioral Trust Engine API...")
    await state.sessions.close()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Behavioral Trust Engine",
    description="Keystroke, pointer and device telemetry scoring",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def get_session(session_id: str) -> CaptureSession:
    await state.sessions.evict_idle()
    session = state.sessions.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown session: {session_id}"
        )
    return session


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": API_VERSION,
        "sessions": len(state.sessions),
    }


# =============================================================================
# Session Lifecycle
# =============================================================================

@app.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(request: Optional[SessionCreateRequest] = None):
    """Create a capture session and optionally start its periodic analysis."""
    request = request or SessionCreateRequest()
    session = CaptureSession(
        config=state.config,
        detection_mode=request.detection_mode,
        history=state.history,
    )
    await state.sessions.add(session)
    if request.auto_analysis:
        session.start()
    return {"session_id": session.session_id, "detection_mode": session.detection_mode.value}


@app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str):
    await get_session(session_id)
    await state.sessions.remove(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/sessions/{session_id}/clear", status_code=status.HTTP_204_NO_CONTENT)
async def clear_session(session_id: str):
    session = await get_session(session_id)
    session.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Stream Endpoints (HTTP 204)
# =============================================================================

@app.post("/sessions/{session_id}/keyboard", status_code=status.HTTP_204_NO_CONTENT)
async def ingest_keyboard(session_id: str, batch: KeyboardBatch):
    """Feed key events into the session's timing buffers."""
    session = await get_session(session_id)
    for event in batch.events:
        session.handle_key_event(event)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/sessions/{session_id}/pointer", status_code=status.HTTP_204_NO_CONTENT)
async def ingest_pointer(session_id: str, batch: PointerBatch):
    """Feed pointer events into the session's trajectory buffers."""
    session = await get_session(session_id)
    for event in batch.events:
        session.handle_pointer_event(event)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/sessions/{session_id}/device", response_model=DeviceFingerprint)
async def collect_device(session_id: str, probe: DeviceProbe):
    """Normalize and score a device probe report."""
    session = await get_session(session_id)
    return session.collect_device(probe)


# =============================================================================
# Results
# =============================================================================

@app.get("/sessions/{session_id}/keystrokes", response_model=KeystrokeSnapshot)
async def keystroke_snapshot(session_id: str):
    session = await get_session(session_id)
    return session.get_snapshot()


@app.get("/sessions/{session_id}/keystrokes/analysis", response_model=KeystrokeAnalysis)
async def keystroke_analysis(session_id: str):
    session = await get_session(session_id)
    return session.analyze_keystrokes()


@app.get("/sessions/{session_id}/pointer/analysis", response_model=PointerAnalysis)
async def pointer_analysis(session_id: str):
    session = await get_session(session_id)
    return session.analyze_pointer()


@app.get("/sessions/{session_id}/trust", response_model=TrustScore)
async def trust_score(session_id: str):
    """Recompute and return the session's trust score."""
    session = await get_session(session_id)
    try:
        return await session.refresh_trust_score()
    except Exception as e:
        logger.error(f"Trust refresh error for {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal error computing trust score"
        )


@app.post("/device-fingerprint", response_model=DeviceAnalysis)
async def analyze_fingerprint(fingerprint: DeviceFingerprint):
    """Server-side analysis of a client-collected fingerprint."""
    return state.analyzer.analyze(fingerprint)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
