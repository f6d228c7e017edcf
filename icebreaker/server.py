"""
FastAPI server for the Icebreaker discovery service.

Exposes:
  - GET /health - Health check
  - POST /discovery/{user_id}/refresh - Run discovery and return the snapshot
  - GET /discovery/{user_id} - Current discovery snapshot
  - POST /discovery/{user_id}/location - Report a new device coordinate
  - DELETE /discovery/{user_id} - Clear results
  - GET /docs - Interactive API documentation (Swagger UI)
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, HTTPException, Request, status, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Dict, Optional, Annotated
import time

# Import configuration (loads .env automatically)
from icebreaker.config import Config, config, validate_config

# Import logging setup
from icebreaker.utils.logging_config import logger, setup_logging

from icebreaker.collaborators import LatestLocation, StaticSession
from icebreaker.discovery_service import DiscoveryService
from icebreaker.models import Coordinate, DiscoverySnapshot, DiscoveryStatus
from icebreaker.tools.firestore_tools import FirestoreUserStore


# ============================================================
# SESSION REGISTRY
# ============================================================
class DiscoveryRegistry:
    """One discovery session per user id, created on first use."""

    def __init__(self, store, settings: Config = config):
        self.store = store
        self.settings = settings
        self._sessions: Dict[str, tuple[DiscoveryService, LatestLocation]] = {}

    def get(self, user_id: str) -> Optional[DiscoveryService]:
        entry = self._sessions.get(user_id)
        return entry[0] if entry else None

    def open(self, user_id: str) -> tuple[DiscoveryService, LatestLocation]:
        """Return the user's session, starting a new one if needed.

        Must be called from the server's event loop.
        """
        if user_id not in self._sessions:
            location = LatestLocation()
            service = DiscoveryService(
                self.store,
                StaticSession(user_id),
                location=location,
                settings=self.settings,
            )
            service.start()
            self._sessions[user_id] = (service, location)
            logger.info(f"Opened discovery session for {user_id}")
        return self._sessions[user_id]

    def close(self, user_id: str) -> None:
        """Stop the user's session and forget it. Unknown ids are ignored."""
        entry = self._sessions.pop(user_id, None)
        if entry is not None:
            entry[0].stop()
            logger.info(f"Closed discovery session for {user_id}")

    def close_all(self) -> None:
        for service, _ in self._sessions.values():
            service.stop()
        self._sessions.clear()


# ============================================================
# FASTAPI APPLICATION
# ============================================================
app = FastAPI(
    title="Icebreaker Discovery Service",
    description="Finds nearby people and ranks them by conversational compatibility",
    version="1.0.0",
)

# ============================================================
# CORS CONFIGURATION
# ============================================================
origins = [
    "http://localhost:5173",  # Vite dev
    "http://localhost:3000",  # React/Next dev
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# REQUEST/RESPONSE MODELS
# ============================================================
class DiscoveryResponse(BaseModel):
    """
    Response body for discovery endpoints.

    Attributes:
        success (bool): False when the snapshot is in the error state
        user_id (str): Subject the snapshot belongs to
        data (DiscoverySnapshot): Matches, loading flag and last error
        error (Optional[str]): Error message if something went wrong
    """
    success: bool
    user_id: str
    data: DiscoverySnapshot
    error: Optional[str] = None


def _respond(user_id: str, snapshot: DiscoverySnapshot) -> DiscoveryResponse:
    return DiscoveryResponse(
        success=snapshot.status != DiscoveryStatus.ERROR,
        user_id=user_id,
        data=snapshot,
        error=snapshot.error,
    )


# ============================================================
# DEPENDENCIES
# ============================================================
def get_registry(request: Request) -> DiscoveryRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        registry = DiscoveryRegistry(FirestoreUserStore(settings=config), config)
        request.app.state.registry = registry
    return registry


def require_service_token(
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """Validate the shared bearer token when one is configured."""
    if config.AI_SERVICE_TOKEN:
        expected = f"Bearer {config.AI_SERVICE_TOKEN}"
        if authorization != expected:
            logger.warning("Unauthorized request: invalid or missing token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
            )


RegistryDep = Annotated[DiscoveryRegistry, Depends(get_registry)]


# ============================================================
# MIDDLEWARE
# ============================================================
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """
    Middleware to track request processing time.

    Adds X-Process-Time header to all responses showing how long request took.
    """
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


# ============================================================
# ROUTES
# ============================================================

@app.get("/health", tags=["System"])
async def health_check() -> Dict[str, str]:
    """
    Health check endpoint.

    Returns:
        dict: {"status": "healthy"}
    """
    return {"status": "healthy"}


@app.post(
    "/discovery/{user_id}/refresh",
    response_model=DiscoveryResponse,
    tags=["Discovery"],
    dependencies=[Depends(require_service_token)],
)
async def refresh_discovery(user_id: str, registry: RegistryDep) -> DiscoveryResponse:
    """
    Run discovery for a user and return the resulting snapshot.

    Errors from the pipeline (missing location, store failure) come back as
    an error snapshot that still carries the last good matches.
    """
    service, _ = registry.open(user_id)
    logger.info(f"Discovery requested for {user_id}")

    start_time = time.time()
    snapshot = await service.request_discovery(user_id)
    logger.info(
        "discovery summary: user=%s status=%s matches=%s time=%.2fs",
        user_id,
        snapshot.status.value,
        len(snapshot.matches),
        time.time() - start_time,
    )
    return _respond(user_id, snapshot)


@app.get(
    "/discovery/{user_id}",
    response_model=DiscoveryResponse,
    tags=["Discovery"],
    dependencies=[Depends(require_service_token)],
)
async def get_discovery(user_id: str, registry: RegistryDep) -> DiscoveryResponse:
    """Return the current snapshot without running discovery."""
    service = registry.get(user_id)
    snapshot = service.snapshot if service else DiscoverySnapshot()
    return _respond(user_id, snapshot)


@app.post(
    "/discovery/{user_id}/location",
    response_model=DiscoveryResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Discovery"],
    dependencies=[Depends(require_service_token)],
)
async def update_location(
    user_id: str, coordinate: Coordinate, registry: RegistryDep
) -> DiscoveryResponse:
    """
    Record the device's coordinate.

    Rapid updates are coalesced; discovery runs once they settle.
    """
    service, location = registry.open(user_id)
    location.update(coordinate)
    return _respond(user_id, service.snapshot)


@app.delete(
    "/discovery/{user_id}",
    response_model=DiscoveryResponse,
    tags=["Discovery"],
    dependencies=[Depends(require_service_token)],
)
async def clear_discovery(user_id: str, registry: RegistryDep) -> DiscoveryResponse:
    """Discard the user's matches and end their session."""
    service = registry.get(user_id)
    if service is None:
        return _respond(user_id, DiscoverySnapshot())
    service.clear()
    registry.close(user_id)
    return _respond(user_id, service.snapshot)


@app.get("/", tags=["System"])
async def root() -> Dict[str, str]:
    """
    Root endpoint.

    Returns information about the API and how to access documentation.
    """
    return {
        "service": "Icebreaker Discovery Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


# ============================================================
# ERROR HANDLERS
# ============================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Handle HTTP exceptions with consistent error response format.
    """
    logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "status_code": exc.status_code
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle unexpected exceptions.

    Never returns the exception text to the client; use logging instead.
    """
    logger.exception(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal server error",
            "status_code": 500
        }
    )


# ============================================================
# STARTUP EVENTS
# ============================================================

@app.on_event("startup")
async def startup_event():
    """
    Run when the application starts.

    Validates configuration and logs startup info. Invalid configuration
    aborts startup.
    """
    setup_logging(debug=config.DEBUG)

    config_status = validate_config()
    logger.info("=" * 60)
    logger.info("Icebreaker Discovery Service Starting Up")
    logger.info("=" * 60)
    for key, value in config_status.items():
        logger.info(f"  {key}: {value}")
    logger.info(f"Firebase Project: {config.FIREBASE_PROJECT_ID}")
    logger.info(f"Radius: {config.DISCOVERY_RADIUS_KM} km")
    logger.info(f"Max Candidates: {config.MAX_CANDIDATES}")
    logger.info(f"Debug Mode: {config.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Run when the application shuts down.

    Stops every open discovery session.
    """
    registry = getattr(app.state, "registry", None)
    if registry is not None:
        registry.close_all()
    logger.info("Icebreaker Discovery Service Shutting Down")


# ============================================================
# ENTRY POINT
# ============================================================
if __name__ == "__main__":
    """
    Run with: python -m uvicorn icebreaker.server:app --reload
    """
    import uvicorn
    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        log_level="info" if not config.DEBUG else "debug"
    )
