from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from typing import Optional
from contextlib import asynccontextmanager
import uvicorn
import uuid
import math
import logging

import config
config.setup_logging()

from room_registry import registry, normalize_code
from session_gateway import gateway, check_admin_key
from snapshot import build_score_text, export_filename

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting quiz room server")
    yield
    logger.info("Shutting down quiz room server")
    for room in registry.rooms.values():
        room.cancel_reveal_timer()


app = FastAPI(title="Live Quiz Room Server", lifespan=lifespan)


class ClientConfig(BaseModel):
    role: str
    liff_id: str
    base_url: str


@app.get("/config", response_model=ClientConfig)
async def get_client_config(role: str = "player", liff_id: str = ""):
    """Per-role settings the browser clients need before connecting."""
    if not liff_id:
        liff_id = config.LIFF_ID_HOST if role == "host" else config.LIFF_ID_PLAYER
    return ClientConfig(role=role, liff_id=liff_id, base_url=config.BASE_URL)


def _parse_score(raw: Optional[str], name: str) -> Optional[float]:
    """Empty means unset. Raises ValueError on anything that is not a number."""
    if raw is None or raw.strip() == "":
        return None
    value = float(raw)
    if math.isnan(value):
        raise ValueError(f"{name} is NaN")
    return value


@app.get("/export/score", response_class=PlainTextResponse)
async def export_score(code: str = "", admin_key: str = "",
                       min_score: Optional[str] = None, max_score: Optional[str] = None):
    """Download the leaderboard filtered to a score range as plain text."""
    room_code = normalize_code(code)
    if not room_code:
        return PlainTextResponse("Missing code", status_code=400)
    if not check_admin_key(admin_key):
        logger.warning("Score export for room %s rejected: invalid admin key", room_code)
        return PlainTextResponse("ADMIN_KEY invalid", status_code=403)
    room = registry.find_room(room_code)
    if not room:
        return PlainTextResponse("Room not found", status_code=404)

    try:
        low = _parse_score(min_score, "min_score")
        high = _parse_score(max_score, "max_score")
    except ValueError:
        return PlainTextResponse("Invalid score range", status_code=400)
    low = max(0.0, config.EXPORT_DEFAULT_MIN_SCORE if low is None else low)

    text = build_score_text(room, low, high)
    filename = export_filename(room.code, low, high)
    logger.info("Score export for room %s (%s)", room.code, filename)
    return PlainTextResponse(
        text,
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await gateway.connect(websocket, uuid.uuid4().hex)


# Configure CORS
if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
    gateway.allowed_origins = origins
else:
    origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["Content-Type"],
)


@app.get("/")
async def root():
    return {"message": "Quiz room server is running"}


@app.get("/health")
async def health():
    return {"status": "healthy", "rooms": len(registry.rooms)}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
