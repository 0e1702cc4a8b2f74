from datetime import datetime, timezone
from typing import Optional
import uuid

from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel

app = FastAPI(title="Mock Cash Register Server", version="1.0.0")

# In-memory state, reset on restart
REGISTER: dict = {}
MOVEMENTS: dict = {}


class OpenRequest(BaseModel):
    opening_balance: str = "0.00"


@app.get("/health")
def health(): return {"status": "ok"}


@app.post("/cash-register/open")
def open_register(body: OpenRequest):
    if REGISTER.get("status") == "open":
        return JSONResponse(status_code=409, content={"error": "register_already_open"})
    REGISTER.clear()
    REGISTER.update(status="open", opening_balance=body.opening_balance, movements=[],
                    opened_at=datetime.now(timezone.utc).isoformat())
    return REGISTER


@app.post("/cash-register/close")
def close_register():
    if REGISTER.get("status") != "open":
        return JSONResponse(status_code=409, content={"error": "no_open_register"})
    REGISTER["status"] = "closed"
    return REGISTER


@app.get("/cash-register/current")
def current_register():
    if REGISTER.get("status") != "open":
        return JSONResponse(status_code=409, content={"error": "no_open_register"})
    return REGISTER


@app.post("/cash-register/movements")
def post_movement(movement: dict, idempotency_key: Optional[str] = Header(None)):
    key = idempotency_key or movement.get("idempotency_key")
    if key in MOVEMENTS:
        return {"movement_id": MOVEMENTS[key], "duplicate": True}
    if REGISTER.get("status") != "open":
        return JSONResponse(status_code=409, content={"error": "no_open_register"})
    movement_id = str(uuid.uuid4())
    MOVEMENTS[key] = movement_id
    REGISTER["movements"].append({**movement, "movement_id": movement_id})
    return {"movement_id": movement_id, "duplicate": False}
