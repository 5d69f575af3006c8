from __future__ import annotations

from typing import Generator

from fastapi import HTTPException, Request

from stockscan.app.db.session import SessionLocal
from stockscan.services.scan_registry import ScanSessionRegistry
from stockscan.services.scan_session import FulfillmentSession


def get_db(request: Request) -> Generator:
    factory = getattr(request.app.state, "session_factory", SessionLocal)
    db = factory()
    try:
        yield db
    finally:
        db.close()


def get_registry(request: Request) -> ScanSessionRegistry:
    return request.app.state.scan_sessions


def get_scan_session(session_id: str, request: Request) -> FulfillmentSession:
    session = get_registry(request).get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Scan session not found")
    return session
