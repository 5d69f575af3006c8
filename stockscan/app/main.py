from __future__ import annotations

from fastapi import FastAPI
from sqlalchemy.orm import sessionmaker

from stockscan.app.api.v1.router import router as v1_router
from stockscan.app.db.session import SessionLocal
from stockscan.app.log import configure_logging
from stockscan.services.order_store import SqlOrderStore
from stockscan.services.scan_registry import ScanSessionRegistry


def create_app(session_factory: sessionmaker | None = None) -> FastAPI:
    configure_logging()

    factory = session_factory or SessionLocal

    app = FastAPI(title="STOCKSCAN WMS", version="0.1.0")
    app.state.session_factory = factory
    app.state.scan_sessions = ScanSessionRegistry(lambda kind: SqlOrderStore(factory, kind))
    app.include_router(v1_router, prefix="/v1")
    return app


app = create_app()
