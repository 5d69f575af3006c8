from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockscan.app.api.deps import get_db
from stockscan.app.db.models.models_v1 import Warehouse

router = APIRouter(prefix="/warehouses")


class WarehouseCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    is_active: bool = True


@router.get("")
def list_warehouses(
    active_only: bool = True,
    db: Session = Depends(get_db),
):
    stmt = select(Warehouse).order_by(Warehouse.name)
    if active_only:
        stmt = stmt.where(Warehouse.is_active.is_(True))

    rows = db.execute(stmt).scalars().all()
    return [
        {
            "id": w.id,
            "name": w.name,
            "is_active": w.is_active,
        }
        for w in rows
    ]


@router.post("")
def create_warehouse(payload: WarehouseCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Warehouse).where(Warehouse.name == payload.name)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Warehouse name already exists")

    w = Warehouse(name=payload.name, is_active=payload.is_active)
    db.add(w)
    db.commit()
    db.refresh(w)
    return {"id": w.id, "name": w.name}
