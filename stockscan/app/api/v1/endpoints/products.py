from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockscan.app.api.deps import get_db
from stockscan.app.db.models.models_v1 import Product
from stockscan.app.schemas.orders import ProductRead

router = APIRouter(prefix="/products")


class ProductCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    uom: str = Field(default="unit", min_length=1, max_length=32)
    barcode: str | None = Field(default=None, max_length=255)
    active: bool = True


@router.get("", response_model=list[ProductRead])
def list_products(db: Session = Depends(get_db)):
    return db.execute(select(Product).order_by(Product.sku)).scalars().all()


@router.get("/by-barcode/{barcode}", response_model=ProductRead)
def get_product_by_barcode(barcode: str, db: Session = Depends(get_db)):
    p = db.execute(select(Product).where(Product.barcode == barcode.strip())).scalar_one_or_none()
    if not p or not p.active:
        raise HTTPException(status_code=404, detail="Product not found")
    return p


@router.post("")
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Product).where(Product.sku == payload.sku)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="SKU already exists")

    if payload.barcode:
        taken = db.execute(select(Product).where(Product.barcode == payload.barcode)).scalar_one_or_none()
        if taken:
            raise HTTPException(status_code=409, detail="Barcode already registered")

    p = Product(
        sku=payload.sku,
        name=payload.name,
        uom=payload.uom,
        barcode=payload.barcode,
        active=payload.active,
    )
    db.add(p)
    db.commit()
    db.refresh(p)

    return {"id": p.id, "sku": p.sku, "name": p.name}
