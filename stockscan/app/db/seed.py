from __future__ import annotations

from sqlalchemy import select

from stockscan.app.db.session import SessionLocal
from stockscan.app.db.models.models_v1 import User, Warehouse
from stockscan.app.db.models.core_types import Role


def run_seed(session_factory=SessionLocal):
    db = session_factory()
    try:
        # 1) Bodega principale
        warehouse = db.scalar(select(Warehouse).where(Warehouse.name == "PRINCIPAL"))
        if not warehouse:
            warehouse = Warehouse(name="PRINCIPAL", is_active=True)
            db.add(warehouse)
            db.commit()

        # 2) Admin (acteur des mouvements créés à la main)
        user = db.scalar(select(User).where(User.name == "ADMIN"))
        if not user:
            user = User(name="ADMIN", role=Role.admin, active=True)
            db.add(user)
            db.commit()

        print(f"SEED OK: warehouse={warehouse.name} (id={warehouse.id}), user=ADMIN (id={user.id})")
        return warehouse.id, user.id
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
