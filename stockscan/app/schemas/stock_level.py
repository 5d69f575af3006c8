from pydantic import BaseModel, ConfigDict


class WarehouseStockRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    warehouse_id: int

    quantity: int  # READ ONLY : maintenu par les mouvements, jamais écrit ici
