from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict


class InventoryUpsertDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    catalogId: str
    quantityOwned: int
    storageLocation: Optional[str] = None
    serialNumbers: Optional[List[str]] = None
    purchasePrice: Optional[float] = None


class InventoryUpdateDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    quantityOwned: Optional[int] = None
    quantityAvailable: Optional[int] = None
    storageLocation: Optional[str] = None
    condition: Optional[str] = None


class FulfillmentItemDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentId: Union[str, int]
    quantity: int
    name: str = ""
    sku: str = ""


class FulfillmentListRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    items: List[FulfillmentItemDto]
