from datetime import date
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict


class QuoteItemDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    equipmentId: Optional[Union[str, int]] = None
    sku: Optional[str] = None
    name: str = ""
    quantity: int = 1
    dailyRate: Optional[float] = None
    total: Optional[float] = None
    duration: Optional[int] = None


class QuotePricingDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    lineItemsTotal: float = 0
    insurance: float = 0
    delivery: float = 0
    subtotal: float = 0
    tax: float = 0
    total: float = 0


class CreateQuoteDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    clientName: Optional[str] = None
    clientEmail: Optional[str] = None
    clientPhone: Optional[str] = None
    clientCompany: Optional[str] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    duration: Optional[int] = None
    items: List[QuoteItemDto] = []
    pricing: QuotePricingDto = QuotePricingDto()
    notes: Optional[str] = None
