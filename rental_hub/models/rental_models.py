import uuid

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class EquipmentCategory(Base):
    __tablename__ = "equipment_categories"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255))
    description = Column(String(1000))
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())


class RentalPartner(Base):
    __tablename__ = "rental_partners"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    discount_rate = Column(Numeric(5, 2))
    contact_email = Column(String(255))
    contact_phone = Column(String(50))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())

    Equipment = relationship("EquipmentCatalog", back_populates="Partner")


class EquipmentCatalog(Base):
    __tablename__ = "equipment_catalog"

    id = Column(String(36), primary_key=True, default=_new_id)
    sku = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(100))
    description = Column(Text)
    daily_rate = Column(Numeric(10, 2))
    weekly_rate = Column(Numeric(10, 2))
    monthly_rate = Column(Numeric(10, 2))
    image_url = Column(String(1000))
    partner_id = Column(String(36), ForeignKey("rental_partners.id"))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    Partner = relationship("RentalPartner", back_populates="Equipment")
    InHouse = relationship("InHouseInventory", back_populates="Equipment", cascade="all, delete-orphan")


class InHouseInventory(Base):
    __tablename__ = "in_house_inventory"

    id = Column(String(36), primary_key=True, default=_new_id)
    catalog_id = Column(String(36), ForeignKey("equipment_catalog.id"), nullable=False)
    quantity_owned = Column(Integer, default=0)
    quantity_available = Column(Integer, default=0)
    storage_location = Column(String(255))
    serial_numbers = Column(JSON, default=list)
    purchase_price = Column(Numeric(10, 2))
    condition = Column(String(50))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    Equipment = relationship("EquipmentCatalog", back_populates="InHouse")


class Quote(Base):
    __tablename__ = "quotes"

    id = Column(String(36), primary_key=True, default=_new_id)
    quote_number = Column(String(50), nullable=False)
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)
    client_phone = Column(String(50))
    client_company = Column(String(255))
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    duration_days = Column(Integer)
    status = Column(String(30), default="pending")
    pricing = Column(JSON)
    notes = Column(Text)
    deposit_required = Column(Numeric(10, 2))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    QuoteItems = relationship("QuoteItem", back_populates="Quote", cascade="all, delete-orphan")


class QuoteItem(Base):
    __tablename__ = "quote_items"

    id = Column(String(36), primary_key=True, default=_new_id)
    quote_id = Column(String(36), ForeignKey("quotes.id"), nullable=False)
    equipment_id = Column(String(36))
    sku = Column(String(100))
    name = Column(String(255))
    quantity = Column(Integer, default=1)
    daily_rate = Column(Numeric(10, 2))
    total_price = Column(Numeric(10, 2))

    Quote = relationship("Quote", back_populates="QuoteItems")


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255))
    email = Column(String(255), nullable=False)
    phone = Column(String(50))
    company = Column(String(255))
    status = Column(String(50))
    source = Column(String(50))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())


class QuickBooksToken(Base):
    __tablename__ = "quickbooks_tokens"

    id = Column(String(36), primary_key=True, default=_new_id)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    realm_id = Column(String(100))
    created_at = Column(DateTime, server_default=func.now())
