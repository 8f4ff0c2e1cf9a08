"""Split requested equipment lines between in-house stock and a rental partner.

The allocator is a pure function over its inputs. Inventory state is read
through an injected lookup and is never mutated here; decrementing
``quantity_available`` when a pull is executed belongs to the caller.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence


LOGGER = logging.getLogger("rental_hub.fulfillment")


class InvalidInput(ValueError):
    pass


class LookupUnavailable(RuntimeError):
    pass


@dataclass(frozen=True)
class RequestedLine:
    equipment_id: str
    quantity: int
    name: str = ""
    sku: str = ""


@dataclass(frozen=True)
class InventoryRecord:
    catalog_id: str
    quantity_available: int
    storage_location: str | None = None
    serial_numbers: tuple[str, ...] = ()
    is_active: bool = True
    quantity_owned: int | None = None


@dataclass(frozen=True)
class AllocatedLine:
    equipment_id: str
    quantity: int
    name: str = ""
    sku: str = ""
    storage_location: str | None = None
    serial_numbers: tuple[str, ...] | None = None

    @property
    def is_internal(self) -> bool:
        return self.serial_numbers is not None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "equipmentId": self.equipment_id,
            "quantity": self.quantity,
            "name": self.name,
            "sku": self.sku,
        }
        if self.is_internal:
            payload["storageLocation"] = self.storage_location
            payload["serialNumbers"] = list(self.serial_numbers or ())
        return payload


@dataclass(frozen=True)
class AllocationSummary:
    base_items: int
    partner_items: int
    total_items: int

    def to_payload(self) -> dict[str, int]:
        return {
            "baseItems": self.base_items,
            "partnerItems": self.partner_items,
            "totalItems": self.total_items,
        }


@dataclass(frozen=True)
class AllocationResult:
    base_pull_list: list[AllocatedLine] = field(default_factory=list)
    partner_order_list: list[AllocatedLine] = field(default_factory=list)
    summary: AllocationSummary = AllocationSummary(0, 0, 0)

    def to_payload(self) -> dict[str, Any]:
        return {
            "basePullList": [line.to_payload() for line in self.base_pull_list],
            "partnerOrderList": [line.to_payload() for line in self.partner_order_list],
            "summary": self.summary.to_payload(),
        }


class LineSource(enum.Enum):
    BASE = "base"
    SPLIT = "split"
    PARTNER = "partner"


@dataclass(frozen=True)
class LineOutcome:
    source: LineSource
    base_quantity: int
    partner_quantity: int


InventoryLookup = Callable[[str], Optional[InventoryRecord]]


def validate_requested_lines(requested_lines: Sequence[RequestedLine]) -> None:
    if not requested_lines:
        raise InvalidInput("At least one requested line is required.")
    for index, line in enumerate(requested_lines):
        quantity = line.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidInput(f"Line {index} ({line.equipment_id}): quantity must be an integer.")
        if quantity <= 0:
            raise InvalidInput(f"Line {index} ({line.equipment_id}): quantity must be positive, got {quantity}.")


def resolve_available_quantity(record: InventoryRecord | None) -> int:
    if record is None or not record.is_active:
        return 0
    available = max(0, int(record.quantity_available or 0))
    if record.quantity_owned is not None:
        available = min(available, max(0, int(record.quantity_owned)))
    return available


def classify_line(requested_quantity: int, available: int) -> LineOutcome:
    if available >= requested_quantity:
        return LineOutcome(LineSource.BASE, requested_quantity, 0)
    if available > 0:
        return LineOutcome(LineSource.SPLIT, available, requested_quantity - available)
    return LineOutcome(LineSource.PARTNER, 0, requested_quantity)


def _safe_lookup(inventory_lookup: InventoryLookup, equipment_id: str) -> InventoryRecord | None:
    try:
        return inventory_lookup(equipment_id)
    except LookupUnavailable as exc:
        LOGGER.warning("Inventory lookup unavailable equipment_id=%s reason=%s", equipment_id, exc)
        return None


def _base_line(line: RequestedLine, quantity: int, record: InventoryRecord) -> AllocatedLine:
    # Prefix of the recorded serials; shorter than quantity when too few are on record.
    serials = tuple(record.serial_numbers or ())
    return AllocatedLine(
        equipment_id=line.equipment_id,
        quantity=quantity,
        name=line.name,
        sku=line.sku,
        storage_location=record.storage_location,
        serial_numbers=serials[:quantity],
    )


def _partner_line(line: RequestedLine, quantity: int) -> AllocatedLine:
    return AllocatedLine(
        equipment_id=line.equipment_id,
        quantity=quantity,
        name=line.name,
        sku=line.sku,
    )


def allocate(requested_lines: Sequence[RequestedLine], inventory_lookup: InventoryLookup) -> AllocationResult:
    """Partition ``requested_lines`` into a base pull list and a partner order list.

    Lines are processed in input order. A line whose in-house availability
    covers the request goes wholly to the pull list, a partially covered line
    is split (pull half first), and an uncovered line goes unmodified to the
    partner list. Raises ``InvalidInput`` before classifying anything when the
    request is empty or carries a non-positive quantity.
    """
    validate_requested_lines(requested_lines)

    base_pull_list: list[AllocatedLine] = []
    partner_order_list: list[AllocatedLine] = []

    for line in requested_lines:
        record = _safe_lookup(inventory_lookup, line.equipment_id)
        outcome = classify_line(line.quantity, resolve_available_quantity(record))

        if outcome.source is LineSource.BASE:
            base_pull_list.append(_base_line(line, outcome.base_quantity, record))
        elif outcome.source is LineSource.SPLIT:
            base_pull_list.append(_base_line(line, outcome.base_quantity, record))
            partner_order_list.append(_partner_line(line, outcome.partner_quantity))
        elif outcome.source is LineSource.PARTNER:
            partner_order_list.append(_partner_line(line, outcome.partner_quantity))
        else:
            raise AssertionError(f"Unhandled line source: {outcome.source}")

    summary = AllocationSummary(
        base_items=sum(item.quantity for item in base_pull_list),
        partner_items=sum(item.quantity for item in partner_order_list),
        total_items=sum(line.quantity for line in requested_lines),
    )
    LOGGER.debug(
        "Allocated lines=%s base=%s partner=%s total=%s",
        len(requested_lines),
        summary.base_items,
        summary.partner_items,
        summary.total_items,
    )
    return AllocationResult(
        base_pull_list=base_pull_list,
        partner_order_list=partner_order_list,
        summary=summary,
    )
