"""Item catalog entries and the character inventory."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Sequence

from ._validation import (
    FieldSpec,
    ModelValidationError,
    ModelValidator,
    SequenceSpec,
    is_non_empty_str,
    validate_payload,
)

DEFAULT_INVENTORY_CAPACITY = 50


class ItemCategory(str, Enum):
    MATERIAL = "material"
    PILL = "pill"
    TALISMAN = "talisman"
    EQUIPMENT = "equipment"

    @classmethod
    def from_value(cls, value: "ItemCategory | str") -> "ItemCategory":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MATERIAL


class Rarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

    @classmethod
    def from_value(cls, value: "Rarity | str") -> "Rarity":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.COMMON

    @property
    def quality_multiplier(self) -> float:
        return QUALITY_MULTIPLIERS[self]


QUALITY_MULTIPLIERS: Mapping[Rarity, float] = MappingProxyType(
    {
        Rarity.COMMON: 1.0,
        Rarity.UNCOMMON: 1.2,
        Rarity.RARE: 1.5,
        Rarity.EPIC: 1.8,
        Rarity.LEGENDARY: 2.2,
    }
)


@dataclass(frozen=True, slots=True)
class ItemDefinition:
    id: str
    name: str
    category: ItemCategory
    rarity: Rarity
    base_price: float
    description: str = ""


@dataclass(frozen=True, slots=True)
class InventoryItem:
    item_id: str
    quantity: int

    def to_dict(self) -> dict[str, Any]:
        return {"item_id": self.item_id, "quantity": self.quantity}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InventoryItem":
        payload = validate_payload(cls, data)
        return cls(item_id=payload["item_id"], quantity=payload["quantity"])


class InventoryItemValidator(ModelValidator):
    model = InventoryItem
    fields = {
        "item_id": FieldSpec(is_non_empty_str, "a non-empty item id"),
        "quantity": FieldSpec(int, "a positive quantity", minimum=1),
    }


InventoryItem.validator = InventoryItemValidator


@dataclass(frozen=True, slots=True)
class Inventory:
    """Stacks of items. ``capacity`` bounds the number of distinct stacks."""

    items: tuple[InventoryItem, ...] = field(default_factory=tuple)
    capacity: int = DEFAULT_INVENTORY_CAPACITY

    def __iter__(self) -> Iterator[InventoryItem]:
        return iter(self.items)

    def quantity_of(self, item_id: str) -> int:
        for entry in self.items:
            if entry.item_id == item_id:
                return entry.quantity
        return 0

    def has_room_for(self, item_id: str) -> bool:
        return self.quantity_of(item_id) > 0 or len(self.items) < self.capacity

    def add(self, item_id: str, quantity: int) -> Optional["Inventory"]:
        """Return a new inventory with ``quantity`` more of ``item_id``.

        Returns ``None`` when a new stack would exceed capacity.
        """

        if quantity <= 0:
            return self
        if not self.has_room_for(item_id):
            return None
        if self.quantity_of(item_id) > 0:
            updated = tuple(
                replace(entry, quantity=entry.quantity + quantity)
                if entry.item_id == item_id
                else entry
                for entry in self.items
            )
        else:
            updated = (*self.items, InventoryItem(item_id=item_id, quantity=quantity))
        return replace(self, items=updated)

    def remove(self, item_id: str, quantity: int) -> Optional["Inventory"]:
        """Return a new inventory with ``quantity`` of ``item_id`` removed.

        Returns ``None`` when fewer than ``quantity`` are held.
        """

        if quantity <= 0:
            return self
        held = self.quantity_of(item_id)
        if held < quantity:
            return None
        updated: list[InventoryItem] = []
        for entry in self.items:
            if entry.item_id != item_id:
                updated.append(entry)
            elif entry.quantity > quantity:
                updated.append(replace(entry, quantity=entry.quantity - quantity))
        return replace(self, items=tuple(updated))

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [entry.to_dict() for entry in self.items],
            "capacity": self.capacity,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Inventory":
        payload = validate_payload(cls, data)
        items = tuple(InventoryItem.from_dict(entry) for entry in payload.get("items", ()))
        capacity = payload.get("capacity", DEFAULT_INVENTORY_CAPACITY)
        if len(items) > capacity:
            raise ModelValidationError(cls, ["Inventory holds more stacks than its capacity"])
        return cls(items=items, capacity=capacity)


class InventoryValidator(ModelValidator):
    model = Inventory
    fields = {
        "items": FieldSpec(SequenceSpec(dict), "a list of inventory stacks", required=False),
        "capacity": FieldSpec(int, "a positive capacity", required=False, minimum=1),
    }


Inventory.validator = InventoryValidator


def inventory_from_pairs(pairs: Sequence[tuple[str, int]], capacity: int = DEFAULT_INVENTORY_CAPACITY) -> Inventory:
    return Inventory(
        items=tuple(InventoryItem(item_id=key, quantity=amount) for key, amount in pairs),
        capacity=capacity,
    )


__all__ = [
    "DEFAULT_INVENTORY_CAPACITY",
    "Inventory",
    "InventoryItem",
    "ItemCategory",
    "ItemDefinition",
    "QUALITY_MULTIPLIERS",
    "Rarity",
    "inventory_from_pairs",
]
