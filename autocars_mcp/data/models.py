"""Back-office entities and their camelCase document encoding."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from autocars_mcp.constants import (
    CUSTOMER_STATUS_MAP,
    CUSTOMER_STATUSES,
    DEFAULT_TARGET_MARGIN,
    EXPENSE_CATEGORIES,
    EXPENSE_CATEGORY_MAP,
    FUEL_TYPE_MAP,
    FUEL_TYPES,
    LICENSE_AVAILABLE,
    ROLE_USER,
    STATUS_AVAILABLE,
    VEHICLE_STATUS_MAP,
    VEHICLE_STATUSES,
)
from autocars_mcp.errors import ValidationError


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    return str(value)


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _require_id(data: dict[str, Any], kind: str) -> str:
    if not isinstance(data, dict):
        raise ValueError(f"{kind} entry must be an object, got {type(data).__name__}")
    record_id = _as_text(data.get("id")).strip()
    if not record_id:
        raise ValueError(f"{kind} entry is missing an id")
    return record_id


def normalize_choice(
    value: str,
    mapping: dict[str, str],
    allowed: tuple[str, ...],
    field: str,
) -> str:
    """Map an English alias or stored label onto its stored label."""
    text = value.strip()
    if text in allowed:
        return text
    mapped = mapping.get(text.lower())
    if mapped is None:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
    return mapped


def _lenient_choice(value: Any, mapping: dict[str, str], default: str) -> str:
    text = _as_text(value).strip()
    if not text:
        return default
    return mapping.get(text.lower(), text)


@dataclass(frozen=True)
class Vehicle:
    id: str
    make: str
    model: str
    year: int
    version: str = ""
    plate: str = ""
    mileage: int = 0
    color: str = ""
    fuel: str = FUEL_TYPES[0]
    price_purchase: float = 0.0
    price_selling: float = 0.0
    status: str = STATUS_AVAILABLE
    description: str = ""
    photo_url: str = ""
    date_added: str = ""

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.make, self.model, self.version) if p)

    def with_status(self, status: str) -> Vehicle:
        return replace(self, status=status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "make": self.make,
            "model": self.model,
            "year": self.year,
            "version": self.version,
            "plate": self.plate,
            "mileage": self.mileage,
            "color": self.color,
            "fuel": self.fuel,
            "pricePurchase": self.price_purchase,
            "priceSelling": self.price_selling,
            "status": self.status,
            "description": self.description,
            "photoUrl": self.photo_url,
            "dateAdded": self.date_added,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Vehicle:
        return cls(
            id=_require_id(data, "vehicle"),
            make=_as_text(data.get("make")),
            model=_as_text(data.get("model")),
            year=_as_int(data.get("year")),
            version=_as_text(data.get("version")),
            plate=_as_text(data.get("plate")),
            mileage=_as_int(data.get("mileage")),
            color=_as_text(data.get("color")),
            fuel=_lenient_choice(data.get("fuel"), FUEL_TYPE_MAP, FUEL_TYPES[0]),
            price_purchase=_as_float(data.get("pricePurchase")),
            price_selling=_as_float(data.get("priceSelling")),
            status=_lenient_choice(data.get("status"), VEHICLE_STATUS_MAP, STATUS_AVAILABLE),
            description=_as_text(data.get("description")),
            photo_url=_as_text(data.get("photoUrl")),
            date_added=_as_text(data.get("dateAdded")),
        )


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    status: str = CUSTOMER_STATUSES[0]
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "status": self.status,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Customer:
        return cls(
            id=_require_id(data, "customer"),
            name=_as_text(data.get("name")),
            email=_as_text(data.get("email")),
            phone=_as_text(data.get("phone")),
            address=_as_text(data.get("address")),
            status=_lenient_choice(
                data.get("status"), CUSTOMER_STATUS_MAP, CUSTOMER_STATUSES[0]
            ),
            notes=_as_text(data.get("notes")),
        )


@dataclass(frozen=True)
class Sale:
    """A closed sale. ``profit`` is fixed at creation time."""

    id: str
    vehicle_id: str
    customer_id: str
    sale_price: float
    date: str
    profit: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "vehicleId": self.vehicle_id,
            "customerId": self.customer_id,
            "salePrice": self.sale_price,
            "date": self.date,
            "profit": self.profit,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Sale:
        return cls(
            id=_require_id(data, "sale"),
            vehicle_id=_as_text(data.get("vehicleId")),
            customer_id=_as_text(data.get("customerId")),
            sale_price=_as_float(data.get("salePrice")),
            date=_as_text(data.get("date")),
            profit=_as_float(data.get("profit")),
        )


@dataclass(frozen=True)
class Expense:
    id: str
    description: str
    category: str
    amount: float
    date: str
    vehicle_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "amount": self.amount,
            "date": self.date,
        }
        if self.vehicle_id:
            payload["vehicleId"] = self.vehicle_id
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Expense:
        record_id = _require_id(data, "expense")
        vehicle_id = _as_text(data.get("vehicleId")).strip()
        return cls(
            id=record_id,
            description=_as_text(data.get("description")),
            category=_lenient_choice(
                data.get("category"), EXPENSE_CATEGORY_MAP, EXPENSE_CATEGORIES[-1]
            ),
            amount=_as_float(data.get("amount")),
            date=_as_text(data.get("date")),
            vehicle_id=vehicle_id or None,
        )


@dataclass(frozen=True)
class StoreProfile:
    name: str = ""
    email: str = ""
    phone: str = ""
    target_margin: float = DEFAULT_TARGET_MARGIN

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "targetMargin": self.target_margin,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoreProfile:
        if not isinstance(data, dict):
            raise ValueError("storeProfile must be an object")
        return cls(
            name=_as_text(data.get("name")),
            email=_as_text(data.get("email")),
            phone=_as_text(data.get("phone")),
            target_margin=_as_float(data.get("targetMargin"), DEFAULT_TARGET_MARGIN),
        )

    @classmethod
    def for_user(cls, user: User) -> StoreProfile:
        """Profile used when an account has no stored data yet."""
        return cls(name=user.store_name, email=user.email)


@dataclass(frozen=True)
class User:
    """A cached account record. ``secret`` is stored as entered."""

    id: str
    email: str
    secret: str
    store_name: str
    role: str = ROLE_USER

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "password": self.secret,
            "storeName": self.store_name,
            "role": self.role,
        }

    def public_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "storeName": self.store_name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        return cls(
            id=_require_id(data, "user"),
            email=_as_text(data.get("email")),
            secret=_as_text(data.get("password")),
            store_name=_as_text(data.get("storeName")),
            role=_as_text(data.get("role"), ROLE_USER) or ROLE_USER,
        )


@dataclass(frozen=True)
class License:
    key: str
    status: str = LICENSE_AVAILABLE
    generated_by: str = ""
    created_at: str = ""
    used_by: str | None = None
    used_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "key": self.key,
            "status": self.status,
            "generatedBy": self.generated_by,
            "createdAt": self.created_at,
        }
        if self.used_by:
            payload["usedBy"] = self.used_by
        if self.used_at:
            payload["usedAt"] = self.used_at
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> License:
        if not isinstance(data, dict) or not _as_text(data.get("key")).strip():
            raise ValueError("license entry is missing a key")
        return cls(
            key=_as_text(data.get("key")).strip(),
            status=_as_text(data.get("status"), LICENSE_AVAILABLE),
            generated_by=_as_text(data.get("generatedBy")),
            created_at=_as_text(data.get("createdAt")),
            used_by=_as_text(data.get("usedBy")) or None,
            used_at=_as_text(data.get("usedAt")) or None,
        )


def normalize_vehicle_status(value: str) -> str:
    return normalize_choice(value, VEHICLE_STATUS_MAP, VEHICLE_STATUSES, "status")


def normalize_fuel(value: str) -> str:
    return normalize_choice(value, FUEL_TYPE_MAP, FUEL_TYPES, "fuel")


def normalize_customer_status(value: str) -> str:
    return normalize_choice(value, CUSTOMER_STATUS_MAP, CUSTOMER_STATUSES, "status")


def normalize_expense_category(value: str) -> str:
    return normalize_choice(value, EXPENSE_CATEGORY_MAP, EXPENSE_CATEGORIES, "category")
