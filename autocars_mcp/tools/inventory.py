"""Inventory tool implementations: vehicles and their linked expenses."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any

from autocars_mcp.analytics import (
    filter_vehicles,
    vehicle_expenses,
    vehicle_total_cost,
    vehicles_in_stock,
)
from autocars_mcp.app import AppContext
from autocars_mcp.constants import (
    MAINTENANCE_CATEGORY,
    STATUS_AVAILABLE,
    STATUS_SOLD,
    VEHICLE_EXPENSE_CATEGORIES,
)
from autocars_mcp.data.models import (
    Expense,
    Vehicle,
    new_id,
    normalize_expense_category,
    normalize_fuel,
    normalize_vehicle_status,
    utc_now_iso,
)
from autocars_mcp.errors import ValidationError
from autocars_mcp.tools.formatting import format_brl, json_response, session_error

_MIN_YEAR = 1900


def _manual_status(status: str) -> str:
    normalized = normalize_vehicle_status(status)
    if normalized == STATUS_SOLD:
        raise ValidationError(
            "a vehicle is marked sold only by recording a sale; use record_sale."
        )
    return normalized


def _validate_vehicle(vehicle: Vehicle) -> None:
    if not vehicle.make.strip() or not vehicle.model.strip():
        raise ValidationError("make and model are required.")
    if not _MIN_YEAR <= vehicle.year <= date.today().year + 1:
        raise ValidationError(f"year must be between {_MIN_YEAR} and {date.today().year + 1}.")
    if vehicle.mileage < 0:
        raise ValidationError("mileage must be greater than or equal to 0.")
    if vehicle.price_purchase < 0 or vehicle.price_selling < 0:
        raise ValidationError("prices must be greater than or equal to 0.")


def _vehicle_row(vehicle: Vehicle, expenses: list[Expense]) -> dict[str, Any]:
    linked = vehicle_expenses(expenses, vehicle.id)
    return {
        **vehicle.to_dict(),
        "linkedExpenses": sum(e.amount for e in linked),
        "totalCost": vehicle_total_cost(vehicle, expenses),
    }


async def add_vehicle_impl(
    app: AppContext,
    *,
    make: str,
    model: str,
    year: int,
    version: str = "",
    plate: str = "",
    mileage: int = 0,
    color: str = "",
    fuel: str = "Gasolina",
    price_purchase: float = 0.0,
    price_selling: float = 0.0,
    status: str = STATUS_AVAILABLE,
    description: str = "",
    photo_url: str = "",
) -> str:
    error = session_error(app)
    if error:
        return error
    try:
        vehicle = Vehicle(
            id=new_id("veh"),
            make=make.strip(),
            model=model.strip(),
            year=year,
            version=version.strip(),
            plate=plate.strip().upper(),
            mileage=mileage,
            color=color.strip(),
            fuel=normalize_fuel(fuel),
            price_purchase=price_purchase,
            price_selling=price_selling,
            status=_manual_status(status),
            description=description.strip(),
            photo_url=photo_url.strip(),
            date_added=utc_now_iso(),
        )
        _validate_vehicle(vehicle)
    except ValidationError as exc:
        return f"Error: {exc}"

    await app.router.add_vehicle(vehicle)
    return f"Vehicle {vehicle.id} added: {vehicle.display_name} {vehicle.year}."


async def update_vehicle_impl(
    app: AppContext,
    *,
    vehicle_id: str,
    make: str | None = None,
    model: str | None = None,
    year: int | None = None,
    version: str | None = None,
    plate: str | None = None,
    mileage: int | None = None,
    color: str | None = None,
    fuel: str | None = None,
    price_purchase: float | None = None,
    price_selling: float | None = None,
    status: str | None = None,
    description: str | None = None,
    photo_url: str | None = None,
) -> str:
    """Update the given fields of a vehicle; omitted fields keep their value."""
    error = session_error(app)
    if error:
        return error
    current = app.router.data.vehicles.get(vehicle_id.strip())
    if current is None:
        return f"Error: vehicle {vehicle_id} not found."

    changes: dict[str, Any] = {}
    for field, value in (
        ("make", make),
        ("model", model),
        ("version", version),
        ("color", color),
        ("description", description),
        ("photo_url", photo_url),
    ):
        if value is not None:
            changes[field] = value.strip()
    if plate is not None:
        changes["plate"] = plate.strip().upper()
    for field, number in (
        ("year", year),
        ("mileage", mileage),
        ("price_purchase", price_purchase),
        ("price_selling", price_selling),
    ):
        if number is not None:
            changes[field] = number
    try:
        if fuel is not None:
            changes["fuel"] = normalize_fuel(fuel)
        if status is not None:
            changes["status"] = _manual_status(status)
        updated = replace(current, **changes)
        _validate_vehicle(updated)
    except ValidationError as exc:
        return f"Error: {exc}"

    if not changes:
        return f"No changes for vehicle {current.id}."
    await app.router.update_vehicle(updated)
    return f"Vehicle {updated.id} updated ({', '.join(sorted(changes))})."


async def remove_vehicle_impl(app: AppContext, *, vehicle_id: str, confirm: bool = False) -> str:
    error = session_error(app)
    if error:
        return error
    vehicle = app.router.data.vehicles.get(vehicle_id.strip())
    if vehicle is None:
        return f"Error: vehicle {vehicle_id} not found."
    if not confirm:
        return (
            f"Removing {vehicle.display_name} ({vehicle.id}) cannot be undone. "
            "Call again with confirm=true to delete it."
        )
    await app.router.remove_vehicle(vehicle.id)
    return f"Vehicle {vehicle.id} removed."


def list_vehicles_impl(
    app: AppContext,
    *,
    search: str = "",
    in_stock_only: bool = False,
) -> str:
    error = session_error(app)
    if error:
        return error
    data = app.router.data
    vehicles = filter_vehicles(data.vehicles, search)
    if in_stock_only:
        vehicles = vehicles_in_stock(vehicles)
    expenses = data.expenses.all()
    return json_response(
        "list_vehicles",
        {
            "count": len(vehicles),
            "vehicles": [_vehicle_row(v, expenses) for v in vehicles],
        },
    )


def get_vehicle_costs_impl(app: AppContext, *, vehicle_id: str) -> str:
    error = session_error(app)
    if error:
        return error
    data = app.router.data
    vehicle = data.vehicles.get(vehicle_id.strip())
    if vehicle is None:
        return f"Error: vehicle {vehicle_id} not found."
    expenses = data.expenses.all()
    linked = vehicle_expenses(expenses, vehicle.id)
    return json_response(
        "get_vehicle_costs",
        {
            "vehicle": vehicle.to_dict(),
            "pricePurchase": vehicle.price_purchase,
            "linkedExpenses": sum(e.amount for e in linked),
            "totalCost": vehicle_total_cost(vehicle, expenses),
            "expenses": [e.to_dict() for e in linked],
        },
    )


async def add_vehicle_expense_impl(
    app: AppContext,
    *,
    vehicle_id: str,
    description: str,
    amount: float,
    category: str = MAINTENANCE_CATEGORY,
    expense_date: str = "",
) -> str:
    """Record an expense linked to one vehicle (maintenance or other)."""
    error = session_error(app)
    if error:
        return error
    vehicle = app.router.data.vehicles.get(vehicle_id.strip())
    if vehicle is None:
        return f"Error: vehicle {vehicle_id} not found."
    if not description.strip():
        return "Error: description is required."
    if amount <= 0:
        return "Error: amount must be greater than 0."
    try:
        normalized = normalize_expense_category(category)
    except ValidationError as exc:
        return f"Error: {exc}"
    if normalized not in VEHICLE_EXPENSE_CATEGORIES:
        return f"Error: vehicle expenses must use one of: {', '.join(VEHICLE_EXPENSE_CATEGORIES)}"
    when = expense_date.strip() or date.today().isoformat()
    try:
        date.fromisoformat(when[:10])
    except ValueError:
        return "Error: date must be a valid ISO date (YYYY-MM-DD)."

    expense = Expense(
        id=new_id("exp"),
        description=description.strip(),
        category=normalized,
        amount=amount,
        date=when,
        vehicle_id=vehicle.id,
    )
    await app.router.add_expense(expense)
    total = vehicle_total_cost(vehicle, app.router.data.expenses.all())
    return (
        f"Expense {expense.id} of {format_brl(amount)} linked to {vehicle.display_name}. "
        f"Total cost now {format_brl(total)}."
    )
