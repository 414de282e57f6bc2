"""Derived aggregation over the dealership repositories.

Everything here is a pure function: nothing is stored, and every read
recomputes from the current collections.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from autocars_mcp.constants import (
    CHART_WINDOW_MONTHS,
    MAINTENANCE_CATEGORY,
    STATUS_AVAILABLE,
    UNKNOWN_CUSTOMER_LABEL,
    UNKNOWN_VEHICLE_LABEL,
)
from autocars_mcp.data.models import Customer, Expense, Sale, StoreProfile, Vehicle
from autocars_mcp.data.repository import DealershipData

_MONTH_LABELS = (
    "Jan", "Fev", "Mar", "Abr", "Mai", "Jun",
    "Jul", "Ago", "Set", "Out", "Nov", "Dez",
)


# ── Totals ──────────────────────────────────────────────────────────


def total_revenue(sales: Iterable[Sale]) -> float:
    return sum(s.sale_price for s in sales)


def sales_profit(sales: Iterable[Sale]) -> float:
    return sum(s.profit for s in sales)


def total_expenses(expenses: Iterable[Expense]) -> float:
    return sum(e.amount for e in expenses)


def maintenance_expenses(expenses: Iterable[Expense]) -> float:
    return sum(e.amount for e in expenses if e.category == MAINTENANCE_CATEGORY)


def gross_profit(sales: Iterable[Sale], expenses: Iterable[Expense]) -> float:
    """Sales profit minus maintenance expenses."""
    return sales_profit(sales) - maintenance_expenses(expenses)


def net_profit(sales: Iterable[Sale], expenses: Iterable[Expense]) -> float:
    """Sales profit minus every expense."""
    return sales_profit(sales) - total_expenses(expenses)


def efficiency_ratio(sales: list[Sale], expenses: list[Expense]) -> float:
    """Net profit as a percentage of gross profit; 0 whenever gross profit is not positive."""
    gross = gross_profit(sales, expenses)
    if gross <= 0:
        return 0.0
    return net_profit(sales, expenses) / gross * 100


# ── Monthly chart series ────────────────────────────────────────────


def parse_date(value: str) -> datetime | None:
    """Parse an ISO date or datetime; None when unparseable."""
    text = (value or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d")
    except ValueError:
        return None


def month_window(now: datetime, months: int = CHART_WINDOW_MONTHS) -> list[tuple[int, int]]:
    """Return the trailing ``months`` (year, month) keys, oldest first, ending at ``now``."""
    keys: list[tuple[int, int]] = []
    for offset in range(months - 1, -1, -1):
        index = now.year * 12 + (now.month - 1) - offset
        keys.append((index // 12, index % 12 + 1))
    return keys


def monthly_series(
    sales: Iterable[Sale],
    expenses: Iterable[Expense],
    *,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Bucket sales and expenses into a fixed trailing window of months.

    Rows dated outside the window (or unparseable) are dropped from the chart
    only; the totals above still count them.
    """
    now = now or datetime.now()
    buckets: dict[tuple[int, int], dict[str, Any]] = {}
    for year, month in month_window(now):
        buckets[(year, month)] = {
            "name": _MONTH_LABELS[month - 1],
            "year": year,
            "month": month,
            "sales": 0.0,
            "grossProfit": 0.0,
            "expenses": 0.0,
            "netProfit": 0.0,
        }

    for sale in sales:
        parsed = parse_date(sale.date)
        entry = buckets.get((parsed.year, parsed.month)) if parsed else None
        if entry is not None:
            entry["sales"] += sale.sale_price
            entry["grossProfit"] += sale.profit

    for expense in expenses:
        parsed = parse_date(expense.date)
        entry = buckets.get((parsed.year, parsed.month)) if parsed else None
        if entry is not None:
            entry["expenses"] += expense.amount

    series = list(buckets.values())
    for entry in series:
        entry["netProfit"] = entry["grossProfit"] - entry["expenses"]
    return series


# ── Per-vehicle and listing helpers ─────────────────────────────────


def vehicle_expenses(expenses: Iterable[Expense], vehicle_id: str) -> list[Expense]:
    return [e for e in expenses if e.vehicle_id == vehicle_id]


def vehicle_total_cost(vehicle: Vehicle, expenses: Iterable[Expense]) -> float:
    """Purchase price plus every expense linked to the vehicle, whatever its category."""
    return vehicle.price_purchase + sum(e.amount for e in vehicle_expenses(expenses, vehicle.id))


def vehicles_in_stock(vehicles: Iterable[Vehicle]) -> list[Vehicle]:
    return [v for v in vehicles if v.status == STATUS_AVAILABLE]


def resolve_vehicle_name(vehicles: Iterable[Vehicle], vehicle_id: str) -> str:
    for vehicle in vehicles:
        if vehicle.id == vehicle_id:
            return vehicle.display_name
    return UNKNOWN_VEHICLE_LABEL


def resolve_customer_name(customers: Iterable[Customer], customer_id: str) -> str:
    for customer in customers:
        if customer.id == customer_id:
            return customer.name
    return UNKNOWN_CUSTOMER_LABEL


def filter_vehicles(vehicles: Iterable[Vehicle], term: str = "") -> list[Vehicle]:
    """Case-insensitive substring match on make, model or plate."""
    needle = term.strip().lower()
    if not needle:
        return list(vehicles)
    return [
        v
        for v in vehicles
        if needle in v.make.lower() or needle in v.model.lower() or needle in v.plate.lower()
    ]


def sorted_customers(customers: Iterable[Customer]) -> list[Customer]:
    return sorted(customers, key=lambda c: (c.name or "").casefold())


def search_sales(data: DealershipData, term: str = "") -> list[dict[str, Any]]:
    """Sales (newest first) with resolved names, matched on vehicle or customer name."""
    vehicles = data.vehicles.all()
    customers = data.customers.all()
    needle = term.strip().lower()
    rows: list[dict[str, Any]] = []
    for sale in data.sales:
        vehicle_name = resolve_vehicle_name(vehicles, sale.vehicle_id)
        customer_name = resolve_customer_name(customers, sale.customer_id)
        if needle and needle not in vehicle_name.lower() and needle not in customer_name.lower():
            continue
        rows.append({**sale.to_dict(), "vehicleName": vehicle_name, "customerName": customer_name})
    return rows


def projected_profit(vehicle: Vehicle, sale_price: float) -> float:
    return sale_price - vehicle.price_purchase


# ── Dashboard ───────────────────────────────────────────────────────


def margin_summary(
    sales: list[Sale], expenses: list[Expense], profile: StoreProfile
) -> dict[str, Any]:
    current = efficiency_ratio(sales, expenses)
    return {
        "currentMargin": round(current, 2),
        "targetMargin": profile.target_margin,
        "targetMet": current >= profile.target_margin,
    }


def dashboard_summary(data: DealershipData, *, now: datetime | None = None) -> dict[str, Any]:
    sales = data.sales.all()
    expenses = data.expenses.all()
    return {
        "totalRevenue": total_revenue(sales),
        "salesProfit": sales_profit(sales),
        "totalExpenses": total_expenses(expenses),
        "maintenanceExpenses": maintenance_expenses(expenses),
        "grossProfit": gross_profit(sales, expenses),
        "netProfit": net_profit(sales, expenses),
        "vehiclesInStock": len(vehicles_in_stock(data.vehicles)),
        "customerCount": len(data.customers),
        "salesCount": len(data.sales),
        **margin_summary(sales, expenses, data.profile),
        "monthly": monthly_series(sales, expenses, now=now),
    }
