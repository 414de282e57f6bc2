"""Expense, dashboard and store-profile tool implementations."""

from __future__ import annotations

from dataclasses import replace
from datetime import date

from autocars_mcp.analytics import (
    dashboard_summary,
    monthly_series,
    net_profit,
    resolve_vehicle_name,
    total_expenses,
    total_revenue,
)
from autocars_mcp.app import AppContext
from autocars_mcp.data.models import Expense, new_id, normalize_expense_category
from autocars_mcp.errors import ValidationError
from autocars_mcp.tools.formatting import format_brl, json_response, session_error


async def add_expense_impl(
    app: AppContext,
    *,
    description: str,
    amount: float,
    category: str,
    expense_date: str = "",
    vehicle_id: str = "",
) -> str:
    error = session_error(app)
    if error:
        return error
    if not description.strip():
        return "Error: description is required."
    if amount <= 0:
        return "Error: amount must be greater than 0."
    try:
        normalized = normalize_expense_category(category)
    except ValidationError as exc:
        return f"Error: {exc}"
    when = expense_date.strip() or date.today().isoformat()
    try:
        date.fromisoformat(when[:10])
    except ValueError:
        return "Error: expense_date must be a valid ISO date (YYYY-MM-DD)."
    linked = vehicle_id.strip()
    if linked and app.router.data.vehicles.get(linked) is None:
        return f"Error: vehicle {linked} not found."

    expense = Expense(
        id=new_id("exp"),
        description=description.strip(),
        category=normalized,
        amount=amount,
        date=when,
        vehicle_id=linked or None,
    )
    await app.router.add_expense(expense)
    return f"Expense {expense.id} recorded: {expense.description} ({format_brl(amount)})."


async def remove_expense_impl(app: AppContext, *, expense_id: str) -> str:
    error = session_error(app)
    if error:
        return error
    expense = app.router.data.expenses.get(expense_id.strip())
    if expense is None:
        return f"Error: expense {expense_id} not found."
    await app.router.remove_expense(expense.id)
    return f"Expense {expense.id} removed."


def list_finance_impl(app: AppContext) -> str:
    """Sales and expenses ledgers with their totals."""
    error = session_error(app)
    if error:
        return error
    data = app.router.data
    sales = data.sales.all()
    expenses = data.expenses.all()
    vehicles = data.vehicles.all()
    return json_response(
        "list_finance",
        {
            "totalSales": total_revenue(sales),
            "totalExpenses": total_expenses(expenses),
            "net": net_profit(sales, expenses),
            "sales": [s.to_dict() for s in sales],
            "expenses": [
                {
                    **e.to_dict(),
                    "vehicleName": resolve_vehicle_name(vehicles, e.vehicle_id)
                    if e.vehicle_id
                    else None,
                }
                for e in expenses
            ],
        },
    )


def get_dashboard_impl(app: AppContext) -> str:
    error = session_error(app)
    if error:
        return error
    return json_response("get_dashboard", dashboard_summary(app.router.data))


def get_monthly_chart_impl(app: AppContext) -> str:
    error = session_error(app)
    if error:
        return error
    data = app.router.data
    return json_response(
        "get_monthly_chart",
        {"months": monthly_series(data.sales, data.expenses)},
    )


def get_store_profile_impl(app: AppContext) -> str:
    error = session_error(app)
    if error:
        return error
    return json_response("get_store_profile", app.router.data.profile.to_dict())


async def update_store_profile_impl(
    app: AppContext,
    *,
    name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
) -> str:
    error = session_error(app)
    if error:
        return error
    changes = {
        field: value.strip()
        for field, value in (("name", name), ("email", email), ("phone", phone))
        if value is not None
    }
    if not changes:
        return "No profile changes given."
    if "name" in changes and not changes["name"]:
        return "Error: store name cannot be empty."
    await app.router.update_store_profile(replace(app.router.data.profile, **changes))
    return f"Store profile updated ({', '.join(sorted(changes))})."


async def update_target_margin_impl(app: AppContext, *, target_margin: float) -> str:
    error = session_error(app)
    if error:
        return error
    if not 0 <= target_margin <= 100:
        return "Error: target_margin must be between 0 and 100."
    profile = replace(app.router.data.profile, target_margin=float(target_margin))
    await app.router.update_store_profile(profile)
    return f"Target margin set to {target_margin:g}%."
