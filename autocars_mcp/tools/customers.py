"""Customer tool implementations."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from autocars_mcp.analytics import sorted_customers
from autocars_mcp.app import AppContext
from autocars_mcp.constants import CUSTOMER_STATUSES
from autocars_mcp.data.models import Customer, new_id, normalize_customer_status
from autocars_mcp.errors import ValidationError
from autocars_mcp.tools.formatting import json_response, session_error


async def add_customer_impl(
    app: AppContext,
    *,
    name: str,
    email: str = "",
    phone: str = "",
    address: str = "",
    status: str = CUSTOMER_STATUSES[0],
    notes: str = "",
) -> str:
    error = session_error(app)
    if error:
        return error
    if not name.strip():
        return "Error: customer name is required."
    try:
        normalized_status = normalize_customer_status(status)
    except ValidationError as exc:
        return f"Error: {exc}"

    customer = Customer(
        id=new_id("cus"),
        name=name.strip(),
        email=email.strip(),
        phone=phone.strip(),
        address=address.strip(),
        status=normalized_status,
        notes=notes.strip(),
    )
    await app.router.add_customer(customer)
    return f"Customer {customer.id} added: {customer.name}."


async def update_customer_impl(
    app: AppContext,
    *,
    customer_id: str,
    name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    status: str | None = None,
    notes: str | None = None,
) -> str:
    error = session_error(app)
    if error:
        return error
    current = app.router.data.customers.get(customer_id.strip())
    if current is None:
        return f"Error: customer {customer_id} not found."

    changes: dict[str, Any] = {}
    for field, value in (
        ("name", name),
        ("email", email),
        ("phone", phone),
        ("address", address),
        ("notes", notes),
    ):
        if value is not None:
            changes[field] = value.strip()
    if "name" in changes and not changes["name"]:
        return "Error: customer name is required."
    if status is not None:
        try:
            changes["status"] = normalize_customer_status(status)
        except ValidationError as exc:
            return f"Error: {exc}"
    if not changes:
        return f"No changes for customer {current.id}."

    await app.router.update_customer(replace(current, **changes))
    return f"Customer {current.id} updated ({', '.join(sorted(changes))})."


async def remove_customer_impl(
    app: AppContext,
    *,
    customer_id: str,
    confirm: bool = False,
) -> str:
    error = session_error(app)
    if error:
        return error
    customer = app.router.data.customers.get(customer_id.strip())
    if customer is None:
        return f"Error: customer {customer_id} not found."
    if not confirm:
        return (
            f"Removing customer {customer.name} ({customer.id}) cannot be undone. "
            "Call again with confirm=true to delete it."
        )
    await app.router.remove_customer(customer.id)
    return f"Customer {customer.id} removed."


def list_customers_impl(app: AppContext, *, search: str = "") -> str:
    """Customers sorted by name, optionally matched on name, e-mail or phone."""
    error = session_error(app)
    if error:
        return error
    needle = search.strip().lower()
    customers = [
        c
        for c in sorted_customers(app.router.data.customers)
        if not needle
        or needle in c.name.lower()
        or needle in c.email.lower()
        or needle in c.phone.lower()
    ]
    return json_response(
        "list_customers",
        {"count": len(customers), "customers": [c.to_dict() for c in customers]},
    )
