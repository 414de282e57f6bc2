"""Sale recording and listing tool implementations."""

from __future__ import annotations

from datetime import date

from autocars_mcp.analytics import projected_profit, search_sales
from autocars_mcp.app import AppContext
from autocars_mcp.constants import STATUS_SOLD
from autocars_mcp.data.models import Sale, new_id
from autocars_mcp.tools.formatting import format_brl, json_response, session_error


async def record_sale_impl(
    app: AppContext,
    *,
    vehicle_id: str,
    customer_id: str,
    sale_price: float,
    sale_date: str = "",
) -> str:
    """Record a sale; profit is fixed now from the vehicle's purchase price.

    The vehicle is marked sold in the same write.
    """
    error = session_error(app)
    if error:
        return error
    if not vehicle_id.strip() or not customer_id.strip():
        return "Error: vehicle_id and customer_id are required."
    if sale_price <= 0:
        return "Error: sale_price must be greater than 0."

    when = sale_date.strip() or date.today().isoformat()
    try:
        date.fromisoformat(when[:10])
    except ValueError:
        return "Error: sale_date must be a valid ISO date (YYYY-MM-DD)."

    data = app.router.data
    vehicle = data.vehicles.get(vehicle_id.strip())
    if vehicle is None:
        return f"Error: vehicle {vehicle_id} not found."
    if vehicle.status == STATUS_SOLD:
        return f"Error: vehicle {vehicle.id} is already sold."
    customer = data.customers.get(customer_id.strip())
    if customer is None:
        return f"Error: customer {customer_id} not found."

    sale = Sale(
        id=new_id("sale"),
        vehicle_id=vehicle.id,
        customer_id=customer.id,
        sale_price=sale_price,
        date=when,
        profit=projected_profit(vehicle, sale_price),
    )
    await app.router.add_sale(sale)
    return (
        f"Sale {sale.id} recorded: {vehicle.display_name} to {customer.name} for "
        f"{format_brl(sale.sale_price)} (profit {format_brl(sale.profit)})."
    )


def preview_sale_impl(app: AppContext, *, vehicle_id: str, sale_price: float) -> str:
    error = session_error(app)
    if error:
        return error
    vehicle = app.router.data.vehicles.get(vehicle_id.strip())
    if vehicle is None:
        return f"Error: vehicle {vehicle_id} not found."
    return json_response(
        "preview_sale",
        {
            "vehicleId": vehicle.id,
            "vehicleName": vehicle.display_name,
            "pricePurchase": vehicle.price_purchase,
            "priceSelling": vehicle.price_selling,
            "salePrice": sale_price,
            "projectedProfit": projected_profit(vehicle, sale_price),
        },
    )


def list_sales_impl(app: AppContext, *, search: str = "") -> str:
    error = session_error(app)
    if error:
        return error
    rows = search_sales(app.router.data, search)
    return json_response(
        "list_sales",
        {
            "count": len(rows),
            "totalRevenue": sum(r["salePrice"] for r in rows),
            "sales": rows,
        },
    )


async def remove_sale_impl(app: AppContext, *, sale_id: str) -> str:
    """Delete a sale record. The vehicle keeps its current status."""
    error = session_error(app)
    if error:
        return error
    sale = app.router.data.sales.get(sale_id.strip())
    if sale is None:
        return f"Error: sale {sale_id} not found."
    await app.router.remove_sale(sale.id)
    return f"Sale {sale.id} removed."
