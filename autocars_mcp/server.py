"""AutoCars MCP server: FastMCP entry point for the dealership back office."""

from __future__ import annotations

import logging

from mcp.server.fastmcp import FastMCP

from autocars_mcp.app import get_app
from autocars_mcp.errors import AutoCarsError
from autocars_mcp.tools.account import (
    login_impl,
    logout_impl,
    register_impl,
    reset_password_impl,
    session_status_impl,
)
from autocars_mcp.tools.backup import (
    connect_dropbox_impl,
    disconnect_dropbox_impl,
    dropbox_authorize_url_impl,
    export_backup_impl,
    import_backup_impl,
    restore_backup_from_dropbox_impl,
    upload_backup_to_dropbox_impl,
)
from autocars_mcp.tools.customers import (
    add_customer_impl,
    list_customers_impl,
    remove_customer_impl,
    update_customer_impl,
)
from autocars_mcp.tools.descriptions import generate_vehicle_description_impl
from autocars_mcp.tools.finance import (
    add_expense_impl,
    get_dashboard_impl,
    get_monthly_chart_impl,
    get_store_profile_impl,
    list_finance_impl,
    remove_expense_impl,
    update_store_profile_impl,
    update_target_margin_impl,
)
from autocars_mcp.tools.inventory import (
    add_vehicle_expense_impl,
    add_vehicle_impl,
    get_vehicle_costs_impl,
    list_vehicles_impl,
    remove_vehicle_impl,
    update_vehicle_impl,
)
from autocars_mcp.tools.licenses import (
    generate_license_impl,
    list_licenses_impl,
    revoke_license_impl,
)
from autocars_mcp.tools.sales import (
    list_sales_impl,
    preview_sale_impl,
    record_sale_impl,
    remove_sale_impl,
)

mcp = FastMCP("AutoCars")
logger = logging.getLogger(__name__)


def _log_and_return_tool_error(*, tool_name: str, exc: Exception, user_message: str) -> str:
    logger.exception("Tool %s failed: %s", tool_name, exc)
    return user_message


def _tool_error(tool_name: str, exc: Exception, action: str) -> str:
    if isinstance(exc, (AutoCarsError, ValueError)):
        return f"Error: {exc}"
    return _log_and_return_tool_error(
        tool_name=tool_name,
        exc=exc,
        user_message=f"I am having trouble {action} right now. Please try again in a moment.",
    )


# ── Account ─────────────────────────────────────────────────────────


@mcp.tool()
async def login(email: str, password: str) -> str:
    """Log in with e-mail and password (remote account service first, then local accounts)."""
    try:
        return await login_impl(await get_app(), email=email, password=password)
    except Exception as exc:
        return _tool_error("login", exc, "logging you in")


@mcp.tool()
async def register(
    email: str,
    password: str,
    store_name: str,
    access_key: str,
    confirm_password: str = "",
) -> str:
    """Create a store account. Requires an access key (license or master code)."""
    try:
        return await register_impl(
            await get_app(),
            email=email,
            password=password,
            store_name=store_name,
            access_key=access_key,
            confirm_password=confirm_password or None,
        )
    except Exception as exc:
        return _tool_error("register", exc, "creating the account")


@mcp.tool()
async def logout() -> str:
    """End the current session. Stored data is kept."""
    try:
        return await logout_impl(await get_app())
    except Exception as exc:
        return _tool_error("logout", exc, "logging out")


@mcp.tool()
async def reset_password(email: str) -> str:
    """Send a password reset e-mail (remote accounts only)."""
    try:
        return await reset_password_impl(await get_app(), email=email)
    except Exception as exc:
        return _tool_error("reset_password", exc, "sending the reset e-mail")


@mcp.tool()
async def session_status() -> str:
    """Show the session state, the active account and its persistence mode."""
    try:
        return session_status_impl(await get_app())
    except Exception as exc:
        return _tool_error("session_status", exc, "reading the session")


# ── Inventory ───────────────────────────────────────────────────────


@mcp.tool()
async def add_vehicle(
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
    status: str = "Disponível",
    description: str = "",
    photo_url: str = "",
) -> str:
    """Add a vehicle to the inventory (status: Disponível or Reservado)."""
    try:
        return await add_vehicle_impl(
            await get_app(),
            make=make,
            model=model,
            year=year,
            version=version,
            plate=plate,
            mileage=mileage,
            color=color,
            fuel=fuel,
            price_purchase=price_purchase,
            price_selling=price_selling,
            status=status,
            description=description,
            photo_url=photo_url,
        )
    except Exception as exc:
        return _tool_error("add_vehicle", exc, "adding the vehicle")


@mcp.tool()
async def update_vehicle(
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
    """Update fields of an existing vehicle; omitted fields are unchanged."""
    try:
        return await update_vehicle_impl(
            await get_app(),
            vehicle_id=vehicle_id,
            make=make,
            model=model,
            year=year,
            version=version,
            plate=plate,
            mileage=mileage,
            color=color,
            fuel=fuel,
            price_purchase=price_purchase,
            price_selling=price_selling,
            status=status,
            description=description,
            photo_url=photo_url,
        )
    except Exception as exc:
        return _tool_error("update_vehicle", exc, "updating the vehicle")


@mcp.tool()
async def remove_vehicle(vehicle_id: str, confirm: bool = False) -> str:
    """Delete a vehicle. Requires confirm=true."""
    try:
        return await remove_vehicle_impl(await get_app(), vehicle_id=vehicle_id, confirm=confirm)
    except Exception as exc:
        return _tool_error("remove_vehicle", exc, "removing the vehicle")


@mcp.tool()
async def list_vehicles(search: str = "", in_stock_only: bool = False) -> str:
    """List vehicles, optionally matching make, model or plate, with total cost per vehicle."""
    try:
        return list_vehicles_impl(await get_app(), search=search, in_stock_only=in_stock_only)
    except Exception as exc:
        return _tool_error("list_vehicles", exc, "listing vehicles")


@mcp.tool()
async def get_vehicle_costs(vehicle_id: str) -> str:
    """Show purchase price, linked expenses and total cost of one vehicle."""
    try:
        return get_vehicle_costs_impl(await get_app(), vehicle_id=vehicle_id)
    except Exception as exc:
        return _tool_error("get_vehicle_costs", exc, "reading vehicle costs")


@mcp.tool()
async def add_vehicle_expense(
    vehicle_id: str,
    description: str,
    amount: float,
    category: str = "Manutenção",
    expense_date: str = "",
) -> str:
    """Record a maintenance or other expense linked to a vehicle."""
    try:
        return await add_vehicle_expense_impl(
            await get_app(),
            vehicle_id=vehicle_id,
            description=description,
            amount=amount,
            category=category,
            expense_date=expense_date,
        )
    except Exception as exc:
        return _tool_error("add_vehicle_expense", exc, "recording the expense")


@mcp.tool()
async def generate_vehicle_description(
    vehicle_id: str = "",
    make: str = "",
    model: str = "",
    year: int = 0,
    version: str = "",
    mileage: int = 0,
    color: str = "",
    fuel: str = "",
    save: bool = False,
) -> str:
    """Draft a listing description with AI for a stored vehicle or the given fields."""
    try:
        return await generate_vehicle_description_impl(
            await get_app(),
            vehicle_id=vehicle_id,
            make=make,
            model=model,
            year=year,
            version=version,
            mileage=mileage,
            color=color,
            fuel=fuel,
            save=save,
        )
    except Exception as exc:
        return _tool_error("generate_vehicle_description", exc, "drafting the description")


# ── Customers ───────────────────────────────────────────────────────


@mcp.tool()
async def add_customer(
    name: str,
    email: str = "",
    phone: str = "",
    address: str = "",
    status: str = "Lead",
    notes: str = "",
) -> str:
    """Add a customer (status: Lead, Negociação or Cliente)."""
    try:
        return await add_customer_impl(
            await get_app(),
            name=name,
            email=email,
            phone=phone,
            address=address,
            status=status,
            notes=notes,
        )
    except Exception as exc:
        return _tool_error("add_customer", exc, "adding the customer")


@mcp.tool()
async def update_customer(
    customer_id: str,
    name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    status: str | None = None,
    notes: str | None = None,
) -> str:
    """Update fields of an existing customer."""
    try:
        return await update_customer_impl(
            await get_app(),
            customer_id=customer_id,
            name=name,
            email=email,
            phone=phone,
            address=address,
            status=status,
            notes=notes,
        )
    except Exception as exc:
        return _tool_error("update_customer", exc, "updating the customer")


@mcp.tool()
async def remove_customer(customer_id: str, confirm: bool = False) -> str:
    """Delete a customer. Requires confirm=true."""
    try:
        return await remove_customer_impl(
            await get_app(), customer_id=customer_id, confirm=confirm
        )
    except Exception as exc:
        return _tool_error("remove_customer", exc, "removing the customer")


@mcp.tool()
async def list_customers(search: str = "") -> str:
    """List customers sorted by name."""
    try:
        return list_customers_impl(await get_app(), search=search)
    except Exception as exc:
        return _tool_error("list_customers", exc, "listing customers")


# ── Sales ───────────────────────────────────────────────────────────


@mcp.tool()
async def record_sale(
    vehicle_id: str,
    customer_id: str,
    sale_price: float,
    sale_date: str = "",
) -> str:
    """Record a sale; marks the vehicle sold and stores the profit."""
    try:
        return await record_sale_impl(
            await get_app(),
            vehicle_id=vehicle_id,
            customer_id=customer_id,
            sale_price=sale_price,
            sale_date=sale_date,
        )
    except Exception as exc:
        return _tool_error("record_sale", exc, "recording the sale")


@mcp.tool()
async def preview_sale(vehicle_id: str, sale_price: float) -> str:
    """Show the projected profit of selling a vehicle at the given price."""
    try:
        return preview_sale_impl(await get_app(), vehicle_id=vehicle_id, sale_price=sale_price)
    except Exception as exc:
        return _tool_error("preview_sale", exc, "projecting the profit")


@mcp.tool()
async def list_sales(search: str = "") -> str:
    """List sales with vehicle and customer names, optionally filtered by name."""
    try:
        return list_sales_impl(await get_app(), search=search)
    except Exception as exc:
        return _tool_error("list_sales", exc, "listing sales")


@mcp.tool()
async def remove_sale(sale_id: str) -> str:
    """Delete a sale record."""
    try:
        return await remove_sale_impl(await get_app(), sale_id=sale_id)
    except Exception as exc:
        return _tool_error("remove_sale", exc, "removing the sale")


# ── Finance ─────────────────────────────────────────────────────────


@mcp.tool()
async def add_expense(
    description: str,
    amount: float,
    category: str,
    expense_date: str = "",
    vehicle_id: str = "",
) -> str:
    """Record a store expense (Aluguel, Contas, Manutenção, Marketing, Outros)."""
    try:
        return await add_expense_impl(
            await get_app(),
            description=description,
            amount=amount,
            category=category,
            expense_date=expense_date,
            vehicle_id=vehicle_id,
        )
    except Exception as exc:
        return _tool_error("add_expense", exc, "recording the expense")


@mcp.tool()
async def remove_expense(expense_id: str) -> str:
    """Delete an expense."""
    try:
        return await remove_expense_impl(await get_app(), expense_id=expense_id)
    except Exception as exc:
        return _tool_error("remove_expense", exc, "removing the expense")


@mcp.tool()
async def list_finance() -> str:
    """List sales and expenses with their totals."""
    try:
        return list_finance_impl(await get_app())
    except Exception as exc:
        return _tool_error("list_finance", exc, "reading the ledger")


@mcp.tool()
async def get_dashboard() -> str:
    """Revenue, profit, expense KPIs, margin vs. target and the 6-month chart."""
    try:
        return get_dashboard_impl(await get_app())
    except Exception as exc:
        return _tool_error("get_dashboard", exc, "building the dashboard")


@mcp.tool()
async def get_monthly_chart() -> str:
    """Monthly sales, gross profit, expenses and net profit for the last 6 months."""
    try:
        return get_monthly_chart_impl(await get_app())
    except Exception as exc:
        return _tool_error("get_monthly_chart", exc, "building the chart")


@mcp.tool()
async def get_store_profile() -> str:
    """Show the store profile."""
    try:
        return get_store_profile_impl(await get_app())
    except Exception as exc:
        return _tool_error("get_store_profile", exc, "reading the store profile")


@mcp.tool()
async def update_store_profile(
    name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
) -> str:
    """Update the store name, e-mail or phone."""
    try:
        return await update_store_profile_impl(
            await get_app(), name=name, email=email, phone=phone
        )
    except Exception as exc:
        return _tool_error("update_store_profile", exc, "updating the store profile")


@mcp.tool()
async def update_target_margin(target_margin: float) -> str:
    """Set the target net margin percentage (0-100)."""
    try:
        return await update_target_margin_impl(await get_app(), target_margin=target_margin)
    except Exception as exc:
        return _tool_error("update_target_margin", exc, "updating the target margin")


# ── Backup ──────────────────────────────────────────────────────────


@mcp.tool()
async def export_backup(path: str = "") -> str:
    """Export all data as JSON, or write it to ``path``."""
    try:
        return export_backup_impl(await get_app(), path=path)
    except Exception as exc:
        return _tool_error("export_backup", exc, "exporting the backup")


@mcp.tool()
async def import_backup(content: str = "", path: str = "") -> str:
    """Restore data from backup JSON text or a backup file path."""
    try:
        return await import_backup_impl(await get_app(), content=content, path=path)
    except Exception as exc:
        return _tool_error("import_backup", exc, "importing the backup")


@mcp.tool()
async def dropbox_authorize_url() -> str:
    """Get the Dropbox authorization link."""
    try:
        return dropbox_authorize_url_impl(await get_app())
    except Exception as exc:
        return _tool_error("dropbox_authorize_url", exc, "building the Dropbox link")


@mcp.tool()
async def connect_dropbox(access_token: str) -> str:
    """Store the Dropbox access token returned by the authorization redirect."""
    try:
        return connect_dropbox_impl(await get_app(), access_token=access_token)
    except Exception as exc:
        return _tool_error("connect_dropbox", exc, "connecting Dropbox")


@mcp.tool()
async def disconnect_dropbox() -> str:
    """Forget the stored Dropbox token."""
    try:
        return disconnect_dropbox_impl(await get_app())
    except Exception as exc:
        return _tool_error("disconnect_dropbox", exc, "disconnecting Dropbox")


@mcp.tool()
async def upload_backup_to_dropbox() -> str:
    """Upload a full backup to Dropbox, overwriting the previous one."""
    try:
        return await upload_backup_to_dropbox_impl(await get_app())
    except Exception as exc:
        return _tool_error("upload_backup_to_dropbox", exc, "uploading to Dropbox")


@mcp.tool()
async def restore_backup_from_dropbox() -> str:
    """Restore data from the Dropbox backup."""
    try:
        return await restore_backup_from_dropbox_impl(await get_app())
    except Exception as exc:
        return _tool_error("restore_backup_from_dropbox", exc, "restoring from Dropbox")


# ── Licenses (admin) ────────────────────────────────────────────────


@mcp.tool()
async def generate_license() -> str:
    """Generate a registration access key (administrators only)."""
    try:
        return await generate_license_impl(await get_app())
    except Exception as exc:
        return _tool_error("generate_license", exc, "generating the license")


@mcp.tool()
async def list_licenses(status: str = "") -> str:
    """List issued access keys, newest first (administrators only)."""
    try:
        return list_licenses_impl(await get_app(), status=status)
    except Exception as exc:
        return _tool_error("list_licenses", exc, "listing licenses")


@mcp.tool()
async def revoke_license(key: str) -> str:
    """Revoke an access key so it can no longer be used (administrators only)."""
    try:
        return await revoke_license_impl(await get_app(), key=key)
    except Exception as exc:
        return _tool_error("revoke_license", exc, "revoking the license")


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    mcp.run()


if __name__ == "__main__":
    main()
