"""License administration tools (administrator accounts only)."""

from __future__ import annotations

from autocars_mcp.app import AppContext
from autocars_mcp.constants import LICENSE_STATUSES
from autocars_mcp.tools.formatting import admin_error, json_response


async def generate_license_impl(app: AppContext) -> str:
    error = admin_error(app)
    if error:
        return error
    assert app.session is not None
    license_ = await app.licenses.generate(app.session.email)
    return f"License {license_.key} generated."


def list_licenses_impl(app: AppContext, *, status: str = "") -> str:
    error = admin_error(app)
    if error:
        return error
    wanted = status.strip().lower()
    if wanted and wanted not in LICENSE_STATUSES:
        return f"Error: status must be one of: {', '.join(sorted(LICENSE_STATUSES))}"
    licenses = app.licenses.list_licenses(status=wanted)
    return json_response(
        "list_licenses",
        {"count": len(licenses), "licenses": [lic.to_dict() for lic in licenses]},
    )


async def revoke_license_impl(app: AppContext, *, key: str) -> str:
    error = admin_error(app)
    if error:
        return error
    if not key.strip():
        return "Error: key is required."
    if not await app.licenses.revoke(key):
        return f"Error: license {key.strip().upper()} not found."
    return f"License {key.strip().upper()} revoked."
