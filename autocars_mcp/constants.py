"""Shared constants used across the data, sync and tool modules.

Stored values keep the labels of the exported backup format; the ``*_MAP``
tables accept the English aliases as input.
"""

from __future__ import annotations

import re

# ── Vehicle ─────────────────────────────────────────────────────────

STATUS_AVAILABLE = "Disponível"
STATUS_RESERVED = "Reservado"
STATUS_SOLD = "Vendido"
VEHICLE_STATUSES: tuple[str, ...] = (STATUS_AVAILABLE, STATUS_RESERVED, STATUS_SOLD)

VEHICLE_STATUS_MAP: dict[str, str] = {
    "available": STATUS_AVAILABLE,
    "disponível": STATUS_AVAILABLE,
    "disponivel": STATUS_AVAILABLE,
    "reserved": STATUS_RESERVED,
    "reservado": STATUS_RESERVED,
    "sold": STATUS_SOLD,
    "vendido": STATUS_SOLD,
}

FUEL_TYPES: tuple[str, ...] = ("Gasolina", "Etanol", "Diesel", "Híbrido", "Elétrico")

FUEL_TYPE_MAP: dict[str, str] = {
    "gasoline": "Gasolina",
    "gasolina": "Gasolina",
    "ethanol": "Etanol",
    "etanol": "Etanol",
    "diesel": "Diesel",
    "hybrid": "Híbrido",
    "híbrido": "Híbrido",
    "hibrido": "Híbrido",
    "electric": "Elétrico",
    "elétrico": "Elétrico",
    "eletrico": "Elétrico",
}

UNKNOWN_VEHICLE_LABEL = "Veículo desconhecido"
UNKNOWN_CUSTOMER_LABEL = "Cliente desconhecido"

# ── Customer ────────────────────────────────────────────────────────

CUSTOMER_STATUSES: tuple[str, ...] = ("Lead", "Negociação", "Cliente")

CUSTOMER_STATUS_MAP: dict[str, str] = {
    "lead": "Lead",
    "negotiating": "Negociação",
    "negociação": "Negociação",
    "negociacao": "Negociação",
    "customer": "Cliente",
    "cliente": "Cliente",
}

# ── Expense ─────────────────────────────────────────────────────────

MAINTENANCE_CATEGORY = "Manutenção"
EXPENSE_CATEGORIES: tuple[str, ...] = (
    "Aluguel",
    "Contas",
    MAINTENANCE_CATEGORY,
    "Marketing",
    "Outros",
)
VEHICLE_EXPENSE_CATEGORIES: tuple[str, ...] = (MAINTENANCE_CATEGORY, "Outros")

EXPENSE_CATEGORY_MAP: dict[str, str] = {
    "rent": "Aluguel",
    "aluguel": "Aluguel",
    "bills": "Contas",
    "utilities": "Contas",
    "contas": "Contas",
    "maintenance": MAINTENANCE_CATEGORY,
    "manutenção": MAINTENANCE_CATEGORY,
    "manutencao": MAINTENANCE_CATEGORY,
    "marketing": "Marketing",
    "other": "Outros",
    "others": "Outros",
    "outros": "Outros",
}

# ── Accounts & licenses ─────────────────────────────────────────────

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES: frozenset[str] = frozenset({ROLE_USER, ROLE_ADMIN})

LICENSE_AVAILABLE = "available"
LICENSE_USED = "used"
LICENSE_REVOKED = "revoked"
LICENSE_STATUSES: frozenset[str] = frozenset({LICENSE_AVAILABLE, LICENSE_USED, LICENSE_REVOKED})
LICENSE_KEY_RE = re.compile(r"^SAAS-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$")

MIN_SECRET_LENGTH = 6
DEFAULT_TARGET_MARGIN = 20.0

# ── Sync & backup ───────────────────────────────────────────────────

COLLECTION_KEYS: tuple[str, ...] = ("vehicles", "customers", "sales", "expenses")
PROFILE_KEY = "storeProfile"
BACKUP_FILE_NAME = "backup_autocars.json"
CHART_WINDOW_MONTHS = 6
