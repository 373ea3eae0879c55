"""
Closed vocabularies shared by the ledger models and services.

Values are stored as plain strings; the enums exist so that services compare
against a first-class tag instead of sniffing free-text notes.
"""
from __future__ import annotations

import enum


class Channel(str, enum.Enum):
    """Distribution pathway a stock change or commercial record belongs to."""
    SALE = "Sale"
    SHOPIFY = "Shopify"
    PREORDER = "PreOrder"
    PR = "PR"
    FNF = "FnF"
    TRANSFER = "Transfer"


class TransactionType(str, enum.Enum):
    SALE = "Sale"
    SHOPIFY = "Shopify"
    PREORDER = "PreOrder"
    PR = "PR"
    FNF = "FnF"
    RETURN = "Return"


class MovementKind(str, enum.Enum):
    SALE = "Sale"
    INWARD = "Inward"
    OUTWARD = "Outward"
    TRANSFER = "Transfer"
    ADJUSTMENT = "Adjustment"
    RETURN = "Return"


class Location(str, enum.Enum):
    STORE = "Store"
    WAREHOUSE = "Warehouse"
    BOTH = "Both"


class PaymentMethod(str, enum.Enum):
    CASH = "Cash"
    CARD = "Card"
    NONE = "N/A"


class Shift(str, enum.Enum):
    MORNING = "Morning"
    NIGHT = "Night"


class OperatorRole(str, enum.Enum):
    ADMIN = "Admin"
    CASHIER = "Cashier"
    WAREHOUSE = "Warehouse"
    VIEWER = "Viewer"


def coerce_enum(enum_cls, value):
    """Accept an enum member or its string value; raise ValueError otherwise."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"{value!r} is not a valid {enum_cls.__name__} (expected one of: {allowed})")
