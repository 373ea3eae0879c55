# Overview: Customer directory (contact and loyalty profiles).

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer
from ..validation import (
    ModelValidationPolicy,
    ConflictError,
    validate_payload,
)
from .audit_service import append_audit_event
from .concurrency import run_in_transaction


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone"},
    required_on_create={"name"},
)


class CustomerError(Exception):
    """Raised for customer directory errors."""
    pass


def get_customer(customer_id: int) -> Customer | None:
    return db.session.get(Customer, customer_id)


def _ensure_phone_free(phone: str | None, *, exclude_id: int | None = None) -> None:
    if not phone:
        return
    owner = db.session.query(Customer).filter_by(phone=phone).first()
    if owner is not None and owner.id != exclude_id:
        raise ConflictError(f"Phone {phone} already belongs to {owner.name}")


def create_customer(payload: dict, *, actor: str) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    patch["phone"] = patch.get("phone") or None

    def _op() -> Customer:
        _ensure_phone_free(patch["phone"])
        customer = Customer(**patch)
        db.session.add(customer)
        db.session.flush()
        append_audit_event(
            actor=actor,
            action="Create Customer",
            details=customer.name,
            entity_type="customer",
            entity_id=customer.id,
        )
        return customer

    return run_in_transaction(_op)


def update_customer(customer_id: int, payload: dict, *, actor: str) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    if "phone" in patch:
        patch["phone"] = patch["phone"] or None

    def _op() -> Customer:
        customer = get_customer(customer_id)
        if customer is None:
            raise CustomerError(f"Customer {customer_id} not found")
        if "phone" in patch:
            _ensure_phone_free(patch["phone"], exclude_id=customer.id)
        for key, value in patch.items():
            setattr(customer, key, value)
        db.session.flush()
        append_audit_event(
            actor=actor,
            action="Update Customer",
            details=", ".join(sorted(patch)) or "no changes",
            entity_type="customer",
            entity_id=customer.id,
        )
        return customer

    return run_in_transaction(_op)


def list_customers(search: str | None = None, limit: int = 200) -> list[Customer]:
    q = db.session.query(Customer)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Customer.name.ilike(like), Customer.phone.ilike(like)))
    return q.order_by(Customer.name, Customer.id).limit(limit).all()
