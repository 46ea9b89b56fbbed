# Overview: Service-layer operations for customers; master data maintenance and checkout lookups.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import CustomerInUse, CustomerNotFound
from ..extensions import db
from ..models import Customer, Sale
from ..validation import ConflictError

CUSTOMER_MUTABLE_FIELDS = {"name", "email", "phone", "address", "is_active"}


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(customer_id)
    return customer


def list_customers(*, active_only: bool = False, search: str | None = None) -> list[Customer]:
    q = db.session.query(Customer)
    if active_only:
        q = q.filter(Customer.is_active.is_(True))
    if search:
        q = q.filter(Customer.name.ilike(f"%{search}%"))
    return q.order_by(Customer.name.asc(), Customer.id.asc()).all()


def create_customer(*, patch: dict) -> Customer:
    email = patch.get("email")
    if email and db.session.query(Customer).filter(Customer.email == email).first():
        raise ConflictError("A customer with this email already exists.")

    customer = Customer()
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)

    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A customer with this email already exists.")
    return customer


def update_customer(*, customer_id: int, patch: dict) -> Customer:
    customer = get_customer(customer_id)

    email = patch.get("email")
    if email and email != customer.email:
        taken = (
            db.session.query(Customer)
            .filter(Customer.email == email, Customer.id != customer.id)
            .first()
        )
        if taken is not None:
            raise ConflictError("A customer with this email already exists.")

    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A customer with this email already exists.")
    return customer


def delete_customer(*, customer_id: int) -> None:
    """
    Hard-delete a customer without sales.

    Customers that appear on a sale stay for receipt history; deactivate them
    instead.
    """
    customer = get_customer(customer_id)
    if db.session.query(Sale.id).filter(Sale.customer_id == customer.id).first() is not None:
        raise CustomerInUse(customer.id)

    db.session.delete(customer)
    db.session.commit()
