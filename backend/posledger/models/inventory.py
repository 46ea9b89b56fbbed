from __future__ import annotations

import enum

from sqlalchemy import event

from ..errors import InvalidOperationError
from ..extensions import db
from ..time_utils import to_utc_z


class StockMovementType(str, enum.Enum):
    """Effect of a movement on Product.stock_quantity."""
    IN = "IN"          # stock_quantity += quantity (purchase, return in)
    OUT = "OUT"        # stock_quantity -= quantity (sale, waste)
    ADJUST = "ADJUST"  # stock_quantity := quantity (count correction)

    @classmethod
    def parse(cls, value) -> "StockMovementType":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        raise ValueError(f"type must be one of: {', '.join(t.value for t in cls)}")


class Category(db.Model):
    """Product grouping for the catalogue; carries no stock semantics."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    STOCK DESIGN:
    stock_quantity is a running balance cached from the StockMovement ledger.
    It is written only by inventory_service.apply_stock_effect (movements and
    sale debits); product create/update never touch it.

    cost_cents reflects the latest inbound cost (IN movement with a positive cost).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(
        db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_below_min_stock(self) -> bool:
        return self.stock_quantity <= self.min_stock_level

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock_quantity": self.stock_quantity,
            "min_stock_level": self.min_stock_level,
            "is_below_min_stock": self.is_below_min_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Warehouse(db.Model):
    """
    Warehouse recorded on every movement.

    NOTE: stock is tracked globally per product; the warehouse does not
    partition Product.stock_quantity.
    """
    __tablename__ = "warehouses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    address = db.Column(db.String(512), nullable=False, default="")
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    quantity is always a non-negative magnitude; the effect comes from type.
    For ADJUST, quantity is the absolute balance the product was set to.
    cost_at_time_cents is a snapshot, never the live product cost.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_movements_quantity_non_negative"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_warehouse_created", "warehouse_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    warehouse_id = db.Column(
        db.Integer, db.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    type = db.Column(
        db.Enum(StockMovementType, native_enum=False, length=16, name="stock_movement_type"),
        nullable=False,
        index=True,
    )
    quantity = db.Column(db.Integer, nullable=False)
    cost_at_time_cents = db.Column(db.Integer, nullable=False, default=0)

    note = db.Column(db.String(255), nullable=False, default="")
    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Set for movements generated by a sale
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="RESTRICT"), nullable=True, index=True)

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))
    warehouse = db.relationship("Warehouse", backref=db.backref("stock_movements", lazy=True))
    sale = db.relationship("Sale", backref=db.backref("stock_movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": self.warehouse.name if self.warehouse else None,
            "type": self.type.value,
            "quantity": self.quantity,
            "cost_at_time_cents": self.cost_at_time_cents,
            "note": self.note,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "sale_id": self.sale_id,
        }


@event.listens_for(StockMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise InvalidOperationError(
        "Stock movements are append-only and cannot be modified",
        {"stock_movement_id": target.id},
    )


@event.listens_for(StockMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise InvalidOperationError(
        "Stock movements are append-only and cannot be deleted",
        {"stock_movement_id": target.id},
    )
