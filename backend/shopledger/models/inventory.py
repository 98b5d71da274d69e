from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data and its live stock count.

    STOCK DESIGN DECISION:
    Product.quantity is the authoritative on-hand count. It is only written by
    services/inventory_service.py and services/products_service.py, and every
    write is paired with a ProductHistory row in the same DB transaction.

    SOFT DELETE:
    deleted_at != NULL hides the product from active listings and from order
    placement. The row stays so historical order items keep resolving their
    product name/photo. Only a soft-deleted product can be permanently deleted.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.Index("ix_products_deleted_at", "deleted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    cost_price = db.Column(db.Numeric(10, 2), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.Text, nullable=True)
    barcode = db.Column(db.String(50), nullable=True)
    photo_url = db.Column(db.Text, nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

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
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": money_str(self.price),
            "cost_price": money_str(self.cost_price),
            "quantity": self.quantity,
            "description": self.description,
            "barcode": self.barcode,
            "photo_url": self.photo_url,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductHistory(db.Model):
    """
    Append-only audit timeline for a product.

    old_value/new_value hold either a JSON snapshot (created/updated) or a
    plain stringified scalar (stock_removed/stock_added). Use
    history_service.decode_history_value() to read them.
    """
    __tablename__ = "product_history"
    __table_args__ = (
        db.Index("ix_product_history_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    action = db.Column(db.String(50), nullable=False)
    field_name = db.Column(db.String(100), nullable=True)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    note = db.Column(db.Text, nullable=True)

    # Python-side default keeps sub-second ordering inside one request
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<ProductHistory id={self.id} product_id={self.product_id} action={self.action!r}>"

    def to_dict(self) -> dict:
        from ..services.history_service import decode_history_value

        return {
            "id": self.id,
            "product_id": self.product_id,
            "action": self.action,
            "field_name": self.field_name,
            "old_value": decode_history_value(self.action, self.old_value),
            "new_value": decode_history_value(self.action, self.new_value),
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
