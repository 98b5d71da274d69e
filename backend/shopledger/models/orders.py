from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import money_str, to_money
from ..time_utils import to_utc_z

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_SHIPPED = "shipped"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"

# Any status may move to any other; only crossings of the cancelled boundary
# touch stock (see orders_service.set_order_status).
ORDER_STATUSES = (
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_SHIPPED,
    STATUS_DELIVERED,
    STATUS_CANCELLED,
)


class Order(db.Model):
    """
    Customer order: customer-facing fields plus a status.

    Line items are created with the order and never edited afterwards; the
    order total is derived from them and never stored.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status", "status"),
        db.Index("ix_orders_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    fb_name = db.Column(db.String(255), nullable=False)
    recipient_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    address = db.Column(db.String(500), nullable=False)
    comment = db.Column(db.String(1000), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "OrderItem",
        backref=db.backref("order", lazy=True),
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_price(self) -> Decimal:
        return to_money(sum((item.subtotal for item in self.items), Decimal("0")))

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status!r}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "fb_name": self.fb_name,
            "recipient_name": self.recipient_name,
            "phone": self.phone,
            "address": self.address,
            "comment": self.comment,
            "status": self.status,
            "total_price": money_str(self.total_price),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    One line of an order.

    unit_price is the price quoted to the customer, frozen at order time.
    Never re-read it from the live product.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        db.UniqueConstraint("order_id", "product_id", name="uq_order_items_order_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    courier_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Display only: name/photo come from the product, price does not
    product = db.relationship("Product", lazy="joined")

    @property
    def subtotal(self) -> Decimal:
        return to_money(
            to_money(self.unit_price) * self.quantity + to_money(self.courier_price or 0)
        )

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": product.name if product else None,
            "product_photo_url": product.photo_url if product else None,
            "product_barcode": product.barcode if product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "courier_price": money_str(self.courier_price),
            "subtotal": money_str(self.subtotal),
            "created_at": to_utc_z(self.created_at),
        }
