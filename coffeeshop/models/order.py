from enum import Enum
from tortoise import fields, models


class OrderStatus(str, Enum):
    PENDING = "pending"      # Initial state, stock already committed
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"  # Terminal
    CANCELLED = "cancelled"  # Terminal


FINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

# Legal forward moves; any non-final status may also move to CANCELLED
STATUS_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.ACCEPTED, OrderStatus.CANCELLED),
    OrderStatus.ACCEPTED: (OrderStatus.PREPARING, OrderStatus.CANCELLED),
    OrderStatus.PREPARING: (OrderStatus.READY, OrderStatus.CANCELLED),
    OrderStatus.READY: (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
    OrderStatus.DELIVERED: (),
    OrderStatus.CANCELLED: (),
}


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    MOBILE_PAYMENT = "mobile_payment"


class Order(models.Model):
    id = fields.IntField(primary_key=True)
    customer_id = fields.IntField(null=True)
    status = fields.CharEnumField(OrderStatus, max_length=16, default=OrderStatus.PENDING)
    payment_method = fields.CharEnumField(PaymentMethod, max_length=16, null=True)
    total_price = fields.DecimalField(max_digits=10, decimal_places=2, default=0)
    special_instructions = fields.JSONField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "orders"
        indexes = [
            ("status",),                 # Status-based filtering
            ("customer_id",),            # Customer order history
            ("created_at",),             # Time-based queries
            ("status", "created_at"),    # Composite: status with time
        ]


class OrderItem(models.Model):
    id = fields.IntField(primary_key=True)
    order = fields.ForeignKeyField("models.Order", related_name="items", on_delete=fields.CASCADE)
    menu_item = fields.ForeignKeyField("models.MenuItem", related_name="order_items", on_delete=fields.RESTRICT)
    quantity = fields.IntField()
    price_at_order = fields.DecimalField(max_digits=10, decimal_places=2)
    customizations = fields.JSONField(null=True)

    class Meta:
        table = "order_items"
        indexes = [
            ("menu_item_id",),          # Menu item popularity
        ]


class OrderStatusHistory(models.Model):
    id = fields.IntField(primary_key=True)
    # Plain reference so the history survives order deletion
    order_id = fields.IntField()
    status = fields.CharEnumField(OrderStatus, max_length=16)
    changed_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "order_status_history"
        indexes = [
            ("order_id", "changed_at"),
        ]
