from enum import Enum
from tortoise import fields, models


class UnitType(str, Enum):
    GRAMS = "g"
    MILLILITERS = "ml"
    SHOTS = "shots"
    ITEMS = "items"


class TransactionType(str, Enum):
    ORDER_USAGE = "order_usage"        # Stock consumed by an order (create/update)
    ORDER_DELETION = "order_deletion"  # Stock restored when an order is deleted
    ADJUSTMENT = "adjustment"          # Manual restock or correction


class Ingredient(models.Model):
    id = fields.IntField(primary_key=True)
    name = fields.CharField(max_length=255)
    quantity = fields.DecimalField(max_digits=10, decimal_places=3)
    unit = fields.CharEnumField(UnitType, max_length=8)
    cost_per_unit = fields.DecimalField(max_digits=10, decimal_places=2, null=True)
    reorder_level = fields.DecimalField(max_digits=10, decimal_places=3, default=0)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "inventory"


class InventoryTransaction(models.Model):
    """
    Append-only stock ledger. Rows are never updated or deleted; summing the
    deltas for an order reconstructs what it actually consumed.
    """
    id = fields.IntField(primary_key=True)
    ingredient = fields.ForeignKeyField("models.Ingredient", related_name="transactions", on_delete=fields.CASCADE)
    delta = fields.DecimalField(max_digits=10, decimal_places=3)
    transaction_type = fields.CharEnumField(TransactionType, max_length=16)
    # Plain reference: ledger rows outlive the order they describe
    reference_id = fields.IntField(null=True)
    notes = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "inventory_transactions"
        indexes = [
            ("reference_id",),                      # Reconciliation by order
            ("reference_id", "transaction_type"),
            ("ingredient_id", "created_at"),
        ]
