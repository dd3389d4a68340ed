from tortoise import fields, models


class MenuItem(models.Model):
    id = fields.IntField(primary_key=True)
    name = fields.CharField(max_length=255)
    description = fields.TextField(null=True)
    price = fields.DecimalField(max_digits=10, decimal_places=2)
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "menu_items"
        indexes = [
            ("is_active",),  # Filter active items
        ]


class RecipeIngredient(models.Model):
    """How much of one ingredient a single unit of a menu item consumes."""
    id = fields.IntField(primary_key=True)
    menu_item = fields.ForeignKeyField("models.MenuItem", related_name="ingredients", on_delete=fields.CASCADE)
    ingredient = fields.ForeignKeyField("models.Ingredient", related_name="recipes", on_delete=fields.RESTRICT)
    quantity = fields.DecimalField(max_digits=10, decimal_places=3)

    class Meta:
        table = "menu_item_ingredients"
        unique_together = (("menu_item", "ingredient"),)


class PriceHistory(models.Model):
    id = fields.IntField(primary_key=True)
    menu_item = fields.ForeignKeyField("models.MenuItem", related_name="price_changes", on_delete=fields.CASCADE)
    old_price = fields.DecimalField(max_digits=10, decimal_places=2)
    new_price = fields.DecimalField(max_digits=10, decimal_places=2)
    changed_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "price_history"
        indexes = [
            ("menu_item_id", "changed_at"),
        ]
