from tortoise import fields, models


class Customer(models.Model):
    id = fields.IntField(primary_key=True)
    first_name = fields.CharField(max_length=128)
    last_name = fields.CharField(max_length=128)
    phone = fields.CharField(max_length=32, null=True, unique=True)
    email = fields.CharField(max_length=255, null=True, unique=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "customers"

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
