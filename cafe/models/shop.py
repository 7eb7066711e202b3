from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from cafe.models.base import BaseModel


class CoffeeShop(BaseModel):
    """A coffee shop that rents out meeting rooms. Managed in the admin."""

    owner_id = models.UUIDField(db_index=True)
    name = models.CharField(max_length=255)
    location = models.CharField(max_length=255)
    description = models.TextField(blank=True)

    def __str__(self):
        return self.name


class MeetingRoom(BaseModel):
    """
    A bookable room inside a coffee shop.

    Only `price_per_hour` and `available` take part in settlement; the
    remaining fields are descriptive.
    """

    coffee_shop = models.ForeignKey(
        CoffeeShop,
        on_delete=models.CASCADE,
        related_name="rooms",
    )
    name = models.CharField(max_length=255)
    capacity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    price_per_hour = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    available = models.BooleanField(default=True)

    class Meta(BaseModel.Meta):
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} @ {self.coffee_shop_id} ({self.price_per_hour}/h)"
