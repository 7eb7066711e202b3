from django.db import models
from django.db.models import F, Q

from cafe.models.base import BaseModel
from cafe.models.shop import MeetingRoom
from cafe.models.voucher import Voucher


class Booking(BaseModel):
    """
    A customer's reservation of a meeting room for [start_time, end_time).

    Bookings are immutable except for the BOOKED -> CANCELLED transition.
    Non-cancelled bookings of the same room never overlap; BookingService
    checks this while holding a row lock on the room.
    """

    class Status(models.TextChoices):
        BOOKED = "booked", "Booked"
        CANCELLED = "cancelled", "Cancelled"

    customer_id = models.UUIDField(db_index=True)
    room = models.ForeignKey(
        MeetingRoom,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    total_price = models.DecimalField(max_digits=14, decimal_places=2)
    voucher = models.ForeignKey(
        Voucher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bookings",
    )
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.BOOKED,
    )

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=Q(end_time__gt=F("start_time")),
                name="booking_end_after_start",
            ),
            models.CheckConstraint(
                condition=Q(total_price__gte=0),
                name="booking_total_price_non_negative",
            ),
        ]
        indexes = [
            models.Index(
                fields=["room", "status", "start_time"], name="idx_booking_room_slot"
            ),
        ]

    def __str__(self):
        return (
            f"Booking {self.id} | room={self.room_id} | "
            f"{self.start_time:%Y-%m-%d %H:%M}-{self.end_time:%H:%M} | {self.status}"
        )

    @classmethod
    def overlapping(cls, room_id, start_time, end_time):
        """
        Return live bookings of the room that overlap [start_time, end_time).

        Two half-open intervals [a, b) and [c, d) overlap iff a < d and c < b,
        so back-to-back bookings do not conflict.
        """
        return cls.objects.filter(
            room_id=room_id,
            start_time__lt=end_time,
            end_time__gt=start_time,
        ).exclude(status=cls.Status.CANCELLED)
