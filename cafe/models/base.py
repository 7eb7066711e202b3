import uuid

from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing a UUID primary key and timestamp fields.

    All concrete models in the cafe app inherit from this so every row has
    a public identifier and consistent created_at / updated_at tracking.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-created_at"]
