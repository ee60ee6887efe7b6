from django.db import models, transaction


class Sequence(models.Model):
    """
    A named, monotonically increasing counter.

    Used by number generators (enrollment numbers and the like) that need
    gap-tolerant but never-repeating values across concurrent requests.
    """
    name = models.CharField(
        max_length=50,
        unique=True,
        help_text="e.g., enrollment_number"
    )
    last_value = models.PositiveBigIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        verbose_name = "Sequence"
        verbose_name_plural = "Sequences"

    def __str__(self):
        return f"{self.name} ({self.last_value})"

    @classmethod
    def next_value(cls, name):
        """
        Reserve and return the next value of the named sequence.

        The counter row is locked for the rest of the enclosing transaction,
        so a value reserved by a transaction that later rolls back is handed
        out again.
        """
        with transaction.atomic():
            sequence, _ = cls.objects.select_for_update().get_or_create(name=name)
            sequence.last_value += 1
            sequence.save(update_fields=['last_value', 'updated_at'])
        return sequence.last_value
