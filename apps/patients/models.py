"""
Patient registry backing the identity resolver.

The ledger only ever stores the numeric primary key of a patient. The opaque
``uuid`` handle is what callers hold.
"""
import uuid

from django.db import models
from django.utils.translation import gettext_lazy as _


class Patient(models.Model):
    """
    Patient identity record.

    A voided patient is treated as retired: it can no longer be billed.
    """
    uuid = models.UUIDField(_('Handle'), default=uuid.uuid4, unique=True, editable=False)

    given_name = models.CharField(_('Given Name'), max_length=100, blank=True)
    family_name = models.CharField(_('Family Name'), max_length=100, blank=True)

    voided = models.BooleanField(_('Voided'), default=False)

    date_created = models.DateTimeField(_('Date Created'), auto_now_add=True)

    class Meta:
        db_table = 'patient'
        ordering = ['-date_created']
        verbose_name = _('Patient')
        verbose_name_plural = _('Patients')

    def __str__(self):
        return self.display_name

    @property
    def display_name(self):
        name = f'{self.given_name} {self.family_name}'.strip()
        return name or 'Unknown Patient'
