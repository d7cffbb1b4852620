"""
Core models: shared audit/void base for financial records.

Financial rows are never physically deleted. Removal is a state transition
(Active -> Voided(actor, reason, timestamp)) recorded on the row itself.
"""
from collections import namedtuple

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


VoidRecord = namedtuple('VoidRecord', ['actor_id', 'reason', 'timestamp'])


class VoidableQuerySet(models.QuerySet):
    """QuerySet helpers for soft-voided rows."""

    def active(self):
        return self.filter(voided=False)

    def voided_only(self):
        return self.filter(voided=True)


class VoidableAuditModel(models.Model):
    """
    Abstract base carrying creator and void audit columns.

    Every ledger table uses these columns:
    - creator, date_created
    - voided, voided_by, date_voided, void_reason
    """
    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Creator')
    )
    date_created = models.DateTimeField(_('Date Created'), default=timezone.now)

    voided = models.BooleanField(_('Voided'), default=False)
    voided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Voided By')
    )
    date_voided = models.DateTimeField(_('Date Voided'), null=True, blank=True)
    void_reason = models.CharField(_('Void Reason'), max_length=255, null=True, blank=True)

    objects = VoidableQuerySet.as_manager()

    class Meta:
        abstract = True

    @property
    def void_state(self):
        """Return a VoidRecord when voided, otherwise None."""
        if not self.voided:
            return None
        return VoidRecord(self.voided_by_id, self.void_reason, self.date_voided)

    def mark_voided(self, actor, reason, when=None):
        """
        Transition this row to voided and persist only the void columns.

        Callers are responsible for running this inside a unit of work.
        """
        self.voided = True
        self.voided_by = actor
        self.date_voided = when or timezone.now()
        self.void_reason = reason
        self.save(update_fields=['voided', 'voided_by', 'date_voided', 'void_reason'])
        return self.void_state
