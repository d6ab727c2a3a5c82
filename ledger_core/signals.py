from django.core.exceptions import ValidationError
from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .models import (Account, GLJournal, GLJournalLine, Order, OrderMovement,
                     Voucher, VoucherLine)

""" Block deletion if account has ever been used in a journal line."""


@receiver(pre_delete, sender=Account)
def prevent_delete_account_with_journal_lines(sender, instance, **kwargs):
    if GLJournalLine.objects.filter(account=instance).exists():
        raise ValidationError("Cannot delete account used in journal lines.")


"""Block deletion of posted journals (queryset deletes included)."""


@receiver(pre_delete, sender=GLJournal)
def prevent_delete_posted_journal(sender, instance, **kwargs):
    if instance.status == "posted":
        raise ValidationError("Cannot delete a posted journal.")


"""Vouchers are immutable; model.delete() is guarded too but
queryset.delete() only goes through this signal."""


@receiver(pre_delete, sender=Voucher)
@receiver(pre_delete, sender=VoucherLine)
def prevent_delete_voucher(sender, instance, **kwargs):
    raise ValidationError("Voucher is immutable once created.")


"""Block order deletion once any movement row has been posted."""


@receiver(pre_delete, sender=Order)
def prevent_delete_order_with_posted_movements(sender, instance, **kwargs):
    if OrderMovement.objects.filter(order=instance, status="posted").exists():
        raise ValidationError("Cannot delete an order with posted movements.")
