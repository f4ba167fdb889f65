from django.db import models


class ActiveQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class ActiveManager(models.Manager):
    def get_queryset(self):
        return ActiveQuerySet(self.model, using=self._db)

    def active(self):
        return self.get_queryset().active()


class LedgerQuerySet(models.QuerySet):
    def for_invoice(self, invoice):
        return self.filter(invoice=invoice)


class LedgerManager(models.Manager):
    def get_queryset(self):
        return LedgerQuerySet(self.model, using=self._db)

    def for_invoice(self, invoice):
        return self.get_queryset().for_invoice(invoice)
