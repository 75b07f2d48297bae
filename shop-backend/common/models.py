# common/models.py
from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class AuditLog(models.Model):
    """
    Business audit trail shared by orders, payments and loyalty.
    Rows are written through AuditLog.record() and never updated.
    """
    SEVERITY_CHOICES = [
        ("info", "Info"),
        ("warning", "Warning"),
        ("critical", "Critical"),
    ]

    tenant = models.ForeignKey("tenants.Tenant", on_delete=models.CASCADE, related_name="audit_logs")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="audit_logs"
    )
    action = models.CharField(max_length=64)
    severity = models.CharField(max_length=16, choices=SEVERITY_CHOICES, default="info")
    object_type = models.CharField(max_length=32, blank=True, default="")
    object_id = models.CharField(max_length=64, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["tenant", "object_type", "object_id"], name="auditlog_tenant_object_idx")]

    def __str__(self):
        return f"{self.action} @ {self.created_at}"

    @classmethod
    def record(cls, *, tenant, action, user=None, obj=None, severity="info", metadata=None):
        object_type = ""
        object_id = ""
        if obj is not None:
            object_type = obj._meta.model_name
            object_id = str(obj.pk)
        return cls.objects.create(
            tenant=tenant,
            action=action,
            user=user,
            severity=severity,
            object_type=object_type,
            object_id=object_id,
            metadata=metadata or {},
        )
