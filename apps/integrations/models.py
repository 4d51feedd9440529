"""
App and Integration models.

An App is a kind of external service (GitLab, AWS, a plain HTTP endpoint).
An Integration is one configured connection to an App. Flow ``integration``
steps reference integrations by id.
"""

from django.db import models


class App(models.Model):
    """A kind of external service that integrations connect to."""

    name = models.CharField(max_length=255, unique=True)
    type = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Executor key used to run integrations of this app (e.g. 'http').",
    )
    description = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.type})"


class Integration(models.Model):
    """A configured connection to an external service."""

    name = models.CharField(max_length=255)
    app = models.ForeignKey(
        App,
        on_delete=models.CASCADE,
        related_name="integrations",
    )
    config = models.JSONField(
        default=dict,
        blank=True,
        help_text="Executor configuration (endpoint, headers, credentials references).",
    )
    is_enabled = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["app", "is_enabled"], name="integration_app_enabled_idx"),
        ]

    def __str__(self):
        return self.name
