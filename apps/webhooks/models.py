"""
Webhook and WebhookEvent models.

A Webhook is an inbound endpoint identity with a bearer token. Flows bind to
webhooks (``Flow.webhooks``); every accepted delivery is recorded as an
immutable WebhookEvent.
"""

import hashlib
import hmac
import secrets
import uuid

from django.db import models

TOKEN_BYTES = 32
TOKEN_PREFIX_LENGTH = 6


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a webhook token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class WebhookEventStatus(models.TextChoices):
    """Status of an inbound webhook event."""

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"


class Webhook(models.Model):
    """
    An inbound webhook endpoint.

    The bearer token is shown exactly once, when issued. Only its digest and a
    short prefix (for operators to tell tokens apart) are stored.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    token_hash = models.CharField(
        max_length=64,
        unique=True,
        null=True,
        blank=True,
        editable=False,
        help_text="SHA-256 digest of the bearer token.",
    )
    token_prefix = models.CharField(
        max_length=TOKEN_PREFIX_LENGTH,
        blank=True,
        default="",
        editable=False,
        help_text="First characters of the token, for identification only.",
    )
    is_enabled = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    @property
    def has_token(self) -> bool:
        return bool(self.token_hash)

    @property
    def redacted_token(self) -> str:
        if not self.token_prefix:
            return ""
        return f"{self.token_prefix}…"

    def issue_token(self) -> str:
        """
        Generate and store a new token, replacing any previous one.

        Returns:
            The plaintext token. It is not recoverable afterwards.
        """
        token = secrets.token_urlsafe(TOKEN_BYTES)
        self.token_hash = hash_token(token)
        self.token_prefix = token[:TOKEN_PREFIX_LENGTH]
        if self._state.adding:
            self.save()
        else:
            self.save(update_fields=["token_hash", "token_prefix", "updated_at"])
        return token

    def check_token(self, presented: str | None) -> bool:
        """Constant-time comparison of a presented token against the stored digest."""
        if not presented or not self.token_hash:
            return False
        return hmac.compare_digest(hash_token(presented), self.token_hash)


class WebhookEvent(models.Model):
    """Immutable record of one accepted inbound delivery."""

    webhook = models.ForeignKey(
        Webhook,
        on_delete=models.CASCADE,
        related_name="events",
    )
    raw_payload = models.JSONField(
        null=True,
        help_text="Parsed JSON body of the delivery (a JSON null body is stored as NULL).",
    )
    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )
    error = models.TextField(blank=True, default="")
    received_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-received_at"]
        indexes = [
            models.Index(fields=["webhook", "received_at"], name="webhookevent_webhook_recv_idx"),
        ]

    def __str__(self):
        return f"Event {self.pk} for {self.webhook_id} [{self.status}]"

    def mark_processing(self):
        """Record that fan-out to flow runs has completed."""
        self.status = WebhookEventStatus.PROCESSING
        self.save(update_fields=["status", "updated_at"])
