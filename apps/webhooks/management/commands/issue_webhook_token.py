"""
Management command to create a webhook or issue it a new token.

Usage:
    # Create a webhook and print its token
    python manage.py issue_webhook_token --create --name "GitLab pushes"

    # Rotate the token of an existing webhook
    python manage.py issue_webhook_token --webhook-id <uuid>

    # List webhooks (tokens are never shown)
    python manage.py issue_webhook_token --list
"""

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from apps.webhooks.models import Webhook


class Command(BaseCommand):
    help = "Create webhooks and issue bearer tokens. A token is printed once and never stored."

    def add_arguments(self, parser):
        parser.add_argument(
            "--webhook-id",
            type=str,
            help="Issue a new token for this webhook (the old token stops working)",
        )
        parser.add_argument(
            "--create",
            action="store_true",
            help="Create a new webhook",
        )
        parser.add_argument(
            "--name",
            type=str,
            help="Name for the new webhook (with --create)",
        )
        parser.add_argument(
            "--description",
            type=str,
            default="",
            help="Description for the new webhook (with --create)",
        )
        parser.add_argument(
            "--list",
            action="store_true",
            help="List webhooks",
        )

    def handle(self, *args, **options):
        if options.get("list"):
            self.list_webhooks()
            return

        if options.get("create"):
            if not options.get("name"):
                raise CommandError("--name is required with --create")
            webhook = Webhook(name=options["name"], description=options["description"])
        elif options.get("webhook_id"):
            try:
                webhook = Webhook.objects.get(pk=options["webhook_id"])
            except (Webhook.DoesNotExist, ValidationError):
                raise CommandError(f"Webhook not found: {options['webhook_id']}")
        else:
            raise CommandError("Specify --create, --webhook-id or --list")

        token = webhook.issue_token()

        self.stdout.write(self.style.SUCCESS(f"Webhook: {webhook.name} ({webhook.pk})"))
        self.stdout.write(f"  URL path: /webhooks/receive/{webhook.pk}/")
        self.stdout.write(f"  Token: {token}")
        self.stdout.write(self.style.WARNING("  Store this token now; it cannot be shown again."))

    def list_webhooks(self):
        webhooks = Webhook.objects.all()
        if not webhooks:
            self.stdout.write(self.style.WARNING("No webhooks found."))
            return

        self.stdout.write(f"{'ID':<38} {'Name':<30} {'Enabled':<8} {'Token':<10}")
        self.stdout.write("-" * 90)
        for webhook in webhooks:
            self.stdout.write(
                f"{str(webhook.pk):<38} {webhook.name[:30]:<30} "
                f"{'yes' if webhook.is_enabled else 'no':<8} {webhook.redacted_token or '-':<10}"
            )
