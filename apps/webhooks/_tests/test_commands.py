import io
import re

from django.core.management import CommandError, call_command
from django.test import TestCase

from apps.webhooks.models import Webhook


class IssueWebhookTokenCommandTest(TestCase):
    def _token_from(self, output):
        return re.search(r"Token: (\S+)", output).group(1)

    def test_create(self):
        out = io.StringIO()
        call_command("issue_webhook_token", "--create", "--name", "GitLab pushes", stdout=out)

        webhook = Webhook.objects.get(name="GitLab pushes")
        output = out.getvalue()
        self.assertIn(f"/webhooks/receive/{webhook.pk}/", output)
        self.assertTrue(webhook.check_token(self._token_from(output)))

    def test_create_requires_name(self):
        with self.assertRaises(CommandError):
            call_command("issue_webhook_token", "--create")

    def test_rotate(self):
        webhook = Webhook.objects.create(name="gitlab")
        old_token = webhook.issue_token()

        out = io.StringIO()
        call_command("issue_webhook_token", "--webhook-id", str(webhook.pk), stdout=out)

        webhook.refresh_from_db()
        self.assertFalse(webhook.check_token(old_token))
        self.assertTrue(webhook.check_token(self._token_from(out.getvalue())))

    def test_rotate_unknown(self):
        with self.assertRaises(CommandError):
            call_command("issue_webhook_token", "--webhook-id", "not-a-uuid")

    def test_list_never_shows_tokens(self):
        webhook = Webhook.objects.create(name="gitlab")
        token = webhook.issue_token()

        out = io.StringIO()
        call_command("issue_webhook_token", "--list", stdout=out)

        self.assertIn("gitlab", out.getvalue())
        self.assertNotIn(token, out.getvalue())

    def test_no_arguments(self):
        with self.assertRaises(CommandError):
            call_command("issue_webhook_token")
