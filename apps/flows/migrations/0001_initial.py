import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("webhooks", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Flow",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(db_index=True, max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                (
                    "config",
                    models.JSONField(blank=True, default=dict, help_text='Flow configuration, e.g. {"steps": [...]}.'),
                ),
                ("is_enabled", models.BooleanField(db_index=True, default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "parent_flow",
                    models.ForeignKey(
                        blank=True,
                        help_text="Parent flow whose successful runs trigger this flow.",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="child_flows",
                        to="flows.flow",
                    ),
                ),
                (
                    "webhooks",
                    models.ManyToManyField(
                        blank=True,
                        help_text="Webhooks whose deliveries trigger this flow.",
                        related_name="flows",
                        to="webhooks.webhook",
                    ),
                ),
            ],
            options={
                "ordering": ["name"],
                "indexes": [models.Index(fields=["parent_flow", "is_enabled"], name="flow_parent_enabled_idx")],
            },
        ),
        migrations.CreateModel(
            name="FlowRun",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "lineage",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Ancestor flow ids, root first. Its length is the cascade depth.",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("input", models.JSONField(blank=True, default=dict, null=True)),
                ("output", models.JSONField(blank=True, null=True)),
                ("error", models.TextField(blank=True, default="")),
                ("started_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "flow",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="runs",
                        to="flows.flow",
                    ),
                ),
                (
                    "parent_run",
                    models.ForeignKey(
                        blank=True,
                        help_text="Completed parent run whose output is this run's input.",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="child_runs",
                        to="flows.flowrun",
                    ),
                ),
                (
                    "webhook_event",
                    models.ForeignKey(
                        blank=True,
                        help_text="Delivery that triggered this run (root flows only).",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="flow_runs",
                        to="webhooks.webhookevent",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["flow", "status"], name="flowrun_flow_status_idx"),
                    models.Index(fields=["status", "created_at"], name="flowrun_status_created_idx"),
                ],
            },
        ),
    ]
