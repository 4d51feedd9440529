"""Custom Django admin app configuration."""

from django.contrib.admin.apps import AdminConfig


class FlowsAdminConfig(AdminConfig):
    default_site = "config.admin.FlowsAdminSite"
