"""
Integrations app.

Holds the App/Integration entities managed by the admin CRUD layer and the
registry of integration executors that flow ``integration`` steps call into.
"""
