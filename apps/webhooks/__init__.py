"""
Webhooks app.

Inbound entry point of the flow engine:
external event → authenticate → record WebhookEvent → fan out to FlowRuns + QueueItems.

Key concepts:
- Per-webhook bearer token, stored as a digest and shown once
- Deliveries are recorded before any flow runs (audit trail)
- Fan-out is atomic: every FlowRun gets its QueueItem or neither is written
"""
