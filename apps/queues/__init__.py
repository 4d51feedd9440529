"""
Queues app.

Durable work queues drained by the queue processor.

Key concepts:
- One ``default`` queue for webhook fan-out, one ``flow-<id>`` queue per child flow
- Items are claimed with an atomic conditional update and a time-limited lease
- Expired leases are requeued (or failed once attempts are exhausted)
- Every orchestrator pass is recorded as a BackgroundJob
"""
