"""
Flows app.

Flow definitions, flow runs and the engine that executes them.

Key concepts:
- A flow is an ordered step list (integration | transform | condition)
- State machine: PENDING → PROCESSING → COMPLETED | FAILED (one-way)
- Each step receives the previous step's output
- A completed run cascades its output into runs of the flow's enabled children
"""
