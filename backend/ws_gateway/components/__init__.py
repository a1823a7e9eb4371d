"""
WebSocket Gateway Components.

Organized into domain-specific modules:
- core/       - Foundational components (constants, context, DI)
- connection/ - Connection records, outbound transport, heartbeat
- rooms/      - Room membership and typed subscriptions
- broadcast/  - Dispatch API
- events/     - Envelopes and client event routing
- endpoints/  - WebSocket endpoint
- metrics/    - Observability counters

Import from the specific submodules.
"""
