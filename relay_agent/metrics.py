"""
Prometheus metrics (module scope, registered once).
"""

from prometheus_client import Counter, Gauge

SESSIONS_ACTIVE = Gauge(
    "relay_sessions_active",
    "Conversation Relay sessions currently connected",
)

TOOL_EXECUTIONS = Counter(
    "relay_tool_executions_total",
    "Tool executions by tool name and result kind",
    labelnames=("tool", "kind"),
)

GENERATION_ERRORS = Counter(
    "relay_generation_errors_total",
    "Generation cycles aborted by a backend error",
)

INTERRUPTS = Counter(
    "relay_interrupts_total",
    "Caller interruptions received while the agent was speaking or generating",
)

INACTIVITY_EVENTS = Counter(
    "relay_inactivity_events_total",
    "Inactivity monitor reminders and terminations",
    labelnames=("event",),
)
