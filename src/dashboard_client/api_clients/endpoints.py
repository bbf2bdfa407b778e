"""Backend endpoint paths used by the resource clients and update polling."""

AGENTS = "/v1/agents"
ALERTS = "/v1/alerts"
ALERTS_OVERVIEW = "/v1/alerts/overview"
TELEMETRY_EVENTS = "/v1/telemetry/events"
TELEMETRY_TRACES = "/v1/telemetry/traces"
PERFORMANCE_METRICS = "/v1/metrics/performance"


def agent_sessions(agent_id: str) -> str:
    return f"{AGENTS}/{agent_id}/sessions"
