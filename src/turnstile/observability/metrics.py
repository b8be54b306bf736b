from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

# outcome: success/fail/redirect/pass/error
AUTH_ATTEMPTS = Counter(
    "turnstile_auth_attempts_total",
    "Strategy actions taken during authentication",
    ["strategy", "outcome"],
)

AUTH_FAILURES = Counter(
    "turnstile_auth_failures_total",
    "Strategy chains that ended with every strategy failing",
    ["status"],
)

# result: resolved/invalidated/fallback/exhausted/error
CHAIN_RESOLUTIONS = Counter(
    "turnstile_chain_resolutions_total",
    "Serializer, deserializer and transformer chain outcomes",
    ["chain", "result"],
)

SESSION_OPERATIONS = Counter(
    "turnstile_session_operations_total",
    "Login and logout operations against the session record",
    ["operation"],
)


def generate_metrics() -> bytes:
    return generate_latest()


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
