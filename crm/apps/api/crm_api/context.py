"""Request context management for observability.

Context variables for request tracking across async boundaries.
user_id and org_id are set once the caller's identity and organization
have been resolved, so every log line emitted afterwards carries them.
"""

from contextvars import ContextVar

# Request ID - unique per HTTP request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Authenticated user (Supabase auth.users id)
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

# Resolved organization (tenant boundary)
org_id_var: ContextVar[str] = ContextVar("org_id", default="")
