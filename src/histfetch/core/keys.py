"""Shared record keys to avoid magic strings across histfetch modules."""

from __future__ import annotations

# History snapshot records
K_URL = "url"
K_TITLE = "title"
K_LAST_VISIT = "last_visit"

# Bundle records
K_FETCHED_AT = "fetched_at"
K_OUTCOME = "outcome"
K_KIND = "kind"
K_BODY = "body"
K_REASON = "reason"

# Outcome kinds
KIND_SUCCESS = "success"
KIND_FAILURE = "failure"

# Search index fields
K_CONTENT = "content"
