"""Helpers deriving job identifiers from Slack channel names."""

from __future__ import annotations

import re

JOB_TOKEN = "deal"
UNKNOWN_JOB = "UNKNOWN"

_DEAL_ID_PATTERN = re.compile(r"deal(\d+)", re.IGNORECASE)


def extract_deal_id(channel_name: str | None) -> str | None:
    """Return the digits following the first ``deal`` in *channel_name*."""

    if not channel_name:
        return None
    match = _DEAL_ID_PATTERN.search(channel_name)
    return match.group(1) if match else None


def job_number_for(channel_name: str | None) -> str:
    """Return the job label used in messages and form links."""

    if channel_name and extract_deal_id(channel_name):
        return channel_name
    return UNKNOWN_JOB


def is_job_token(value: object) -> bool:
    """Return True when *value* is a string carrying the job naming token."""

    return isinstance(value, str) and JOB_TOKEN in value.lower()


def channel_for_job(job_number: str) -> str:
    # Job channels are named after the lower-cased job number.
    return job_number.strip().lower()
