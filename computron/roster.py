"""Invite roster computation for new job channels."""

from __future__ import annotations

from typing import Iterable, List, Mapping


def lookup_estimator(estimator: str | None, user_map: Mapping[str, str]) -> str | None:
    """Map a CRM estimator name to a Slack user id, ignoring case and spacing."""

    if not estimator:
        return None
    wanted = " ".join(estimator.split()).casefold()
    for name, user_id in user_map.items():
        if " ".join(name.split()).casefold() == wanted:
            return user_id
    return None


def build_invite_roster(
    fixed_user_ids: Iterable[str],
    *,
    estimator_user_id: str | None = None,
    exclude: Iterable[str | None] = (),
) -> List[str]:
    """Return the de-duplicated invite list in first-seen order."""

    skipped = {user_id for user_id in exclude if user_id}
    roster: List[str] = []
    candidates = list(fixed_user_ids)
    if estimator_user_id:
        candidates.append(estimator_user_id)

    for user_id in candidates:
        user_id = (user_id or "").strip()
        if not user_id or user_id in skipped or user_id in roster:
            continue
        roster.append(user_id)
    return roster
