"""
Escalation Causes - Ownership Filter.

A cause is visible to a session iff its owner is one of the session's
principals. Which principals count is decided once by the configured policy.
"""

from typing import Iterable, Literal

from .schemas import Tag, Team

OwnershipPolicy = Literal["team", "team_or_user"]


def session_principals(
    user_id: str,
    teams: Iterable[Team],
    policy: OwnershipPolicy = "team",
) -> set[str]:
    """Owner ids whose causes the session may see and pick."""
    principals = {team.team_id for team in teams}
    if policy == "team_or_user":
        principals.add(user_id)
    return principals


def compute_visible_tags(all_tags: Iterable[Tag], session_teams: set[str]) -> list[Tag]:
    """Filter causes down to those owned by a session principal.

    Empty principals yield an empty result: the user has no escalation
    permissions, which is not an error.
    """
    if not session_teams:
        return []
    return [tag for tag in all_tags if tag.owner_id in session_teams]


def owner_labels(teams: Iterable[Team]) -> dict[str, str]:
    """Map team id -> team name for owner display."""
    return {team.team_id: team.team_name for team in teams if team.team_name}
