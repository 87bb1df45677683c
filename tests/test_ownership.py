"""Tests for the ownership filter."""

from escalation.modules.causes.ownership import compute_visible_tags, owner_labels, session_principals
from escalation.modules.causes.schemas import Tag, Team

TAGS = [
    Tag(id="t1", label="Fraud", owner_id="team-a"),
    Tag(id="t2", label="Billing", owner_id="team-b"),
    Tag(id="t3", label="Personal", owner_id="u1"),
    Tag(id="t4", label="Unowned"),
]


class TestComputeVisibleTags:
    """Visibility is membership of the owner in the session principals."""

    def test_filters_by_owner(self):
        visible = compute_visible_tags(TAGS, {"team-a"})
        assert [t.id for t in visible] == ["t1"]

    def test_empty_principals_is_empty(self):
        assert compute_visible_tags(TAGS, set()) == []

    def test_empty_input(self):
        assert compute_visible_tags([], {"team-a"}) == []

    def test_unowned_tags_never_visible(self):
        visible = compute_visible_tags(TAGS, {"team-a", "team-b", "u1"})
        assert "t4" not in [t.id for t in visible]

    def test_preserves_input_order(self):
        visible = compute_visible_tags(TAGS, {"team-b", "team-a"})
        assert [t.id for t in visible] == ["t1", "t2"]


class TestSessionPrincipals:
    """The configured policy decides which principals count."""

    def test_team_policy_ignores_user(self):
        teams = [Team(team_id="team-a")]
        assert session_principals("u1", teams) == {"team-a"}

    def test_team_or_user_policy(self):
        teams = [Team(team_id="team-a")]
        principals = session_principals("u1", teams, "team_or_user")
        assert principals == {"team-a", "u1"}
        assert [t.id for t in compute_visible_tags(TAGS, principals)] == ["t1", "t3"]

    def test_no_teams(self):
        assert session_principals("u1", []) == set()


class TestOwnerLabels:
    def test_named_teams_only(self):
        teams = [Team(team_id="team-a", team_name="Fraud Team"), Team(team_id="team-b")]
        assert owner_labels(teams) == {"team-a": "Fraud Team"}
