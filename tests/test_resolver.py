"""Tests for AvailabilityResolver evaluation order."""

from featuregate.models import FeatureFlag, Subject
from featuregate.resolver import AvailabilityResolver
from featuregate.rollout import in_rollout


def make_flag(**overrides) -> FeatureFlag:
    fields = {"id": "flag-1", "name": "PHONE_DIALER"}
    fields.update(overrides)
    return FeatureFlag(**fields)


SUBJECTS = [Subject(id=f"user-{i}", role="artist") for i in range(500)]


class TestMasterSwitch:
    def test_disabled_hides_from_everyone(self):
        resolver = AvailabilityResolver()
        flag = make_flag(enabled=False, rollout_percentage=100, target_users=frozenset({"user-1"}))
        assert not any(resolver.is_available(flag, s) for s in SUBJECTS)

    def test_enabled_full_rollout_shows_everyone(self):
        resolver = AvailabilityResolver()
        flag = make_flag()
        assert all(resolver.is_available(flag, s) for s in SUBJECTS)


class TestRoleTargeting:
    def test_role_outside_targets_excluded_at_full_rollout(self):
        resolver = AvailabilityResolver()
        flag = make_flag(target_roles=frozenset({"admin"}))
        assert not resolver.is_available(flag, Subject(id="u1", role="fan"))
        assert resolver.is_available(flag, Subject(id="u1", role="admin"))

    def test_empty_roles_means_everyone(self):
        resolver = AvailabilityResolver()
        flag = make_flag(target_roles=frozenset())
        assert resolver.is_available(flag, Subject(id="u1", role=""))

    def test_targeted_user_with_wrong_role_excluded(self):
        resolver = AvailabilityResolver()
        flag = make_flag(target_roles=frozenset({"admin"}), target_users=frozenset({"u1"}))
        assert not resolver.is_available(flag, Subject(id="u1", role="fan"))


class TestUserTargeting:
    def test_explicit_grant_overrides_zero_percent(self):
        resolver = AvailabilityResolver()
        flag = make_flag(rollout_percentage=0, target_users=frozenset({"beta-tester"}))
        assert resolver.is_available(flag, Subject(id="beta-tester", role="fan"))
        assert not resolver.is_available(flag, Subject(id="someone-else", role="fan"))

    def test_non_listed_users_fall_back_to_percentage(self):
        resolver = AvailabilityResolver()
        flag = make_flag(rollout_percentage=40, target_users=frozenset({"vip"}))
        for s in SUBJECTS:
            assert resolver.is_available(flag, s) == in_rollout(flag.id, s.id, 40)


class TestWorkspaceScope:
    def test_workspace_flag_hidden_elsewhere(self):
        resolver = AvailabilityResolver()
        flag = make_flag(workspace_id="ws-1")
        assert resolver.is_available(flag, Subject(id="u1", workspace_id="ws-1"))
        assert not resolver.is_available(flag, Subject(id="u1", workspace_id="ws-2"))
        assert not resolver.is_available(flag, Subject(id="u1"))

    def test_global_flag_visible_in_any_workspace(self):
        resolver = AvailabilityResolver()
        flag = make_flag()
        assert flag.scope == "global"
        assert resolver.is_available(flag, Subject(id="u1", workspace_id="ws-9"))


class TestAvailableFlags:
    def test_filters_sequence(self):
        resolver = AvailabilityResolver()
        on = make_flag(id="a", name="A")
        off = make_flag(id="b", name="B", enabled=False)
        admin_only = make_flag(id="c", name="C", target_roles=frozenset({"admin"}))
        visible = resolver.available_flags([on, off, admin_only], Subject(id="u1", role="fan"))
        assert [f.name for f in visible] == ["A"]
