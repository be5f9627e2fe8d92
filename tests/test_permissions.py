"""Tests for role-based flag capabilities."""

import pytest

from featuregate.permissions import FlagCapabilities, PermissionDenied


class TestForRole:
    def test_superadmin_can_do_everything(self):
        caps = FlagCapabilities.for_role("superadmin")
        assert caps.can_toggle and caps.can_create and caps.can_delete
        assert caps.can_edit_key_and_rollout and caps.can_edit_targeting
        assert not caps.view_only

    @pytest.mark.parametrize("role", ["admin", "label_admin", "manager"])
    def test_editors_limited_to_descriptions(self, role):
        caps = FlagCapabilities.for_role(role)
        assert caps.can_edit
        assert not caps.can_toggle
        assert not caps.can_create
        assert not caps.can_delete

    @pytest.mark.parametrize("role", ["artist", "fan", "", None])
    def test_everyone_else_view_only(self, role):
        assert FlagCapabilities.for_role(role).view_only


class TestCheckChanges:
    def test_editor_may_change_description(self):
        FlagCapabilities.for_role("manager").check_changes({"description": "x", "metadata": {}})

    @pytest.mark.parametrize("field", ["enabled", "name", "rollout_percentage", "target_roles", "target_users"])
    def test_editor_blocked_from_restricted_fields(self, field):
        with pytest.raises(PermissionDenied):
            FlagCapabilities.for_role("admin").check_changes({field})

    def test_view_only_blocked(self):
        with pytest.raises(PermissionDenied):
            FlagCapabilities.for_role("fan").check_changes({"description"})

    def test_superadmin_unrestricted(self):
        FlagCapabilities.for_role("superadmin").check_changes(
            {"enabled", "name", "rollout_percentage", "target_roles", "description"}
        )
