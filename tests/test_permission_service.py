"""
Role & permission predicate tests.

Predicates accept both ORM objects and plain dicts, so these tests use
dicts and need no database.
"""

import pytest

from sitetrack.services import permission_service as perms

ROLES = ["Admin", "DepartmentHead", "ProjectManager", "LeadSupervisor", None]


def _user(uid, role):
    return {"id": uid, "name": uid, "role": role}


def _project(managers=(), supervisors=()):
    return {"id": "p1", "projectManagerIds": list(managers), "leadSupervisorIds": list(supervisors)}


class TestAdminOnly:
    @pytest.mark.parametrize("role", ROLES)
    def test_manage_users_and_delete_project(self, role):
        user = _user("u1", role)
        expected = role == "Admin"
        assert perms.can_manage_users(user) is expected
        assert perms.can_delete_project(user) is expected
        assert perms.can_fetch_all_users(user) is expected
        assert perms.can_approve_users(user) is expected

    @pytest.mark.parametrize("role", ROLES)
    def test_edit_and_delete_report(self, role):
        user = _user("u1", role)
        assigned = _project(managers=["u1"], supervisors=["u1"])
        assert perms.can_edit_report(user, assigned) is (role == "Admin")
        assert perms.can_delete_report(user, assigned) is (role == "Admin")


class TestProjects:
    @pytest.mark.parametrize("role,expected", [
        ("Admin", True), ("DepartmentHead", True),
        ("ProjectManager", False), ("LeadSupervisor", False), (None, False),
    ])
    def test_add_project_and_personnel(self, role, expected):
        user = _user("u1", role)
        assert perms.can_add_project(user) is expected
        assert perms.can_edit_personnel(user) is expected

    def test_edit_project_admin_or_assigned_manager(self):
        project = _project(managers=["pm1"], supervisors=["ls1"])
        assert perms.can_edit_project(_user("a", "Admin"), project)
        assert perms.can_edit_project(_user("pm1", "ProjectManager"), project)
        assert not perms.can_edit_project(_user("pm2", "ProjectManager"), project)
        assert not perms.can_edit_project(_user("ls1", "LeadSupervisor"), project)
        assert not perms.can_edit_project(_user("dh", "DepartmentHead"), project)

    def test_view_project(self):
        project = _project(managers=["pm1"], supervisors=["ls1"])
        assert perms.can_view_project(_user("dh", "DepartmentHead"), project)
        assert perms.can_view_project(_user("pm1", "ProjectManager"), project)
        assert perms.can_view_project(_user("ls1", "LeadSupervisor"), project)
        assert not perms.can_view_project(_user("ls2", "LeadSupervisor"), project)
        assert not perms.can_view_project(_user("x", None), project)


class TestReports:
    @pytest.mark.parametrize("role", ["ProjectManager", "LeadSupervisor"])
    def test_add_report_iff_in_matching_list(self, role):
        user = _user("u1", role)
        list_key = "managers" if role == "ProjectManager" else "supervisors"
        other_key = "supervisors" if role == "ProjectManager" else "managers"

        assert perms.can_add_report(user, _project(**{list_key: ["u1"]}))
        assert not perms.can_add_report(user, _project(**{list_key: ["u2"]}))
        # Listed only under the other role's array
        assert not perms.can_add_report(user, _project(**{other_key: ["u1"]}))

    @pytest.mark.parametrize("role", ["Admin", "DepartmentHead", None])
    def test_add_report_false_for_other_roles(self, role):
        project = _project(managers=["u1"], supervisors=["u1"])
        assert not perms.can_add_report(_user("u1", role), project)

    def test_review_only_assigned_manager(self):
        project = _project(managers=["pm1"], supervisors=["ls1"])
        assert perms.can_review_report(_user("pm1", "ProjectManager"), project)
        assert not perms.can_review_report(_user("ls1", "LeadSupervisor"), project)
        assert not perms.can_review_report(_user("a", "Admin"), project)


class TestUsers:
    @pytest.mark.parametrize("role", ROLES)
    def test_self_deletion_always_rejected(self, role):
        assert perms.can_delete_user(_user("u1", role), "u1") is False

    def test_admin_may_delete_others(self):
        assert perms.can_delete_user(_user("u1", "Admin"), "u2") is True
        assert perms.can_delete_user(_user("u1", "ProjectManager"), "u2") is False


class TestDenyByDefault:
    def test_none_user(self):
        project = _project(managers=["pm1"])
        assert not perms.can_manage_users(None)
        assert not perms.can_view_project(None, project)
        assert not perms.can_add_report(None, project)

    def test_unknown_role_is_pending(self):
        user = _user("pm1", "projectmanager ")
        assert not perms.can_add_report(user, _project(managers=["pm1"]))
        assert not perms.can_view_project(user, _project(managers=["pm1"]))

    def test_capabilities_flatten(self):
        caps = perms.capabilities(_user("pm1", "ProjectManager"), _project(managers=["pm1"]))
        assert caps["addReport"] is True
        assert caps["reviewReport"] is True
        assert caps["deleteProject"] is False
        assert "editReport" in caps
