"""Tests for the role hierarchy."""

import pytest

from internboard.service.roles import (
    ROLE_HIERARCHY,
    Role,
    implied_roles,
    parse_role,
    role_satisfies,
)


class TestRoleHierarchy:
    def test_admin_implies_every_role(self):
        assert ROLE_HIERARCHY[Role.ADMIN] == {Role.ADMIN, Role.COMPANY, Role.STUDENT, Role.USER}

    def test_user_implies_only_itself(self):
        assert ROLE_HIERARCHY[Role.USER] == {Role.USER}

    def test_company_implies_user(self):
        assert ROLE_HIERARCHY[Role.COMPANY] == {Role.COMPANY, Role.USER}
        assert Role.STUDENT not in ROLE_HIERARCHY[Role.COMPANY]

    def test_hierarchy_is_reflexive(self):
        for role, implied in ROLE_HIERARCHY.items():
            assert role in implied

    def test_hierarchy_is_read_only(self):
        with pytest.raises(TypeError):
            ROLE_HIERARCHY[Role.USER] = frozenset()  # type: ignore[index]


class TestParseRole:
    @pytest.mark.parametrize("raw", ["COMPANY", "company", " Company ", Role.COMPANY])
    def test_accepts_case_and_enum(self, raw):
        assert parse_role(raw) is Role.COMPANY

    @pytest.mark.parametrize("raw", [None, "", "SUPERUSER", 3])
    def test_unknown_values_are_none(self, raw):
        assert parse_role(raw) is None


class TestRoleSatisfies:
    def test_admin_satisfies_company_requirement(self):
        assert role_satisfies(Role.ADMIN, [Role.COMPANY])

    def test_student_does_not_satisfy_company(self):
        assert not role_satisfies(Role.STUDENT, [Role.COMPANY])

    def test_any_overlap_is_enough(self):
        assert role_satisfies("STUDENT", ["COMPANY", "USER"])

    def test_unknown_role_satisfies_nothing(self):
        assert implied_roles("GHOST") == frozenset()
        assert not role_satisfies("GHOST", [Role.USER])
