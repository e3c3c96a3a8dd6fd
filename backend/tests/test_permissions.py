"""
CRM - Catalogue de permissions et hiérarchie legacy
Run: cd backend && pytest tests/test_permissions.py -v
"""

from services.permissions import (
    ALL_PERMISSION_CODES,
    DEFAULT_ROLES,
    PERMISSIONS,
    PERMISSIONS_BY_CATEGORY,
    PERMISSION_CATEGORIES,
    get_role_permissions,
    has_permission,
    has_role,
    is_known_permission,
    role_rank,
    unknown_permissions,
)


class TestCatalogue:
    def test_catalogue_size(self):
        assert len(PERMISSIONS) == 44
        assert len(set(ALL_PERMISSION_CODES)) == 44

    def test_every_permission_has_a_known_category(self):
        for p in PERMISSIONS:
            assert p["category"] in PERMISSION_CATEGORIES
            assert p["name"] and p["description"]

    def test_grouping_covers_catalogue(self):
        grouped = [p["code"] for perms in PERMISSIONS_BY_CATEGORY.values() for p in perms]
        assert sorted(grouped) == sorted(ALL_PERMISSION_CODES)

    def test_grouping_is_keyed_like_categories(self):
        assert set(PERMISSIONS_BY_CATEGORY) == set(PERMISSION_CATEGORIES)
        assert len(PERMISSIONS_BY_CATEGORY["USERS"]) == 6
        assert PERMISSIONS_BY_CATEGORY["TASKS"][0]["category_label"] == "Tâches"

    def test_unknown_permissions_keeps_order(self):
        assert unknown_permissions(["contacts.create", "foo.bar", "x"]) == ["foo.bar", "x"]
        assert is_known_permission("users.manage_roles")
        assert not is_known_permission("users.manage")


class TestDefaultRoles:
    def test_admin_is_closure_of_catalogue(self):
        assert set(DEFAULT_ROLES["ADMIN"]["permissions"]) == set(ALL_PERMISSION_CODES)

    def test_presets_only_reference_known_codes(self):
        for key, preset in DEFAULT_ROLES.items():
            assert unknown_permissions(preset["permissions"]) == [], key

    def test_telepro_cannot_delete_contacts(self):
        assert not has_permission(DEFAULT_ROLES["TELEPRO"]["permissions"], "contacts.delete")
        assert has_permission(DEFAULT_ROLES["TELEPRO"]["permissions"], "contacts.view_own")

    def test_get_role_permissions_case_insensitive(self):
        assert get_role_permissions("manager") == DEFAULT_ROLES["MANAGER"]["permissions"]
        assert get_role_permissions("INCONNU") == []
        assert get_role_permissions(None) == []

    def test_has_permission_without_permissions(self):
        assert has_permission(None, "contacts.create") is False
        assert has_permission([], "contacts.create") is False


class TestLegacyHierarchy:
    def test_ranks(self):
        assert role_rank("ADMIN") == 1
        assert role_rank("user") == 6
        assert role_rank("GHOST") is None

    def test_higher_rank_satisfies_lower_requirement(self):
        assert has_role("ADMIN", "MANAGER")
        assert has_role("MANAGER", "MANAGER")
        assert not has_role("TELEPRO", "MANAGER")

    def test_unknown_roles_fail_closed(self):
        assert not has_role(None, "USER")
        assert not has_role("GHOST", "USER")
        assert not has_role("ADMIN", "GHOST")
