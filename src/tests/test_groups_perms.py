"""Group and permission administration through GroupService/PermService."""

from __future__ import annotations

from django.test import TestCase

from access_control.models import Group, GroupToUser, GroupVariable, Permission, PermState, PermToGroup
from access_control.permissions import MANAGE_USERS
from core import messages as msg
from tests.utils import create_user, make_aauth, seed_aauth_basics


class GroupServiceTests(TestCase):
    """Create, rename, delete, membership and subgroup rules."""

    @classmethod
    def setUpTestData(cls):
        cls.user = create_user("member@test.com")

    def setUp(self):
        self.aauth = make_aauth()
        self.groups = self.aauth.groups

    def test_create_group_and_lookup_by_name(self):
        group_id = self.groups.create_group("Editors", "Edit things")

        self.assertIsNotNone(group_id)
        self.assertEqual(self.groups.get_group_id("editors"), group_id)
        self.assertEqual(self.groups.get_group(group_id)["definition"], "Edit things")

    def test_create_group_rejects_blank_and_duplicate_names(self):
        self.assertIsNone(self.groups.create_group("   "))
        self.groups.create_group("editors")
        self.assertIsNone(self.groups.create_group("editors"))

        self.assertEqual(
            self.aauth.messages.get_errors_array(),
            [str(msg.REQUIRED_GROUP_NAME), str(msg.EXISTS_ALREADY_GROUP)],
        )

    def test_soft_deleted_name_stays_reserved(self):
        group_id = self.groups.create_group("editors")
        self.assertTrue(self.groups.delete_group(group_id))

        self.assertIsNone(self.groups.create_group("editors"))
        self.assertTrue(Group.all_objects.filter(pk=group_id, deleted_at__isnull=False).exists())

    def test_names_differing_in_case_or_spacing_collide(self):
        group_id = self.groups.create_group("Editors")

        self.assertIsNone(self.groups.create_group("ed itors"))
        self.assertIsNone(self.groups.create_group(" EDITORS "))
        writers_id = self.groups.create_group("writers")
        self.assertFalse(self.groups.update_group(writers_id, name="Edi tors"))
        self.assertTrue(self.groups.update_group(group_id, name="EDITORS"))

        self.assertEqual(self.aauth.messages.get_errors_array(), [str(msg.EXISTS_ALREADY_GROUP)] * 3)
        self.assertEqual(self.groups.get_group_id("editors"), group_id)

    def test_look_alike_admin_group_cannot_grant_admin(self):
        groups, _ = seed_aauth_basics()
        outsider = create_user("outsider@test.com")
        aauth = make_aauth()

        self.assertIsNone(aauth.groups.create_group("Ad Min"))
        self.assertIsNone(aauth.groups.create_group("ADMIN"))
        self.assertEqual(Group.objects.count(), 3)

        fresh = make_aauth()
        self.assertEqual(fresh.groups.get_group_id("admin"), groups["admin"].pk)
        self.assertFalse(fresh.is_admin(outsider.pk))
        self.assertFalse(fresh.is_allowed(MANAGE_USERS, outsider.pk))

    def test_update_group_renames(self):
        group_id = self.groups.create_group("editors")

        self.assertTrue(self.groups.update_group("editors", name="authors"))

        self.assertEqual(self.groups.get_group_id("authors"), group_id)
        self.assertIsNone(self.groups.get_group_id("editors"))
        self.assertFalse(self.groups.update_group("missing", name="x"))

    def test_delete_group_removes_links(self):
        group_id = self.groups.create_group("editors")
        self.groups.add_member(group_id, self.user.pk)
        self.groups.set_group_var("color", "blue", group_id)

        self.assertTrue(self.groups.delete_group("editors"))

        self.assertIsNone(self.groups.get_group_id("editors"))
        self.assertFalse(GroupToUser.objects.filter(group_id=group_id).exists())
        self.assertFalse(GroupVariable.objects.filter(group_id=group_id).exists())
        self.assertFalse(self.groups.delete_group("editors"))

    def test_add_member_twice_reports_info(self):
        self.groups.create_group("editors")

        self.assertTrue(self.groups.add_member("editors", self.user.pk))
        self.assertTrue(self.groups.add_member("editors", self.user.pk))

        self.assertEqual(self.aauth.messages.get_infos_array(), [str(msg.ALREADY_MEMBER_GROUP)])
        self.assertEqual(GroupToUser.objects.filter(user=self.user).count(), 1)

    def test_add_member_unknown_user_or_group(self):
        self.groups.create_group("editors")

        self.assertFalse(self.groups.add_member("editors", 999999))
        self.assertFalse(self.groups.add_member("missing", self.user.pk))

    def test_remove_member(self):
        self.groups.create_group("editors")
        self.groups.add_member("editors", self.user.pk)

        self.assertTrue(self.groups.remove_member("editors", self.user.pk))
        self.assertFalse(self.groups.remove_member("editors", self.user.pk))

    def test_subgroup_rules(self):
        for name in ("a", "b", "c"):
            self.groups.create_group(name)

        self.assertFalse(self.groups.add_subgroup("a", "a"))
        self.assertTrue(self.groups.add_subgroup("a", "b"))
        self.assertFalse(self.groups.add_subgroup("a", "b"))
        self.assertTrue(self.groups.add_subgroup("b", "c"))
        # c -> a would close a -> b -> c -> a.
        self.assertFalse(self.groups.add_subgroup("c", "a"))
        self.assertFalse(self.groups.add_subgroup("a", "missing"))

        self.assertEqual(
            self.aauth.messages.get_errors_array(),
            [
                str(msg.SUBGROUP_SELF),
                str(msg.SUBGROUP_EXISTS),
                str(msg.SUBGROUP_CYCLE),
                str(msg.NOT_FOUND_SUBGROUP),
            ],
        )
        self.assertEqual(self.groups.get_subgroups("a"), [self.groups.get_group_id("b")])

    def test_list_group_subgroups_flags_direct_children(self):
        for name in ("a", "b", "c"):
            self.groups.create_group(name)
        self.groups.add_subgroup("a", "b")

        flags = {row["name"]: row["subgroup"] for row in self.groups.list_group_subgroups("a")}

        self.assertEqual(flags, {"a": False, "b": True, "c": False})

    def test_list_user_groups_flags_membership(self):
        self.groups.create_group("editors")
        self.groups.create_group("writers")
        self.groups.add_member("writers", self.user.pk)

        flags = {row["name"]: row["member"] for row in self.groups.list_user_groups(self.user.pk)}

        self.assertEqual(flags, {"editors": False, "writers": True})

    def test_list_groups_paginated(self):
        for index in range(5):
            self.groups.create_group(f"group{index}")

        result = self.groups.list_groups_paginated(limit=2, order_by="-name", page=2)

        self.assertEqual([row["name"] for row in result["groups"]], ["group2", "group1"])
        self.assertEqual(result["pager"].paginator.num_pages, 3)

    def test_unknown_ordering_keeps_default_order(self):
        first = self.groups.create_group("beta")
        second = self.groups.create_group("alpha")

        result = self.groups.list_groups_paginated(order_by="nope")
        descending = self.groups.list_groups_paginated(order_by="--name")

        self.assertEqual([row["id"] for row in result["groups"]], [first, second])
        self.assertEqual([row["id"] for row in descending["groups"]], [first, second])

    def test_group_variables(self):
        self.groups.create_group("editors")

        self.assertTrue(self.groups.set_group_var("color", "blue", "editors"))
        self.assertTrue(self.groups.set_group_var("color", "red", "editors"))
        self.groups.set_group_var("size", "l", "editors")

        self.assertEqual(self.groups.get_group_var("color", "editors"), "red")
        self.assertEqual(self.groups.get_group_var_keys("editors"), ["color", "size"])
        self.assertTrue(self.groups.unset_group_var("color", "editors"))
        self.assertIsNone(self.groups.get_group_var("color", "editors"))
        self.assertFalse(self.groups.set_group_var("color", "blue", "missing"))


class PermServiceTests(TestCase):
    """Permission CRUD and grants."""

    @classmethod
    def setUpTestData(cls):
        cls.user = create_user("grantee@test.com")
        cls.group = Group.objects.create(name="editors")

    def setUp(self):
        self.aauth = make_aauth()
        self.perms = self.aauth.perms

    def test_create_update_delete_perm(self):
        perm_id = self.perms.create_perm("publish", "Publish posts")

        self.assertEqual(self.perms.get_perm_id("publish"), perm_id)
        self.assertIsNone(self.perms.create_perm("publish"))
        self.assertIsNone(self.perms.create_perm("Pub Lish"))
        self.assertTrue(self.perms.update_perm(perm_id, definition="Publish everything"))
        self.assertEqual(self.perms.get_perm("publish")["definition"], "Publish everything")

        self.perms.allow_group("publish", "editors")
        self.assertTrue(self.perms.delete_perm("publish"))

        self.assertIsNone(self.perms.get_perm_id("publish"))
        self.assertFalse(PermToGroup.objects.filter(perm_id=perm_id).exists())
        self.assertTrue(Permission.all_objects.filter(pk=perm_id).exists())

    def test_grants_replace_previous_state(self):
        self.perms.create_perm("publish")

        self.assertTrue(self.perms.allow_user("publish", self.user.pk))
        self.assertTrue(self.perms.deny_user("publish", self.user.pk))

        self.assertEqual(
            self.perms.get_user_perms(self.user.pk),
            [{"perm_id": self.perms.get_perm_id("publish"), "state": PermState.DENY}],
        )
        self.assertTrue(self.perms.remove_user_perm("publish", self.user.pk))
        self.assertFalse(self.perms.remove_user_perm("publish", self.user.pk))

    def test_grants_to_unknown_subjects_fail(self):
        self.perms.create_perm("publish")

        self.assertFalse(self.perms.allow_user("publish", 999999))
        self.assertFalse(self.perms.allow_group("publish", "missing"))
        self.assertFalse(self.perms.allow_group("missing", "editors"))
        self.assertEqual(
            self.aauth.messages.get_errors_array(),
            [str(msg.NOT_FOUND_USER), str(msg.NOT_FOUND_GROUP), str(msg.NOT_FOUND_PERM)],
        )

    def test_list_group_perms_reports_state(self):
        self.perms.create_perm("publish")
        self.perms.create_perm("comment")
        self.perms.create_perm("archive")
        self.perms.allow_group("publish", "editors")
        self.perms.deny_group("comment", "editors")

        states = {row["name"]: row["state"] for row in self.perms.list_group_perms("editors")}

        self.assertEqual(states, {"publish": 1, "comment": 0, "archive": -1})
        self.assertEqual(len(self.perms.get_group_perms("editors", state=PermState.ALLOW)), 1)

    def test_list_user_perms_paginated(self):
        for name in ("a", "b", "c"):
            self.perms.create_perm(name)
        self.perms.allow_user("c", self.user.pk)

        result = self.perms.list_user_perms_paginated(self.user.pk, limit=2, order_by="name", page=2)

        self.assertEqual(result["perms"], [{"id": self.perms.get_perm_id("c"), "name": "c", "definition": "", "state": 1}])
