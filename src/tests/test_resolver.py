"""Permission resolution: admin short-circuit, deny/allow precedence, subgroups."""

from __future__ import annotations

from django.test import TestCase

from access_control.models import (
    Group,
    GroupToGroup,
    GroupToUser,
    Permission,
    PermState,
    PermToGroup,
    PermToUser,
)
from access_control.registry import normalize_name
from tests.utils import create_user, make_aauth


class ResolverTests(TestCase):
    """Resolve permissions for users and groups through the facade."""

    @classmethod
    def setUpTestData(cls):
        """Build admin/editors/writers groups and a couple of permissions."""
        cls.admin_group = Group.objects.create(name="admin")
        cls.editors = Group.objects.create(name="editors")
        cls.writers = Group.objects.create(name="writers")
        cls.readers = Group.objects.create(name="readers")

        cls.publish = Permission.objects.create(name="publish")
        cls.comment = Permission.objects.create(name="comment")

        cls.boss = create_user("boss@test.com")
        cls.editor = create_user("editor@test.com")
        cls.nobody = create_user("nobody@test.com")

        GroupToUser.objects.create(group=cls.admin_group, user=cls.boss)
        GroupToUser.objects.create(group=cls.editors, user=cls.editor)

        # editors -> writers: editors inherit what writers are allowed.
        GroupToGroup.objects.create(group=cls.editors, subgroup=cls.writers)
        PermToGroup.objects.create(perm=cls.publish, group=cls.writers, state=PermState.ALLOW)

    def setUp(self):
        self.aauth = make_aauth()

    def test_admin_is_allowed_everything(self):
        """Admin membership wins even over an explicit user deny."""
        PermToUser.objects.create(perm=self.comment, user=self.boss, state=PermState.DENY)

        self.assertTrue(self.aauth.is_admin(self.boss.pk))
        self.assertTrue(self.aauth.is_allowed("publish", self.boss.pk))
        self.assertTrue(self.aauth.is_allowed("comment", self.boss.pk))

    def test_user_inherits_from_group_subgroups(self):
        self.assertTrue(self.aauth.is_allowed("publish", self.editor.pk))
        self.assertTrue(self.aauth.is_group_allowed("publish", "editors"))
        self.assertFalse(self.aauth.is_allowed("comment", self.editor.pk))
        self.assertFalse(self.aauth.is_allowed("publish", self.nobody.pk))

    def test_user_deny_overrides_group_allow(self):
        PermToUser.objects.create(perm=self.publish, user=self.editor, state=PermState.DENY)

        self.assertFalse(self.aauth.is_allowed("publish", self.editor.pk))

    def test_user_allow_overrides_group_deny(self):
        PermToGroup.objects.create(perm=self.comment, group=self.editors, state=PermState.DENY)
        PermToUser.objects.create(perm=self.comment, user=self.editor, state=PermState.ALLOW)

        self.assertTrue(self.aauth.is_allowed("comment", self.editor.pk))

    def test_group_deny_beats_subgroup_allow(self):
        PermToGroup.objects.create(perm=self.publish, group=self.editors, state=PermState.DENY)

        self.assertFalse(self.aauth.is_group_allowed("publish", "editors"))
        self.assertFalse(self.aauth.is_allowed("publish", self.editor.pk))
        # The subgroup itself keeps its allow.
        self.assertTrue(self.aauth.is_group_allowed("publish", "writers"))

    def test_admin_group_as_subgroup_allows(self):
        GroupToGroup.objects.create(group=self.readers, subgroup=self.admin_group)

        self.assertTrue(self.aauth.is_group_allowed("comment", "readers"))

    def test_cyclic_hierarchy_terminates(self):
        """A cycle created behind the services' back resolves to not allowed."""
        GroupToGroup.objects.create(group=self.readers, subgroup=self.editors)
        GroupToGroup.objects.create(group=self.writers, subgroup=self.readers)

        self.assertFalse(self.aauth.is_group_allowed("comment", "readers"))
        self.assertTrue(self.aauth.is_group_allowed("publish", "readers"))

    def test_unknown_subjects_are_not_allowed(self):
        self.assertFalse(self.aauth.is_allowed("publish", 999999))
        self.assertFalse(self.aauth.is_allowed("no-such-perm", self.editor.pk))
        self.assertFalse(self.aauth.is_group_allowed("publish", "no-such-group"))
        self.assertFalse(self.aauth.is_allowed("publish"))

    def test_membership_queries(self):
        self.assertTrue(self.aauth.is_member("editors", self.editor.pk))
        self.assertTrue(self.aauth.is_member(self.editors.pk, self.editor.pk))
        self.assertFalse(self.aauth.is_member("writers", self.editor.pk))
        self.assertEqual(self.aauth.resolver.get_user_groups(self.editor.pk), [self.editors.pk])
        self.assertEqual(self.aauth.resolver.get_subgroups("editors"), [self.writers.pk])

    def test_soft_deleted_groups_are_ignored(self):
        self.editors.remove(soft=True)
        aauth = make_aauth()

        self.assertEqual(aauth.resolver.get_user_groups(self.editor.pk), [])
        self.assertFalse(aauth.is_allowed("publish", self.editor.pk))


class RegistryTests(TestCase):
    """Name/id lookups for groups and permissions."""

    @classmethod
    def setUpTestData(cls):
        cls.group = Group.objects.create(name="Content Editors")
        cls.perm = Permission.objects.create(name="publish")

    def setUp(self):
        self.registry = make_aauth().registry

    def test_names_are_matched_ignoring_case_and_whitespace(self):
        self.assertEqual(normalize_name(" Content  Editors "), "contenteditors")
        self.assertEqual(self.registry.get_group_id("content editors"), self.group.pk)
        self.assertEqual(self.registry.get_group_id("CONTENTEDITORS"), self.group.pk)

    def test_ids_resolve_as_ints_or_digit_strings(self):
        self.assertEqual(self.registry.get_perm_id(self.perm.pk), self.perm.pk)
        self.assertEqual(self.registry.get_perm_id(str(self.perm.pk)), self.perm.pk)
        self.assertIsNone(self.registry.get_perm_id(self.perm.pk + 1000))
        self.assertIsNone(self.registry.get_perm_id(None))

    def test_refresh_picks_up_new_rows(self):
        Permission.objects.create(name="archive")
        self.assertIsNone(self.registry.get_perm_id("archive"))

        self.registry.refresh_perms()

        self.assertIsNotNone(self.registry.get_perm_id("archive"))

    def test_oldest_row_keeps_a_colliding_name(self):
        Group.objects.create(name="content editors")

        self.registry.refresh_groups()

        self.assertEqual(self.registry.get_group_id("Content Editors"), self.group.pk)
