"""Seed the built-in groups, administrative permissions and an admin account."""

from typing import Optional

from django.core.management.base import BaseCommand
from django.db import transaction

from access_control.models import Group, GroupToUser, Permission, PermState, PermToGroup
from access_control.permissions import ADMIN_PERMISSIONS
from authentication.models import User
from core.conf import AauthConfig

DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_PASSWORD = "adminpass"


def create_seed_groups(config: AauthConfig) -> dict[str, Group]:
    """Create the admin, default and public groups if missing."""
    groups = {}
    definitions = {
        config.group_admin: "Members are allowed everything.",
        config.group_default: "Every new account joins this group.",
        config.group_public: "Permissions granted to anonymous visitors.",
    }
    for name, definition in definitions.items():
        if not name:
            continue
        group, _ = Group.all_objects.get_or_create(name=name, defaults={"definition": definition})
        if group.deleted_at is not None:
            group.deleted_at = None
            group.save(update_fields=["deleted_at", "updated_at"])
        groups[name] = group
    return groups


def create_seed_perms() -> dict[str, Permission]:
    """Create the permissions guarding the administrative API."""
    perms = {}
    for name, definition in ADMIN_PERMISSIONS.items():
        perm, _ = Permission.all_objects.get_or_create(name=name, defaults={"definition": definition})
        if perm.deleted_at is not None:
            perm.deleted_at = None
            perm.save(update_fields=["deleted_at", "updated_at"])
        perms[name] = perm
    return perms


def create_seed_grants(groups: dict[str, Group], perms: dict[str, Permission], config: AauthConfig) -> None:
    """Deny the administrative permissions to the public group explicitly."""
    public = groups.get(config.group_public)
    if public is None:
        return
    for perm in perms.values():
        PermToGroup.objects.update_or_create(perm=perm, group=public, defaults={"state": PermState.DENY})


def create_seed_admin(groups: dict[str, Group], config: AauthConfig, email: str, password: str) -> User:
    """Create (or reuse) the admin account and put it in the admin group."""
    admin = User.objects.filter(email__iexact=email).first()
    if admin is None:
        admin = User.objects.create_user(email=email, password=password, username="admin")
    GroupToUser.objects.get_or_create(group=groups[config.group_admin], user=admin)
    default = groups.get(config.group_default)
    if default is not None:
        GroupToUser.objects.get_or_create(group=default, user=admin)
    return admin


def reset_seeded_data(config: AauthConfig, admin_email: str) -> None:
    """Hard-delete the rows this seeder creates."""
    User.all_objects.filter(email__iexact=admin_email).delete()
    Permission.all_objects.filter(name__in=list(ADMIN_PERMISSIONS)).delete()
    names = [name for name in (config.group_admin, config.group_default, config.group_public) if name]
    Group.all_objects.filter(name__in=names).delete()


class Command(BaseCommand):
    """Management command to seed groups, permissions and the admin user."""

    help = (
        "Seed the admin/default/public groups, the administrative permissions "
        "and an admin account. Use --reset to clear previously seeded data first."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--reset",
            action="store_true",
            help="Delete previously seeded groups, permissions and admin user before seeding.",
        )
        parser.add_argument("--admin-email", default=DEFAULT_ADMIN_EMAIL)
        parser.add_argument("--admin-password", default=DEFAULT_ADMIN_PASSWORD)

    def handle(self, *args, **options):
        """Entrypoint for the management command."""
        config = AauthConfig.from_settings()
        email: str = options["admin_email"]
        password: Optional[str] = options["admin_password"]

        with transaction.atomic():
            if options.get("reset"):
                self.stdout.write("Resetting previously seeded Aauth data...")
                reset_seeded_data(config, email)
                self.stdout.write(self.style.WARNING("Seeded Aauth data cleared."))

            self.stdout.write("Seeding Aauth data...")
            groups = create_seed_groups(config)
            perms = create_seed_perms()
            create_seed_grants(groups, perms, config)
            admin = create_seed_admin(groups, config, email, password)

        self.stdout.write(self.style.SUCCESS(f"Aauth seed completed (admin user {admin.email})."))
