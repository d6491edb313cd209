"""Routing for group/permission administration endpoints."""

from django.urls import path

from .views import (
    AccessCheckView,
    GroupDetailView,
    GroupListView,
    GroupMemberDetailView,
    GroupMembersView,
    GroupPermDetailView,
    GroupPermsView,
    GroupSubgroupDetailView,
    GroupSubgroupsView,
    PermDetailView,
    PermListView,
    UserBanView,
    UserListView,
    UserPermDetailView,
    UserPermsView,
)

urlpatterns = [
    path("groups/", GroupListView.as_view(), name="group-list"),
    path("groups/<str:group>/", GroupDetailView.as_view(), name="group-detail"),
    path("groups/<str:group>/members/", GroupMembersView.as_view(), name="group-members"),
    path("groups/<str:group>/members/<int:user_id>/", GroupMemberDetailView.as_view(), name="group-member-detail"),
    path("groups/<str:group>/subgroups/", GroupSubgroupsView.as_view(), name="group-subgroups"),
    path("groups/<str:group>/subgroups/<str:subgroup>/", GroupSubgroupDetailView.as_view(), name="group-subgroup-detail"),
    path("groups/<str:group>/perms/", GroupPermsView.as_view(), name="group-perms"),
    path("groups/<str:group>/perms/<str:perm>/", GroupPermDetailView.as_view(), name="group-perm-detail"),
    path("perms/", PermListView.as_view(), name="perm-list"),
    path("perms/<str:perm>/", PermDetailView.as_view(), name="perm-detail"),
    path("users/", UserListView.as_view(), name="user-list"),
    path("users/<int:user_id>/ban/", UserBanView.as_view(), name="user-ban"),
    path("users/<int:user_id>/perms/", UserPermsView.as_view(), name="user-perms"),
    path("users/<int:user_id>/perms/<str:perm>/", UserPermDetailView.as_view(), name="user-perm-detail"),
    path("access/check/", AccessCheckView.as_view(), name="access-check"),
]
