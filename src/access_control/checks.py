"""System checks for access control configuration."""

from django.core.checks import Error, register

from access_control.permissions import AauthPermission


@register()
def aauth_views_declare_required_permission(app_configs, **kwargs):
    """Ensure Aauth-protected views declare ``required_permission``.

    ``None`` is a valid declaration (login only); a missing attribute is not.
    Only views in this project are inspected; new protected views should be
    added here or subclass ``AdminAPIView``.
    """
    errors: list[Error] = []

    # Import here to avoid circular imports at module load time.
    from access_control import views as admin_views
    from authentication.views import MeView, TOTPSetupView

    protected_views = [MeView, TOTPSetupView]
    protected_views += [
        view_cls
        for name in admin_views.__all__
        if isinstance(view_cls := getattr(admin_views, name), type)
        and issubclass(view_cls, admin_views.AdminAPIView)
        and view_cls is not admin_views.AdminAPIView
    ]

    for view_cls in protected_views:
        permission_classes = getattr(view_cls, "permission_classes", [])
        if AauthPermission not in permission_classes:
            continue
        if "required_permission" not in {name for klass in view_cls.__mro__ for name in vars(klass)}:
            errors.append(
                Error(
                    f"{view_cls.__name__} uses AauthPermission but does not "
                    f"define required_permission.",
                    obj=view_cls,
                    id="access_control.E001",
                )
            )
        required = getattr(view_cls, "required_permission", None)
        if required is not None and not isinstance(required, (str, int)):
            errors.append(
                Error(
                    f"{view_cls.__name__}.required_permission must be a permission name or id.",
                    obj=view_cls,
                    id="access_control.E002",
                )
            )

    return errors
