from django.apps import AppConfig


class AuthenticationConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.authentication"
    label = "authentication"   # AUTH_USER_MODEL is authentication.User
    verbose_name = "Staff and customers"
