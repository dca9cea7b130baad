from django.db import models
from django.contrib.auth.models import AbstractUser
from django.core.validators import RegexValidator
import uuid


class User(AbstractUser):
    # Restaurant staff and customers share one user table, split by role.

    ROLE_CUSTOMER = 'customer'
    ROLE_WAITER = 'waiter'
    ROLE_KITCHEN = 'kitchen'
    ROLE_MANAGER = 'manager'
    ROLE_ADMIN = 'admin'

    ROLE_CHOICES = [
        (ROLE_CUSTOMER, 'Customer'),
        (ROLE_WAITER, 'Waiter'),
        (ROLE_KITCHEN, 'Kitchen'),
        (ROLE_MANAGER, 'Manager'),
        (ROLE_ADMIN, 'Admin'),
    ]

    STAFF_ROLES = (ROLE_WAITER, ROLE_KITCHEN, ROLE_MANAGER, ROLE_ADMIN)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    phone_regex = RegexValidator(
        regex=r'^\+?\d{7,15}$',
        message="Phone number must contain 7 to 15 digits, optionally prefixed with +"
    )
    phone_number = models.CharField(
        validators=[phone_regex],
        max_length=17,
        blank=True,
    )

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_CUSTOMER)

    # Waiter presence and coverage
    is_online = models.BooleanField(default=False)
    assigned_tables = models.ManyToManyField(
        'orders.Table',
        blank=True,
        related_name='waiters',
        help_text="Tables this waiter covers; used to rank waiters by proximity",
    )

    updated_at = models.DateTimeField(auto_now=True)
    last_activity = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = 'auth_user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        ordering = ['-date_joined']
        indexes = [
            models.Index(fields=['role']),
            models.Index(fields=['role', 'is_online']),
        ]

    def __str__(self):
        return f"{self.get_full_name()} ({self.role})"

    def get_full_name(self):
        """Return the full name of the user"""
        return f"{self.first_name} {self.last_name}".strip() or self.username

    def is_waiter(self):
        return self.role == self.ROLE_WAITER

    def is_staff_member(self):
        return self.role in self.STAFF_ROLES or self.is_superuser

    def can_manage_orders(self):
        """Kitchen, managers and admins may trigger assignments"""
        return self.role in (self.ROLE_KITCHEN, self.ROLE_MANAGER, self.ROLE_ADMIN) or self.is_superuser

    def set_online(self, online=True):
        """Mark a waiter as reachable (or not) for new assignment offers"""
        from django.utils import timezone
        self.is_online = online
        self.last_activity = timezone.now()
        self.save(update_fields=['is_online', 'last_activity'])
