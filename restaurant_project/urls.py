from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # Admin interface
    path('admin/', admin.site.urls),

    # API URLs
    path('api/assignments/', include('apps.assignments.urls')),
    path('api/payments/', include('apps.payments.api_urls')),

    # Notifications URLs
    path('notifications/', include('apps.notifications.urls')),
]

# Admin site configuration
admin.site.site_header = "Restaurant Service Desk"
admin.site.site_title = "Restaurant Admin"
admin.site.index_title = "Welcome to Restaurant Service Desk"
