from django.urls import path
from . import views

app_name = "assignments"

urlpatterns = [
    # Admin / kitchen
    path('assign/<uuid:order_id>/', views.assign_order, name='assign_order'),

    # Waiter
    path('my-pending/', views.my_pending_assignments, name='my_pending'),
    path('accept/<str:assignment_id>/', views.accept_assignment, name='accept'),
    path('pass/<str:assignment_id>/', views.pass_assignment, name='pass'),
]
