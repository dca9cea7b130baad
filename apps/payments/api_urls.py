from django.urls import path
from . import api_views

app_name = "payments"

urlpatterns = [
    path('orders/<uuid:order_id>/', api_views.create_payment, name='create_payment'),
    path('<uuid:payment_id>/', api_views.payment_detail, name='payment_detail'),
    path('<uuid:payment_id>/split/', api_views.split_payment, name='split_payment'),
    path('<uuid:payment_id>/participants/<int:participant_id>/pay/', api_views.pay_participant, name='pay_participant'),
    path('<uuid:payment_id>/pay/', api_views.pay_individual, name='pay_individual'),
    path('<uuid:payment_id>/refund/', api_views.refund_payment, name='refund_payment'),
]
