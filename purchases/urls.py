"""URL configuration for purchases app."""
from django.urls import path
from . import views

urlpatterns = [
    path('buy/', views.create_purchase, name='create_purchase'),
    path('recent/', views.recent_transactions, name='recent_transactions'),
]
