"""URL configuration for ledger app."""
from django.urls import path
from . import views

urlpatterns = [
    path('add-balance/', views.add_balance, name='add_balance'),
    path('commissions/recent/', views.recent_commissions, name='recent_commissions'),
]
