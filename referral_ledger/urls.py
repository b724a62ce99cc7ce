"""URL configuration for referral_ledger project."""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/transactions/', include('purchases.urls')),
    path('api/', include('ledger.urls')),
]
