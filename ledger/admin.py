"""Admin configuration for ledger app."""
from django.contrib import admin
from .models import Account, Transaction, Commission


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'user', 'balance', 'sponsor', 'created_at']
    search_fields = ['id', 'name', 'user__username']
    raw_id_fields = ['user', 'sponsor']
    readonly_fields = ['id', 'balance', 'created_at', 'updated_at']


class ImmutableRecordAdmin(admin.ModelAdmin):

    def has_delete_permission(self, request, obj=None):
        # Prevent deletion of ledger records (immutable)
        return False

    def has_change_permission(self, request, obj=None):
        # Prevent updates to ledger records (immutable)
        return False


@admin.register(Transaction)
class TransactionAdmin(ImmutableRecordAdmin):
    list_display = ['id', 'receiver', 'kind', 'amount', 'created_at']
    list_filter = ['kind', 'created_at']
    search_fields = ['id', 'receiver__name']
    readonly_fields = ['id', 'created_at']


@admin.register(Commission)
class CommissionAdmin(ImmutableRecordAdmin):
    list_display = ['transaction', 'level', 'sender', 'receiver', 'amount', 'created_at']
    list_filter = ['level', 'created_at']
    search_fields = ['transaction__id', 'receiver__name', 'sender__name']
    readonly_fields = ['id', 'created_at']
