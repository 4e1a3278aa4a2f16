from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import User

@admin.register(User)
class CustomUserAdmin(UserAdmin):
    list_display = ('username', 'email', 'role', 'tenant', 'department', 'is_staff')
    list_filter = ('role', 'tenant', 'is_staff', 'is_superuser', 'is_active')
    search_fields = ('username', 'email', 'first_name', 'last_name', 'department')
    fieldsets = UserAdmin.fieldsets + (
        ('Ledger Identity', {'fields': ('role', 'tenant', 'department')}),
    )
    add_fieldsets = UserAdmin.add_fieldsets + (
        ('Ledger Identity', {'fields': ('role', 'tenant', 'department')}),
    )
