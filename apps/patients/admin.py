from django.contrib import admin

from .models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['id', 'uuid', 'family_name', 'given_name', 'voided', 'date_created']
    list_filter = ['voided']
    search_fields = ['uuid', 'given_name', 'family_name']
    readonly_fields = ['uuid', 'date_created']
