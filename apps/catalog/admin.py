from django.contrib import admin
from .models import BillableService, StockItem, ItemPrice


class ItemPriceInline(admin.TabularInline):
    model = ItemPrice
    extra = 0
    fields = ['name', 'price', 'voided']


@admin.register(BillableService)
class BillableServiceAdmin(admin.ModelAdmin):
    list_display = ['name', 'short_name', 'retired', 'date_created']
    list_filter = ['retired']
    search_fields = ['name', 'short_name']
    inlines = [ItemPriceInline]


@admin.register(StockItem)
class StockItemAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'department', 'retired']
    list_filter = ['retired', 'department']
    search_fields = ['name', 'code']
    inlines = [ItemPriceInline]
