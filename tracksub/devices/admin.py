from django.contrib import admin

from tracksub.devices.models import Device


@admin.register(Device)
class DeviceAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "unique_id",
        "user",
        "traccar_id",
        "status",
        "is_active",
        "last_update",
    ]
    list_filter = ["is_active", "status"]
    search_fields = ["name", "unique_id", "user__email"]
    raw_id_fields = ["user"]
    readonly_fields = ["created", "modified", "deleted_at", "last_update"]
