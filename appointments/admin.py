from django.contrib import admin
from .models import (
    Clinic,
    ServiceType,
    Doctor,
    Patient,
    Appointment,
    Reminder,
    Conversation,
)


class ServiceTypeInline(admin.TabularInline):
    model = ServiceType
    extra = 1
    fields = ["name", "duration_minutes", "is_active"]


class ReminderInline(admin.TabularInline):
    model = Reminder
    extra = 0
    fields = ["kind", "status", "scheduled_for", "sent_at", "error_message"]
    readonly_fields = ["kind", "scheduled_for"]


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ["name", "phone", "timezone", "created_at"]
    search_fields = ["name"]
    inlines = [ServiceTypeInline]


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ["name", "specialty", "clinic", "is_active", "get_working_days"]
    list_filter = ["clinic", "is_active"]
    search_fields = ["name", "specialty"]

    def get_working_days(self, obj):
        return ", ".join(key.capitalize() for key in (obj.working_hours or {}))

    get_working_days.short_description = "Working days"


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ["name", "phone", "clinic", "created_at"]
    list_filter = ["clinic"]
    search_fields = ["name", "phone"]


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = [
        "patient",
        "doctor",
        "clinic",
        "appointment_date",
        "start_time",
        "end_time",
        "status",
        "source",
    ]
    list_filter = ["status", "source", "clinic", "doctor"]
    search_fields = ["patient__name", "patient__phone", "doctor__name"]
    date_hierarchy = "appointment_date"
    inlines = [ReminderInline]


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ["id", "channel", "patient_phone", "status", "resolved_at"]
    list_filter = ["channel", "status", "clinic"]
