from django.contrib import admin

from .models import (
    Appointment,
    PatientPurchase,
    PaymentConfirmation,
    Product,
    ProductService,
    Profile,
    Transaction,
    WalletEntry,
    WebhookEvent,
)


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("external_id", "full_name", "role", "speciality", "fee", "balance", "is_subscribed", "is_active")
    search_fields = ("external_id", "email", "full_name")
    list_filter = ("role", "speciality", "is_subscribed", "is_active")
    readonly_fields = ("balance", "created_at", "updated_at")


class ProductServiceInline(admin.TabularInline):
    model = ProductService
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "product_type", "price", "platform_commission_percent", "is_active", "updated_at")
    search_fields = ("name", "service_category")
    list_filter = ("product_type", "is_active", "requires_initial_neuro")
    inlines = [ProductServiceInline]


class WalletEntryInline(admin.TabularInline):
    model = WalletEntry
    extra = 0
    readonly_fields = ("service_type", "remaining_sessions", "is_locked", "unlock_after_service", "created_at")
    can_delete = False


@admin.register(PatientPurchase)
class PatientPurchaseAdmin(admin.ModelAdmin):
    list_display = ("id", "patient", "product", "total_paid", "status", "purchased_at", "expires_at")
    search_fields = ("patient__external_id", "patient__email", "product__name")
    list_filter = ("status",)
    inlines = [WalletEntryInline]


@admin.register(WalletEntry)
class WalletEntryAdmin(admin.ModelAdmin):
    list_display = ("patient", "purchase", "service_type", "remaining_sessions", "is_locked", "unlock_after_service")
    search_fields = ("patient__external_id", "patient__email")
    list_filter = ("service_type", "is_locked")


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "patient",
        "doctor",
        "appointment_date",
        "appointment_time",
        "service_type",
        "visit_type",
        "fee",
        "consumed_from_plan",
        "status",
    )
    search_fields = ("patient__external_id", "doctor__external_id", "appointment_for")
    list_filter = ("status", "service_type", "visit_type", "consumed_from_plan")


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = (
        "transaction_type",
        "patient",
        "doctor",
        "amount",
        "platform_fee",
        "professional_earning",
        "status",
        "created_at",
    )
    list_filter = ("transaction_type", "status")
    readonly_fields = ("amount", "platform_fee", "professional_earning", "created_at", "updated_at")


@admin.register(PaymentConfirmation)
class PaymentConfirmationAdmin(admin.ModelAdmin):
    list_display = ("reference", "provider", "patient", "amount", "currency", "status", "spent_at")
    search_fields = ("reference", "patient__external_id")
    list_filter = ("provider", "status")


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ("provider", "event_id", "event_type", "status", "received_at", "processed_at")
    search_fields = ("event_id", "event_type")
    list_filter = ("provider", "status")
