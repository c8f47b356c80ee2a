from django.contrib import admin  # type: ignore

from .models import PaymentAttempt


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    list_display = ("booking_id", "kind", "amount", "currency", "outcome", "failure_reason", "created_at")
    list_filter = ("kind", "outcome", "failure_reason")
    search_fields = ("booking_id", "idempotency_key", "provider_ref")
    readonly_fields = [f.name for f in PaymentAttempt._meta.fields]

    def has_add_permission(self, request):
        return False
