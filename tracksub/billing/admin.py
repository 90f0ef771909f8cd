"""
Django admin configuration for billing models.

Provides admin interfaces for:
- Plan: Edit the plan catalog (deactivate rather than delete)
- Subscription: View/manage user subscriptions
- Payment: Order ledger, with a "needs attention" filter for completed
  payments whose activation was deferred or that were paid after the
  order closed, and an action to activate deferred ones
- InvoiceSequence: Per-month invoice counters (read-only)
"""

from django.contrib import admin
from django.contrib import messages
from django.utils.translation import gettext_lazy as _

from tracksub.billing.constants import NEEDS_ATTENTION_STATUSES
from tracksub.billing.constants import ActivationStatus
from tracksub.billing.exceptions import BillingError
from tracksub.billing.models import InvoiceSequence
from tracksub.billing.models import Payment
from tracksub.billing.models import Plan
from tracksub.billing.models import Subscription
from tracksub.billing.reconciliation import ReconciliationService


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    """Admin for the plan catalog."""

    list_display = [
        "name",
        "price",
        "device_limit",
        "duration_days",
        "is_active",
    ]
    list_editable = ["is_active"]
    list_filter = ["is_active"]
    search_fields = ["name"]

    def has_delete_permission(self, request, obj=None):
        # Subscriptions and payment metadata reference plans.
        return False


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin for user subscriptions."""

    list_display = ["user", "plan", "status", "start_date", "end_date"]
    list_filter = ["status", "plan"]
    search_fields = ["user__email", "user__name"]
    raw_id_fields = ["user"]
    readonly_fields = ["created", "modified"]


class NeedsAttentionFilter(admin.SimpleListFilter):
    title = _("needs attention")
    parameter_name = "needs_attention"

    def lookups(self, request, model_admin):
        return [("yes", _("Deferred or paid after close"))]

    def queryset(self, request, queryset):
        if self.value() == "yes":
            return queryset.filter(activation_status__in=NEEDS_ATTENTION_STATUSES)
        return queryset


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Admin for the order ledger."""

    list_display = [
        "order_id",
        "invoice_number",
        "user",
        "amount",
        "currency",
        "gateway",
        "status",
        "activation_status",
        "created",
    ]
    list_filter = [NeedsAttentionFilter, "status", "gateway", "activation_status"]
    search_fields = ["order_id", "invoice_number", "transaction_id", "user__email"]
    raw_id_fields = ["user"]
    readonly_fields = [
        "order_id",
        "invoice_number",
        "status",
        "transaction_id",
        "gateway_session_id",
        "completed_at",
        "created",
        "modified",
    ]
    actions = ["activate_with_metadata_plan"]

    @admin.action(description=_("Activate deferred payments with their metadata plan"))
    def activate_with_metadata_plan(self, request, queryset):
        service = ReconciliationService()
        activated = 0
        for payment in queryset.filter(activation_status=ActivationStatus.DEFERRED):
            plan = Plan.objects.lookup(payment.metadata_plan_id)
            if plan is None:
                self.message_user(
                    request,
                    _("%(order)s: metadata has no valid plan; use the admin API.")
                    % {"order": payment.order_id},
                    level=messages.WARNING,
                )
                continue
            try:
                service.activate_deferred(payment, plan)
            except BillingError as e:
                self.message_user(request, e.detail, level=messages.ERROR)
                continue
            activated += 1

        if activated:
            self.message_user(
                request,
                _("Activated %(count)d payment(s).") % {"count": activated},
                level=messages.SUCCESS,
            )


@admin.register(InvoiceSequence)
class InvoiceSequenceAdmin(admin.ModelAdmin):
    list_display = ["period", "last_value"]
    readonly_fields = ["period", "last_value"]
