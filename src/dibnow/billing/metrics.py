"""
Billing metrics and tracing.

Instruments come from the OpenTelemetry API; without an SDK configured they
are no-ops, so recording is always safe.
"""

from contextlib import AbstractContextManager
from typing import Any

import structlog
from opentelemetry import metrics, trace
from opentelemetry.metrics import Counter, Meter
from opentelemetry.trace import Span, SpanKind, Tracer

logger = structlog.get_logger(__name__)


class BillingMetrics:
    """Billing metrics collector"""

    def __init__(self, meter: Meter | None = None, tracer: Tracer | None = None) -> None:
        self.meter = meter or metrics.get_meter("dibnow.billing")
        self.tracer = tracer or trace.get_tracer("dibnow.billing")

        # Renewal metrics
        self.renewal_attempt_counter = self._counter(
            "billing.renewal.attempts", "Automated renewal attempts"
        )
        self.renewal_success_counter = self._counter(
            "billing.renewal.succeeded", "Automated renewals that charged successfully"
        )
        self.renewal_failure_counter = self._counter(
            "billing.renewal.failed", "Automated renewals that failed or timed out"
        )
        self.expiry_counter = self._counter(
            "billing.subscription.expired", "Subscriptions flipped to expired"
        )

        # Quota metrics
        self.limit_denied_counter = self._counter(
            "billing.limit.denied", "Resource creations denied by plan quota"
        )

        # Wallet metrics
        self.wallet_topup_counter = self._counter("billing.wallet.topups", "Wallet top-ups")
        self.wallet_deduction_counter = self._counter(
            "billing.wallet.deductions", "Successful wallet deductions"
        )
        self.refund_counter = self._counter("billing.transaction.refunds", "Refunds issued")

        # Workflow metrics
        self.plan_request_counter = self._counter(
            "billing.plan_request.decisions", "Plan request approvals and denials"
        )
        self.configuration_error_counter = self._counter(
            "billing.configuration.errors", "Billing configuration errors (missing default plan)"
        )

    def _counter(self, name: str, description: str) -> Counter:
        return self.meter.create_counter(name=name, description=description, unit="1")

    def record_renewal_attempt(self, tenant_id: str, payment_method: str) -> None:
        self.renewal_attempt_counter.add(
            1, {"tenant_id": tenant_id, "payment_method": payment_method}
        )

    def record_renewal_result(
        self, tenant_id: str, payment_method: str, success: bool, reason: str | None = None
    ) -> None:
        """Record the outcome of a single renewal attempt"""
        attributes: dict[str, Any] = {"tenant_id": tenant_id, "payment_method": payment_method}
        if success:
            self.renewal_success_counter.add(1, attributes)
        else:
            if reason:
                attributes["reason"] = reason
            self.renewal_failure_counter.add(1, attributes)

    def record_expired(self, tenant_id: str, source: str) -> None:
        self.expiry_counter.add(1, {"tenant_id": tenant_id, "source": source})

    def record_limit_denied(self, tenant_id: str, resource_kind: str, plan_name: str) -> None:
        self.limit_denied_counter.add(
            1, {"tenant_id": tenant_id, "resource_kind": resource_kind, "plan": plan_name}
        )

    def record_wallet_topup(self, tenant_id: str, currency: str) -> None:
        self.wallet_topup_counter.add(1, {"tenant_id": tenant_id, "currency": currency})

    def record_wallet_deduction(self, tenant_id: str, currency: str, kind: str) -> None:
        self.wallet_deduction_counter.add(
            1, {"tenant_id": tenant_id, "currency": currency, "type": kind}
        )

    def record_refund(self, tenant_id: str, transaction_type: str, partial: bool) -> None:
        self.refund_counter.add(
            1, {"tenant_id": tenant_id, "transaction_type": transaction_type, "partial": partial}
        )

    def record_plan_request_decision(self, decision: str) -> None:
        self.plan_request_counter.add(1, {"decision": decision})

    def record_configuration_error(self, reason: str) -> None:
        """Record a configuration error; these should page someone"""
        self.configuration_error_counter.add(1, {"reason": reason})
        logger.error("billing.configuration_error", reason=reason)

    # Tracing helpers
    def trace_renewal(self, tenant_id: str, subscription_id: str) -> AbstractContextManager[Span]:
        """Create a trace span for one renewal attempt"""
        return self.tracer.start_as_current_span(
            "billing.renewal.attempt",
            kind=SpanKind.INTERNAL,
            attributes={"tenant_id": tenant_id, "subscription_id": subscription_id},
        )


# Global metrics instance
_billing_metrics: BillingMetrics | None = None


def get_billing_metrics() -> BillingMetrics:
    """Get the global billing metrics instance"""
    global _billing_metrics
    if _billing_metrics is None:
        _billing_metrics = BillingMetrics()
    return _billing_metrics


def set_billing_metrics(billing_metrics: BillingMetrics | None) -> None:
    """Set the global billing metrics instance"""
    global _billing_metrics
    _billing_metrics = billing_metrics
