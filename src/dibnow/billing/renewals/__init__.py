"""Automated subscription renewals."""

from dibnow.billing.renewals.scheduler import RenewalScheduler
from dibnow.billing.renewals.service import RenewalCycleReport, RenewalOutcome, RenewalService

__all__ = ["RenewalCycleReport", "RenewalOutcome", "RenewalScheduler", "RenewalService"]
