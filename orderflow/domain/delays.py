"""Delay metrics derived from milestone timestamps.

Pure functions, no external dependencies. Each metric measures the hours
between two milestones of one order and grades them against fixed
warning/critical thresholds.
"""

from dataclasses import dataclass
from enum import StrEnum

from orderflow.domain.order import Order


class DelayStatus(StrEnum):
    PENDING = "pending"
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class DelayThreshold:
    key: str
    label: str
    start_field: str
    end_field: str
    warning_hours: int
    critical_hours: int


DELAY_THRESHOLDS: tuple[DelayThreshold, ...] = (
    DelayThreshold("acceptance", "Acceptance Delay", "assigned_at", "manufacturer_accepted_at", 24, 48),
    DelayThreshold("sample_qc", "Sample QC Delay", "sample_production_started_at", "sample_qc_uploaded_at", 72, 120),
    DelayThreshold("bulk_qc", "Bulk QC Delay", "sample_approved_at", "bulk_qc_uploaded_at", 168, 336),
    DelayThreshold("delivery", "Delivery Time", "dispatched_at", "delivered_at", 72, 120),
)


@dataclass
class DelayMetric:
    key: str
    label: str
    hours: float | None
    status: DelayStatus
    warning_hours: int
    critical_hours: int


def delay_status(hours: float | None, warning_hours: int, critical_hours: int) -> DelayStatus:
    """Grade a duration. Missing data is pending; thresholds are inclusive."""
    if hours is None:
        return DelayStatus.PENDING
    if hours >= critical_hours:
        return DelayStatus.CRITICAL
    if hours >= warning_hours:
        return DelayStatus.WARNING
    return DelayStatus.OK


def compute_delay_metrics(order: Order) -> list[DelayMetric]:
    """Compute every delay metric for an order.

    A metric stays pending until both of its milestones are recorded.
    """
    metrics = []
    for threshold in DELAY_THRESHOLDS:
        start = getattr(order, threshold.start_field)
        end = getattr(order, threshold.end_field)
        hours = None
        if start is not None and end is not None:
            hours = round((end - start).total_seconds() / 3600, 2)
        metrics.append(
            DelayMetric(
                key=threshold.key,
                label=threshold.label,
                hours=hours,
                status=delay_status(hours, threshold.warning_hours, threshold.critical_hours),
                warning_hours=threshold.warning_hours,
                critical_hours=threshold.critical_hours,
            )
        )
    return metrics
