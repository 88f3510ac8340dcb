"""
Core Web Vitals classification.

Pure functions over fixed thresholds; no I/O. A device is "good" only when
all three metrics are good, "poor" when at most one is good.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

GOOD = "good"
NEEDS_IMPROVEMENT = "needs-improvement"
POOR = "poor"

GRADE_RANK = {GOOD: 0, NEEDS_IMPROVEMENT: 1, POOR: 2}


@dataclass(frozen=True)
class Threshold:
    good: float
    poor: float     # values above this are poor
    unit: str


THRESHOLDS: dict[str, Threshold] = {
    "lcp": Threshold(good=2500, poor=4000, unit="ms"),
    "inp": Threshold(good=200, poor=500, unit="ms"),
    "cls": Threshold(good=0.1, poor=0.25, unit=""),
}


class MetricReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float | None = None
    grade: str = POOR
    good_threshold: float = 0.0
    poor_threshold: float = 0.0


class DeviceVitals(BaseModel):
    model_config = ConfigDict(frozen=True)

    device: str
    measured: bool = False
    source: str = "none"        # crux | pagespeed-field | pagespeed-lab | none
    lcp: MetricReading = MetricReading(good_threshold=2500, poor_threshold=4000)
    inp: MetricReading = MetricReading(good_threshold=200, poor_threshold=500)
    cls: MetricReading = MetricReading(good_threshold=0.1, poor_threshold=0.25)
    overall_grade: str = POOR
    performance_score: float | None = None


def grade_metric(metric: str, value: float | None) -> str:
    if value is None:
        return POOR
    threshold = THRESHOLDS[metric]
    if value <= threshold.good:
        return GOOD
    if value <= threshold.poor:
        return NEEDS_IMPROVEMENT
    return POOR


def grade_device(grades: list[str]) -> str:
    good_count = sum(1 for g in grades if g == GOOD)
    if good_count == len(grades):
        return GOOD
    if good_count <= 1:
        return POOR
    return NEEDS_IMPROVEMENT


def worst_grade(grades: list[str]) -> str:
    return max(grades, key=GRADE_RANK.__getitem__, default=POOR)


class VitalsEvaluator:
    """Turns raw metric values for one device into a graded DeviceVitals."""

    def evaluate(
        self,
        device: str,
        lcp: float | None,
        inp: float | None,
        cls: float | None,
        source: str = "none",
        performance_score: float | None = None,
    ) -> DeviceVitals:
        readings = {}
        for name, value in (("lcp", lcp), ("inp", inp), ("cls", cls)):
            threshold = THRESHOLDS[name]
            readings[name] = MetricReading(
                value=value,
                grade=grade_metric(name, value),
                good_threshold=threshold.good,
                poor_threshold=threshold.poor,
            )
        measured = all(v is not None for v in (lcp, inp, cls))
        return DeviceVitals(
            device=device,
            measured=measured,
            source=source if any(v is not None for v in (lcp, inp, cls)) else "none",
            overall_grade=grade_device([r.grade for r in readings.values()]),
            performance_score=performance_score,
            **readings,
        )

    def unmeasured(self, device: str) -> DeviceVitals:
        return self.evaluate(device, None, None, None)
