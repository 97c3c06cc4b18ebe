"""
TaxMap Engine - Rate-Hike Search
================================
Finds the smallest additional ordinary income at which the *effective*
marginal rate jumps, including jumps a bracket lookup cannot see (Social
Security phase-in, IRMAA cliffs, senior-deduction phase-out).

The effective rate at an income offset is a finite difference over a fixed
probe: (cost(delta + probe) - cost(delta)) / probe, where cost is total tax
plus the enrolled IRMAA surcharge. The search is a coarse forward scan
followed by bisection between the last two scan points.
"""

import logging
from typing import Dict, List, Optional

from tax_constants import format_rate
from models import (
    DEFAULT_TAXPAYER_AGE,
    RateHikeResult,
    RetirementDistribution,
    ScenarioResult,
    coerce_deductions,
    parse_income_sources,
)
from tax_calculator import TaxCalculator

logger = logging.getLogger(__name__)

DEFAULT_PROBE = 1000.0
DEFAULT_STEP = 500.0
DEFAULT_CAP = 200000.0
DEFAULT_THRESHOLD = 0.005
DEFAULT_PRECISION = 100.0

PROBE_SOURCE_NAME = "Additional income"

# Social Security inclusion slope above which a window counts as the 85% tier
_SS_85_SLOPE = 0.675
_SLOPE_TOLERANCE = 0.01


def _positive(value, default: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


class RateHikeSearch:
    """
    One search over one household snapshot.

    Orchestrator results are memoized by income offset for the lifetime of
    the search object only.
    """

    def __init__(
        self,
        income_sources,
        taxpayer_age=DEFAULT_TAXPAYER_AGE,
        spouse_age=None,
        filing_status="single",
        settings=None,
        deductions=None,
        probe: float = DEFAULT_PROBE,
    ):
        self.calculator = TaxCalculator(taxpayer_age, spouse_age, filing_status, settings)
        self.sources = parse_income_sources(income_sources)
        self.deductions = coerce_deductions(deductions)
        self.probe = _positive(probe, DEFAULT_PROBE)
        self._memo: Dict[float, ScenarioResult] = {}

    @property
    def has_senior(self) -> bool:
        ages = (self.calculator.taxpayer_age, self.calculator.spouse_age)
        return any(age is not None and age >= 65 for age in ages)

    def scenario(self, delta: float) -> ScenarioResult:
        delta = round(delta, 2)
        if delta not in self._memo:
            sources: List = list(self.sources)
            if delta > 0:
                sources.append(RetirementDistribution(
                    name=PROBE_SOURCE_NAME,
                    kind="traditional_ira",
                    amount=delta,
                    penalty_exempt=True,
                ))
            # Only the baseline needs the bracket gap (fallback path)
            self._memo[delta] = self.calculator.calculate(sources, self.deductions, solve_bracket_gap=delta == 0)
        return self._memo[delta]

    def cost(self, delta: float) -> float:
        result = self.scenario(delta)
        return result.total_tax + result.irmaa.annual_surcharge

    def effective_rate(self, delta: float) -> float:
        return (self.cost(delta + self.probe) - self.cost(delta)) / self.probe

    @property
    def evaluations(self) -> int:
        return len(self._memo)

    # -------------------------------------------------------------------------
    # Cause attribution
    # -------------------------------------------------------------------------

    def _slope(self, delta: float, field) -> float:
        return (field(self.scenario(delta + self.probe)) - field(self.scenario(delta))) / self.probe

    def attribute(self, delta: float) -> List[str]:
        """Diff the probe window at delta against the baseline window."""
        base = self.scenario(0.0)
        start = self.scenario(delta)
        end = self.scenario(delta + self.probe)
        causes = []

        if end.federal_marginal_rate > base.federal_marginal_rate:
            causes.append(
                f"Tax Bracket ({format_rate(base.federal_marginal_rate)} → {format_rate(end.federal_marginal_rate)})"
            )

        def taxable_ss(r):
            return r.social_security.taxable_amount

        ss_slope = self._slope(delta, taxable_ss)
        if ss_slope > self._slope(0.0, taxable_ss) + _SLOPE_TOLERANCE:
            causes.append("Social Security 85%" if ss_slope >= _SS_85_SLOPE else "Social Security 50%")

        if end.irmaa.tier_index > start.irmaa.tier_index:
            causes.append(f"IRMAA Tier {end.irmaa.tier_index}")

        def deduction(r):
            return r.deductions.final_deduction

        if self.has_senior and self._slope(delta, deduction) < self._slope(0.0, deduction) - _SLOPE_TOLERANCE:
            causes.append("Senior Deduction Phase-Out")

        return causes

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def bracket_fallback(self) -> RateHikeResult:
        """Plain next-bracket boundary from the baseline scenario."""
        base = self.scenario(0.0)
        current_rate = base.current_bracket.rate
        if base.next_bracket is None:
            return RateHikeResult(
                amount_to_next_hike=0.0,
                current_rate=current_rate,
                next_rate=current_rate,
                cause="Top Bracket",
                causes=("Top Bracket",),
                found_by="bracket_fallback",
            )

        next_rate = max(current_rate, base.next_bracket.rate)
        cause = f"Tax Bracket ({format_rate(current_rate)} → {format_rate(next_rate)})"
        return RateHikeResult(
            amount_to_next_hike=max(0.0, base.amount_to_next_bracket),
            current_rate=current_rate,
            next_rate=next_rate,
            cause=cause,
            causes=(cause,),
            found_by="bracket_fallback",
        )

    def run(
        self,
        step: float = DEFAULT_STEP,
        cap: float = DEFAULT_CAP,
        threshold: float = DEFAULT_THRESHOLD,
        precision: float = DEFAULT_PRECISION,
    ) -> RateHikeResult:
        step = _positive(step, DEFAULT_STEP)
        cap = _positive(cap, DEFAULT_CAP)
        threshold = _positive(threshold, DEFAULT_THRESHOLD)
        precision = _positive(precision, DEFAULT_PRECISION)

        # Phase 0: baseline effective rate
        baseline = self.effective_rate(0.0)

        def spiked(delta: float) -> bool:
            return self.effective_rate(delta) - baseline > threshold

        # Phase 1: coarse forward scan
        lo: Optional[float] = None
        hi: Optional[float] = None
        previous = 0.0
        delta = step
        while delta <= cap:
            if spiked(delta):
                lo, hi = previous, delta
                break
            previous = delta
            delta += step

        if hi is None:
            logger.debug(f"No rate hike within ${cap:,.0f}; falling back to bracket boundary")
            return self.bracket_fallback()

        # Phase 2: bisect between the last two scan points
        while hi - lo > precision:
            mid = (lo + hi) / 2
            if spiked(mid):
                hi = mid
            else:
                lo = mid

        next_rate = max(baseline, self.effective_rate(hi))
        causes = self.attribute(hi) or ["Combined Tax Effects"]

        logger.debug(
            f"Rate hike at +${hi:,.0f}: {baseline:.2%} -> {next_rate:.2%} "
            f"({' + '.join(causes)}, {self.evaluations} evaluations)"
        )

        return RateHikeResult(
            amount_to_next_hike=round(max(0.0, hi), 2),
            current_rate=round(baseline, 6),
            next_rate=round(next_rate, 6),
            cause=" + ".join(causes),
            causes=tuple(causes),
            found_by="scan",
        )


def find_next_rate_hike(
    income_sources,
    taxpayer_age=DEFAULT_TAXPAYER_AGE,
    spouse_age=None,
    filing_status="single",
    settings=None,
    deductions=None,
    probe: float = DEFAULT_PROBE,
    step: float = DEFAULT_STEP,
    cap: float = DEFAULT_CAP,
    threshold: float = DEFAULT_THRESHOLD,
    precision: float = DEFAULT_PRECISION,
) -> RateHikeResult:
    """
    Locate the next income level at which the effective marginal rate jumps.

    Additional income is modelled as a penalty-free traditional IRA
    distribution owned by the taxpayer.

    Returns:
        RateHikeResult with amount_to_next_hike >= 0 and
        next_rate >= current_rate
    """
    search = RateHikeSearch(income_sources, taxpayer_age, spouse_age, filing_status, settings, deductions, probe)
    return search.run(step, cap, threshold, precision)
