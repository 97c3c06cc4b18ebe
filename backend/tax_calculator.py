"""
TaxMap Engine - Comprehensive Tax Calculator
============================================
The orchestrator: composes income adjustments, Social Security taxation,
deductions, bracket tax, capital-gains stacking, NIIT, penalties, state tax,
payroll tax and IRMAA into one ScenarioResult.

This module is a pure function of its inputs - no state survives a call, and
malformed input degrades to documented defaults instead of raising.
"""

import logging
import math
from typing import NamedTuple, Optional, Tuple

from tax_constants import (
    BracketTable,
    FilingStatus,
    StandardDeductionBreakdown,
    ZERO_BRACKET,
    brackets,
    calculate_ordinary_tax,
    find_bracket,
    normalize_filing_status,
    standard_deduction_breakdown,
)
from models import (
    DEFAULT_TAXPAYER_AGE,
    EARNED_INCOME_KINDS,
    NET_INVESTMENT_INCOME_KINDS,
    Deductions,
    DeductionDetail,
    IncomeKind,
    ScenarioResult,
    Settings,
    SocialSecurityTaxation,
    SourceAdjustment,
    coerce_age,
    coerce_deductions,
    coerce_settings,
    parse_income_sources,
)
from income_adjustments import adjust_sources
from social_security import calculate_social_security_taxation
from capital_gains import calculate_capital_gains, calculate_niit
from state_tax import calculate_state_tax
from fica import calculate_fica_taxes, no_fica
from irmaa import resolve_irmaa

logger = logging.getLogger(__name__)

# Upper bound on doubling steps when solving for the total-income bracket gap
_GAP_SEARCH_DOUBLINGS = 40


# =============================================================================
# SETTINGS-AWARE LOOKUPS
# =============================================================================

def tax_brackets(filing_status, settings=None) -> BracketTable:
    """Ordinary bracket table for the settings' tax year and sunset flag."""
    settings = coerce_settings(settings)
    return brackets(filing_status, settings.tax_year, settings.tcja_sunset)


def standard_deduction(filing_status, taxpayer_age=None, spouse_age=None, settings=None) -> float:
    """
    Standard deduction including age-65 add-ons and the senior deduction.

    MAGI for the senior phase-out comes from settings.magi_override (0 when
    unset, i.e. the unreduced deduction).
    """
    settings = coerce_settings(settings)
    return standard_deduction_breakdown(
        filing_status,
        coerce_age(taxpayer_age, DEFAULT_TAXPAYER_AGE),
        coerce_age(spouse_age, None),
        settings.magi_override or 0.0,
        settings.tax_year,
        settings.tcja_sunset,
    ).total


# =============================================================================
# INTERNAL STRUCTURES
# =============================================================================

class IncomeBuckets(NamedTuple):
    ordinary: float
    long_term_gains: float
    short_term_gains: float
    qualified_dividends: float
    ordinary_dividends: float
    social_security: float
    earned_income: float
    net_investment_income: float
    penalties: float
    total_income: float

    @property
    def other_income(self) -> float:
        """Everything taxed as ordinary income except Social Security."""
        return self.ordinary + self.short_term_gains + self.ordinary_dividends


class FederalPosition(NamedTuple):
    social_security: SocialSecurityTaxation
    agi: float
    magi: float
    standard: StandardDeductionBreakdown
    itemized: float
    final_deduction: float
    taxable_income: float
    ordinary_taxable_income: float


def partition_income(adjustments: Tuple[SourceAdjustment, ...]) -> IncomeBuckets:
    """Step 2: sort adjusted sources into tax-treatment buckets."""
    ordinary = long_term = short_term = qualified = ordinary_div = 0.0
    social_security = earned = nii = penalties = total = 0.0

    for adj in adjustments:
        total += adj.annual_amount
        penalties += adj.penalty

        if adj.kind == IncomeKind.SOCIAL_SECURITY:
            social_security += adj.annual_amount
        elif adj.kind == IncomeKind.LONG_TERM_CAPITAL_GAINS:
            long_term += adj.taxable_amount
        elif adj.kind == IncomeKind.SHORT_TERM_CAPITAL_GAINS:
            short_term += adj.taxable_amount
        elif adj.kind == IncomeKind.QUALIFIED_DIVIDENDS:
            qualified += adj.taxable_amount
        elif adj.kind == IncomeKind.DIVIDENDS:
            ordinary_div += adj.taxable_amount
        else:
            ordinary += adj.taxable_amount

        if adj.kind in EARNED_INCOME_KINDS:
            earned += adj.annual_amount
        if adj.kind in NET_INVESTMENT_INCOME_KINDS:
            nii += adj.taxable_amount

    return IncomeBuckets(
        ordinary=ordinary,
        long_term_gains=long_term,
        short_term_gains=short_term,
        qualified_dividends=qualified,
        ordinary_dividends=ordinary_div,
        social_security=social_security,
        earned_income=earned,
        net_investment_income=nii,
        penalties=penalties,
        total_income=total,
    )


# =============================================================================
# TAX CALCULATION ENGINE
# =============================================================================

class TaxCalculator:
    """
    Comprehensive tax calculation for one household snapshot.

    A calculator is bound to one Settings object and one set of demographics;
    build a new one per scenario. The heavy lifting is in calculate().
    """

    def __init__(
        self,
        taxpayer_age=DEFAULT_TAXPAYER_AGE,
        spouse_age=None,
        filing_status=FilingStatus.SINGLE,
        settings=None,
    ):
        self.settings: Settings = coerce_settings(settings)
        self.filing_status = normalize_filing_status(filing_status)
        self.taxpayer_age = coerce_age(taxpayer_age, DEFAULT_TAXPAYER_AGE)
        self.spouse_age = coerce_age(spouse_age, None)
        self.table = brackets(self.filing_status, self.settings.tax_year, self.settings.tcja_sunset)

    # -------------------------------------------------------------------------
    # Steps 3-6 in isolation (also used to solve for the bracket gap)
    # -------------------------------------------------------------------------

    def federal_position(
        self,
        buckets: IncomeBuckets,
        deductions: Optional[Deductions],
        extra_ordinary: float = 0.0,
    ) -> FederalPosition:
        # Step 3: provisional income and Social Security taxation
        other_income = buckets.other_income + extra_ordinary
        ss = calculate_social_security_taxation(buckets.social_security, other_income, self.filing_status)

        # Step 4: AGI
        agi = other_income + ss.taxable_amount + buckets.long_term_gains + buckets.qualified_dividends
        magi = agi if self.settings.magi_override is None else self.settings.magi_override

        # Step 5: standard vs itemized
        standard = standard_deduction_breakdown(
            self.filing_status,
            self.taxpayer_age,
            self.spouse_age,
            magi,
            self.settings.tax_year,
            self.settings.tcja_sunset,
        )
        itemized = 0.0
        if deductions is not None and deductions.itemized is not None:
            itemized = deductions.itemized.total(agi)
        final_deduction = max(standard.total, itemized)

        # Step 6 (position only): taxable income and its ordinary share
        taxable = max(0.0, agi - final_deduction)
        preferential = min(buckets.long_term_gains + buckets.qualified_dividends, taxable)

        return FederalPosition(
            social_security=ss,
            agi=agi,
            magi=magi,
            standard=standard,
            itemized=itemized,
            final_deduction=final_deduction,
            taxable_income=taxable,
            ordinary_taxable_income=taxable - preferential,
        )

    def income_to_reach(
        self,
        buckets: IncomeBuckets,
        deductions: Optional[Deductions],
        position: FederalPosition,
        boundary: float,
    ) -> float:
        """
        Smallest extra ordinary income (to $1) that pushes ordinary taxable
        income above boundary.

        Solves the Social Security taxation, senior phase-out and medical
        floor jointly with the bracket boundary by bisection over
        federal_position, which is monotone in extra income.
        """
        def crossed(extra: float) -> bool:
            return self.federal_position(buckets, deductions, extra).ordinary_taxable_income > boundary

        if position.ordinary_taxable_income > boundary:
            return 0.0

        # Extra income never raises ordinary taxable income by less than 1:1
        # once deductions and preferential income are absorbed
        preferential = buckets.long_term_gains + buckets.qualified_dividends
        hi = math.ceil(
            (boundary - position.ordinary_taxable_income)
            + max(0.0, preferential - position.taxable_income)
            + max(0.0, position.final_deduction - position.agi)
        ) + 1
        for _ in range(_GAP_SEARCH_DOUBLINGS):
            if crossed(hi):
                break
            hi *= 2
        else:
            logger.warning(f"Bracket gap search did not converge below ${hi:,.0f}")
            return float(hi)

        # Whole-dollar bisection: lo never crosses, hi always does
        lo = 0
        while hi - lo > 1:
            mid = (lo + hi) // 2
            if crossed(mid):
                hi = mid
            else:
                lo = mid
        return float(hi)

    # -------------------------------------------------------------------------
    # Full pipeline
    # -------------------------------------------------------------------------

    def calculate(
        self,
        income_sources,
        deductions=None,
        fica_enabled: bool = False,
        solve_bracket_gap: bool = True,
    ) -> ScenarioResult:
        """
        Run the full pipeline for a list of income sources.

        This is the authoritative calculation - every other module (rate-hike
        search, claiming optimizer) probes this function. With
        solve_bracket_gap off, amount_to_next_bracket is left in taxable
        terms, which skips the bisection for callers that never read it.
        """
        sources = parse_income_sources(income_sources)
        deductions = coerce_deductions(deductions)
        settings = self.settings

        # Step 1: kind-specific adjustments (annuity, life insurance, Roth)
        adjustments = adjust_sources(sources, self.taxpayer_age, self.spouse_age, settings.tax_year)

        # Step 2: partition into tax-treatment buckets
        buckets = partition_income(adjustments)

        # Steps 3-5: Social Security, AGI, deduction
        position = self.federal_position(buckets, deductions)
        agi = position.agi

        # Step 6: ordinary tax + stacked gains/dividends + NIIT
        ordinary_taxable, capital_gains = calculate_capital_gains(
            position.taxable_income,
            buckets.long_term_gains,
            buckets.qualified_dividends,
            buckets.short_term_gains,
            buckets.ordinary_dividends,
            self.table,
            self.filing_status,
        )
        ordinary_tax = calculate_ordinary_tax(ordinary_taxable, self.table)
        preferential_tax = round(capital_gains.preferential_tax, 2)
        niit = calculate_niit(buckets.net_investment_income, position.magi, self.filing_status)
        federal_tax = round(ordinary_tax + preferential_tax + niit.tax, 2)

        # Step 7: early withdrawal penalties
        penalties = round(buckets.penalties, 2)
        federal_with_penalties = round(federal_tax + penalties, 2)

        # Step 8: state tax net of credits
        birth_year = int(settings.tax_year - self.taxpayer_age)
        other_credits = 0.0
        if deductions is not None and deductions.state is not None:
            other_credits = deductions.state.other_credits
        state = calculate_state_tax(
            adjustments,
            agi,
            position.social_security.taxable_amount,
            buckets.total_income,
            self.filing_status,
            birth_year,
            other_credits,
        )

        # Step 9: payroll tax on earned income only
        fica = calculate_fica_taxes(buckets.earned_income, self.filing_status) if fica_enabled \
            else no_fica(buckets.earned_income)

        # Step 10: total
        total_tax = round(federal_with_penalties + state.net_tax + fica.total, 2)

        # Step 11: bracket position and gap to the next ordinary bracket
        current_bracket, next_bracket = find_bracket(ordinary_taxable, self.table)
        if ordinary_taxable <= 0:
            current_bracket = ZERO_BRACKET

        if next_bracket is None:
            taxable_gap = 0.0
            income_gap = 0.0
        else:
            taxable_gap = max(0.0, next_bracket.min - ordinary_taxable)
            income_gap = taxable_gap
            if solve_bracket_gap:
                income_gap = self.income_to_reach(buckets, deductions, position, next_bracket.min)

        # Step 12: IRMAA from MAGI
        irmaa = resolve_irmaa(
            position.magi,
            self.filing_status,
            settings.taxpayer_medicare,
            settings.spouse_medicare if self.spouse_age is not None else None,
        )

        total_income = buckets.total_income
        federal_marginal = current_bracket.rate

        logger.debug(
            f"Scenario: income=${total_income:,.0f} AGI=${agi:,.0f} "
            f"taxable=${position.taxable_income:,.0f} total_tax=${total_tax:,.2f}"
        )

        return ScenarioResult(
            filing_status=self.filing_status,
            taxpayer_age=self.taxpayer_age,
            spouse_age=self.spouse_age,
            tax_year=settings.tax_year,
            total_income=round(total_income, 2),
            ordinary_income=round(buckets.ordinary, 2),
            other_income=round(buckets.other_income, 2),
            agi=round(agi, 2),
            magi=round(position.magi, 2),
            taxable_income=round(position.taxable_income, 2),
            ordinary_taxable_income=round(ordinary_taxable, 2),
            deductions=DeductionDetail(
                base_standard_deduction=position.standard.base,
                age_addon=position.standard.age_addon,
                senior_deduction=position.standard.senior_deduction,
                standard_deduction=round(position.standard.total, 2),
                itemized_deduction=round(position.itemized, 2),
                using_itemized=position.itemized > position.standard.total,
                final_deduction=round(position.final_deduction, 2),
            ),
            ordinary_tax=ordinary_tax,
            preferential_tax=preferential_tax,
            niit_tax=niit.tax,
            federal_tax=federal_tax,
            penalties=penalties,
            federal_tax_with_penalties=federal_with_penalties,
            state=state,
            fica=fica,
            total_tax=total_tax,
            social_security=position.social_security,
            capital_gains=capital_gains,
            niit=niit,
            irmaa=irmaa,
            adjustments=adjustments,
            federal_marginal_rate=federal_marginal,
            state_marginal_rate=state.marginal_rate,
            total_marginal_rate=round(federal_marginal + state.marginal_rate, 6),
            effective_rate_federal=_safe_ratio(federal_tax, total_income),
            effective_rate_penalty=_safe_ratio(penalties, total_income),
            effective_rate_total=_safe_ratio(total_tax, total_income),
            brackets=self.table,
            current_bracket=current_bracket,
            next_bracket=next_bracket,
            taxable_income_to_next_bracket=round(taxable_gap, 2),
            amount_to_next_bracket=income_gap,
        )


def _safe_ratio(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator, 6)


# =============================================================================
# LIBRARY ENTRY POINT
# =============================================================================

def calculate_comprehensive_taxes(
    income_sources=None,
    taxpayer_age=DEFAULT_TAXPAYER_AGE,
    spouse_age=None,
    filing_status=FilingStatus.SINGLE,
    deductions=None,
    settings=None,
    fica_enabled: bool = False,
) -> ScenarioResult:
    """
    Calculate federal, state and payroll taxes for a household snapshot.

    Args:
        income_sources: List of income source dicts or models
        taxpayer_age: Taxpayer age (invalid -> 65)
        spouse_age: Spouse age or None
        filing_status: Any spelling; unknown -> single
        deductions: Optional Deductions (itemized and state credits)
        settings: Optional Settings (tax year, sunset flag, Medicare, MAGI)
        fica_enabled: Include payroll tax on earned income

    Returns:
        ScenarioResult (frozen)
    """
    calculator = TaxCalculator(taxpayer_age, spouse_age, filing_status, settings)
    return calculator.calculate(income_sources, deductions, fica_enabled)
