"""
TaxMap Engine - Income Adjustments
==================================
Splits each enabled income source into taxable and tax-free portions and
computes the 10% early-withdrawal penalty.

Kind-specific rules:
- Annuities: qualified contracts are fully taxable; pre-TEFRA contracts
  recover basis first; post-TEFRA contracts use the exclusion ratio.
- Life insurance: basis recovery (FIFO) for regular policies, gains first
  (LIFO) for modified endowment contracts, loans untaxed while in force.
- Roth IRA: contributions come out first; earnings taxation depends on age
  59 1/2 and the five-year rule.

Documented fallbacks:
- Annuity or life insurance without details -> fully taxable.
- Roth without details -> fully tax-free.
- Malformed details (flagged at parse time) -> annuity/life insurance fully
  taxable; Roth treated as all earnings with the five-year rule unmet.
"""

import logging
from datetime import date
from typing import NamedTuple, Optional

from tax_constants import EARLY_WITHDRAWAL_AGE, EARLY_WITHDRAWAL_PENALTY_RATE, ROTH_FIVE_YEAR_RULE
from models import (
    AnnuityDetails,
    AnnuityIncome,
    LifeInsuranceDetails,
    LifeInsuranceIncome,
    Owner,
    RetirementDistribution,
    RothDetails,
    RothDistribution,
    SourceAdjustment,
)

logger = logging.getLogger(__name__)

TEFRA_DATE = date(1982, 8, 14)


class TaxSplit(NamedTuple):
    taxable: float
    tax_free: float
    penalty: float = 0.0
    note: str = ""


def owner_age(source, taxpayer_age: float, spouse_age: Optional[float]) -> float:
    """Age of whoever owns the source; a spouse with no age borrows the taxpayer's."""
    if source.owner == Owner.SPOUSE and spouse_age is not None:
        return spouse_age
    return taxpayer_age


def _early_penalty(amount: float, age: float, exempt: bool) -> float:
    if exempt or age >= EARLY_WITHDRAWAL_AGE:
        return 0.0
    return round(amount * EARLY_WITHDRAWAL_PENALTY_RATE, 2)


# =============================================================================
# ANNUITIES
# =============================================================================

def annuity_taxation(details: Optional[AnnuityDetails], amount: float) -> TaxSplit:
    if details is None:
        return TaxSplit(amount, 0.0, note="No contract details; fully taxable")

    if details.is_qualified:
        return TaxSplit(amount, 0.0, note="Qualified annuity; fully taxable")

    if details.purchase_date is not None and details.purchase_date < TEFRA_DATE:
        # Pre-TEFRA: basis comes out first
        tax_free = min(amount, details.basis_amount)
        return TaxSplit(amount - tax_free, tax_free, note="Pre-TEFRA basis recovery")

    if details.annuity_type == "immediate" and details.expected_return:
        denominator = details.expected_return
    else:
        denominator = details.current_value

    if denominator <= 0:
        return TaxSplit(amount, 0.0, note="No contract value; fully taxable")

    exclusion_ratio = min(1.0, details.basis_amount / denominator)
    tax_free = amount * exclusion_ratio
    return TaxSplit(amount - tax_free, tax_free, note=f"Exclusion ratio {exclusion_ratio:.1%}")


# =============================================================================
# LIFE INSURANCE
# =============================================================================

def _policy_withdrawal(details: LifeInsuranceDetails, amount: float) -> float:
    """Taxable part of a cash-value withdrawal."""
    gains = max(0.0, details.current_cash_value - details.total_premiums_paid)
    if details.is_mec:
        # LIFO: gains come out first
        return min(amount, gains)
    return max(0.0, amount - details.total_premiums_paid)


def life_insurance_taxation(details: Optional[LifeInsuranceDetails], amount: float) -> TaxSplit:
    if details is None:
        return TaxSplit(amount, 0.0, note="No policy details; fully taxable")

    if details.policy_type == "term":
        return TaxSplit(0.0, amount, note="Term policy has no cash value")

    if details.access_method == "loan":
        return TaxSplit(0.0, amount, note="Policy loan while in force")

    if details.access_method == "combination":
        basis_remaining = max(0.0, details.total_premiums_paid - details.existing_loans)
        loan_portion = min(amount, basis_remaining)
        withdrawal_portion = amount - loan_portion
        gains = max(0.0, details.current_cash_value - details.total_premiums_paid)
        # Basis is already used by the loans, so withdrawals come from gains
        taxable = min(withdrawal_portion, gains)
        return TaxSplit(taxable, amount - taxable, note="Loans up to basis, then withdrawals")

    taxable = _policy_withdrawal(details, amount)
    note = "MEC withdrawal, gains first" if details.is_mec else "Withdrawal, basis first"
    return TaxSplit(taxable, amount - taxable, note=note)


# =============================================================================
# ROTH IRA
# =============================================================================

def roth_five_year_rule_met(details: RothDetails, tax_year: int) -> bool:
    if details.five_year_rule_met is not None:
        return details.five_year_rule_met
    if details.opening_year is None:
        return False
    return tax_year - details.opening_year >= ROTH_FIVE_YEAR_RULE


def roth_taxation(
    details: Optional[RothDetails],
    amount: float,
    age: float,
    tax_year: int,
    penalty_exempt: bool = False,
    malformed: bool = False,
) -> TaxSplit:
    """
    Roth withdrawal ordering: contributions first, then earnings.

    Earnings are:
    - tax and penalty free at 59 1/2+ with the five-year rule met
    - taxable, no penalty at 59 1/2+ without it
    - tax free but penalized under 59 1/2 with it
    - taxable and penalized under 59 1/2 without it
    """
    if malformed:
        contributions, five_year_met = 0.0, False
    elif details is None:
        return TaxSplit(0.0, amount, note="No Roth details; treated as tax-free")
    else:
        contributions = details.total_contributions
        five_year_met = roth_five_year_rule_met(details, tax_year)

    earnings = max(0.0, amount - contributions)
    over_age = age >= EARLY_WITHDRAWAL_AGE

    if earnings <= 0:
        return TaxSplit(0.0, amount, note="Return of contributions")

    taxable = 0.0 if five_year_met else earnings
    penalty = 0.0 if over_age or penalty_exempt else round(earnings * EARLY_WITHDRAWAL_PENALTY_RATE, 2)
    note = "Qualified distribution" if over_age and five_year_met else "Non-qualified earnings"
    return TaxSplit(taxable, amount - taxable, penalty, note)


# =============================================================================
# DISPATCH
# =============================================================================

def adjust_source(source, taxpayer_age: float, spouse_age: Optional[float], tax_year: int) -> SourceAdjustment:
    """Split one enabled source into taxable / tax-free / penalty."""
    amount = source.annual_amount
    age = owner_age(source, taxpayer_age, spouse_age)

    match source:
        case AnnuityIncome(details_malformed=True) | LifeInsuranceIncome(details_malformed=True):
            split = TaxSplit(amount, 0.0, note="Malformed details; fully taxable")
            if isinstance(source, AnnuityIncome):
                split = split._replace(penalty=_early_penalty(amount, age, source.penalty_exempt))
        case AnnuityIncome(annuity_details=details):
            split = annuity_taxation(details, amount)
            split = split._replace(penalty=_early_penalty(split.taxable, age, source.penalty_exempt))
        case LifeInsuranceIncome(life_insurance_details=details):
            split = life_insurance_taxation(details, amount)
        case RothDistribution(roth_details=details, details_malformed=malformed):
            split = roth_taxation(details, amount, age, tax_year, source.penalty_exempt, malformed)
        case RetirementDistribution(kind="traditional_ira" | "401k"):
            split = TaxSplit(amount, 0.0, _early_penalty(amount, age, source.penalty_exempt))
        case _:
            split = TaxSplit(amount, 0.0)

    if source.details_malformed:
        logger.debug(f"Fallback taxation applied to {source.name!r} ({source.kind})")

    return SourceAdjustment(
        name=source.name,
        kind=source.income_kind,
        owner=source.owner,
        annual_amount=round(amount, 2),
        taxable_amount=round(split.taxable, 2),
        tax_free_amount=round(split.tax_free, 2),
        penalty=split.penalty,
        note=split.note,
    )


def adjust_sources(sources, taxpayer_age: float, spouse_age: Optional[float], tax_year: int):
    """Adjust every enabled source; disabled sources are dropped here."""
    return tuple(
        adjust_source(source, taxpayer_age, spouse_age, tax_year)
        for source in sources
        if source.enabled
    )
