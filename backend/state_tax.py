"""
TaxMap Engine - State Income Tax
================================
Flat-rate state tax modelled on a Social-Security-exempt state with a
retirement-income exclusion banded by birth year (Michigan-style rules).
"""

from typing import Iterable, Optional

from tax_constants import (
    STATE_RETIREMENT_EXCLUSION_2025,
    STATE_TAX_2025,
    is_joint,
    normalize_filing_status,
)
from models import IncomeKind, SourceAdjustment, StateTaxDetail

RETIREMENT_INCOME_KINDS = frozenset({
    IncomeKind.TRADITIONAL_IRA,
    IncomeKind.FOUR_OH_ONE_K,
    IncomeKind.PENSION,
    IncomeKind.ANNUITY,
})


def retirement_exclusion(retirement_income: float, birth_year: Optional[int], filing_status) -> float:
    """Retirement income excluded from state AGI for a birth-year band."""
    if birth_year is None or retirement_income <= 0:
        return 0.0

    joint = is_joint(normalize_filing_status(filing_status))
    for last_year, cap_single, cap_joint in STATE_RETIREMENT_EXCLUSION_2025:
        if birth_year <= last_year:
            cap = cap_joint if joint else cap_single
            return retirement_income if cap is None else min(retirement_income, cap)
    return 0.0


def calculate_state_tax(
    adjustments: Iterable[SourceAdjustment],
    federal_agi: float,
    taxable_social_security: float,
    total_income: float,
    filing_status,
    birth_year: Optional[int],
    other_credits: float = 0.0,
) -> StateTaxDetail:
    """
    State AGI = federal AGI without Social Security, less the retirement
    exclusion and personal exemption, taxed at the flat rate. The homestead
    credit is income-gated on total income; other credits always apply.
    """
    retirement_income = sum(a.taxable_amount for a in adjustments if a.kind in RETIREMENT_INCOME_KINDS)

    # Federal AGI only carries the taxable part of benefits
    state_agi = max(0.0, federal_agi - taxable_social_security)
    exclusion = min(state_agi, retirement_exclusion(retirement_income, birth_year, filing_status))

    joint = is_joint(normalize_filing_status(filing_status))
    exemption = STATE_TAX_2025["personal_exemption_joint" if joint else "personal_exemption_single"]
    taxable = max(0.0, state_agi - exclusion - exemption)
    tax = taxable * STATE_TAX_2025["rate"]

    credit = STATE_TAX_2025["homestead_credit"] if total_income <= STATE_TAX_2025["homestead_income_limit"] else 0.0
    credit += max(0.0, other_credits)

    return StateTaxDetail(
        birth_year=birth_year,
        state_agi=round(state_agi, 2),
        retirement_income=round(retirement_income, 2),
        retirement_exclusion=round(exclusion, 2),
        personal_exemption=float(exemption),
        taxable_income=round(taxable, 2),
        tax=round(tax, 2),
        credit=round(credit, 2),
        net_tax=round(max(0.0, tax - credit), 2),
        marginal_rate=STATE_TAX_2025["rate"] if taxable > 0 else 0.0,
    )
