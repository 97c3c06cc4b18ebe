"""
TaxMap Engine - Social Security
===============================
Provisional-income taxation of benefits and claiming-age benefit math.

Taxation follows the three-tier base-amount formula:
- PI <= tier1: nothing taxable
- tier1 < PI <= tier2: up to 50% of the excess, capped at 50% of benefits
- PI > tier2: 50% of the tier band plus 85% of the excess over tier2
The result is always capped at 85% of benefits.
"""

from typing import Tuple

from tax_constants import (
    SOCIAL_SECURITY_MAX_TAXABLE_SHARE,
    SOCIAL_SECURITY_THRESHOLDS,
    FilingStatus,
    normalize_filing_status,
)
from models import SocialSecurityTaxation


# =============================================================================
# BENEFIT TAXATION
# =============================================================================

def social_security_thresholds(filing_status) -> Tuple[float, float]:
    status = normalize_filing_status(filing_status)
    return SOCIAL_SECURITY_THRESHOLDS.get(status, SOCIAL_SECURITY_THRESHOLDS[FilingStatus.SINGLE])


def provisional_income(other_income: float, benefits: float) -> float:
    return max(0.0, other_income) + 0.5 * max(0.0, benefits)


def taxable_social_security(benefits: float, other_income: float, filing_status) -> float:
    """Taxable portion of benefits for the given non-SS income."""
    return calculate_social_security_taxation(benefits, other_income, filing_status).taxable_amount


def calculate_social_security_taxation(benefits: float, other_income: float, filing_status) -> SocialSecurityTaxation:
    """
    Resolve the taxable portion of Social Security benefits.

    Args:
        benefits: Annual benefits received (all enabled SS sources)
        other_income: Ordinary income + short-term gains + ordinary dividends
        filing_status: Filing status (any spelling)

    Returns:
        SocialSecurityTaxation with tier label and percent taxable
    """
    benefits = max(0.0, benefits or 0.0)
    other_income = max(0.0, other_income or 0.0)
    tier1, tier2 = social_security_thresholds(filing_status)
    pi = provisional_income(other_income, benefits)

    if benefits <= 0 or pi <= tier1:
        taxable = 0.0
        tier = "I"
    elif pi <= tier2:
        taxable = min(0.5 * (pi - tier1), 0.5 * benefits)
        tier = "II"
    else:
        taxable = 0.5 * (tier2 - tier1) + 0.85 * (pi - tier2)
        tier = "III"

    # Statutory ceiling, unconditionally
    taxable = min(taxable, SOCIAL_SECURITY_MAX_TAXABLE_SHARE * benefits)

    return SocialSecurityTaxation(
        benefits=round(benefits, 2),
        other_income=round(other_income, 2),
        provisional_income=round(pi, 2),
        taxable_amount=round(taxable, 2),
        tier=tier,
        percent_taxable=round(taxable / benefits * 100, 2) if benefits > 0 else 0.0,
        tier1_threshold=tier1,
        tier2_threshold=tier2,
    )


# =============================================================================
# CLAIMING-AGE BENEFIT MATH
# =============================================================================

def full_retirement_age(birth_year: int) -> Tuple[int, int]:
    """
    Full retirement age as (years, months) by birth year.

    1954 and earlier: 66. 1955-1959: 66 plus two months per year after 1954.
    1960 and later: 67.
    """
    if birth_year <= 1954:
        return 66, 0
    if birth_year >= 1960:
        return 67, 0
    return 66, (birth_year - 1954) * 2


def full_retirement_age_months(birth_year: int) -> int:
    years, months = full_retirement_age(birth_year)
    return years * 12 + months


def benefit_adjustment_factor(claiming_age: float, birth_year: int) -> float:
    """
    Multiplier applied to the FRA benefit for a given claiming age.

    Early: 5/9 of 1% per month for the first 36 months, 5/12 of 1% beyond,
    never below 0.75. Delayed: 8% per year (6.5% for cohorts born before
    1943).
    """
    months_difference = round(claiming_age * 12) - full_retirement_age_months(birth_year)

    if months_difference == 0:
        return 1.0

    if months_difference < 0:
        months_early = -months_difference
        reduction = min(months_early, 36) * (5 / 9) * 0.01
        if months_early > 36:
            reduction += (months_early - 36) * (5 / 12) * 0.01
        return max(0.75, 1.0 - reduction)

    annual_credit = 0.08 if birth_year >= 1943 else 0.065
    return 1.0 + (months_difference / 12) * annual_credit
