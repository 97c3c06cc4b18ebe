"""
TaxMap Engine - Payroll Taxes
=============================
FICA on earned income (wages, self-employment, business).
"""

from tax_constants import (
    ADDITIONAL_MEDICARE_THRESHOLD,
    PAYROLL_TAX_2025,
    FilingStatus,
    normalize_filing_status,
)
from models import FicaDetail


def additional_medicare_threshold(filing_status) -> float:
    status = normalize_filing_status(filing_status)
    return float(ADDITIONAL_MEDICARE_THRESHOLD.get(status, ADDITIONAL_MEDICARE_THRESHOLD[FilingStatus.SINGLE]))


def calculate_fica_taxes(earned_income: float, filing_status) -> FicaDetail:
    """
    Social Security tax up to the wage base, Medicare on everything, and the
    additional Medicare surtax above the filing-status threshold.
    """
    earned = max(0.0, earned_income or 0.0)
    ss_tax = min(earned, PAYROLL_TAX_2025["social_security_wage_base"]) * PAYROLL_TAX_2025["social_security_tax_rate"]
    medicare = earned * PAYROLL_TAX_2025["medicare_tax_rate"]
    additional = max(0.0, earned - additional_medicare_threshold(filing_status)) * PAYROLL_TAX_2025["medicare_additional_rate"]

    return FicaDetail(
        earned_income=round(earned, 2),
        social_security_tax=round(ss_tax, 2),
        medicare_tax=round(medicare, 2),
        additional_medicare_tax=round(additional, 2),
        total=round(ss_tax + medicare + additional, 2),
    )


def no_fica(earned_income: float = 0.0) -> FicaDetail:
    """Placeholder detail when payroll tax is switched off."""
    return FicaDetail(
        earned_income=round(max(0.0, earned_income), 2),
        social_security_tax=0.0,
        medicare_tax=0.0,
        additional_medicare_tax=0.0,
        total=0.0,
    )
