"""
TaxMap Engine - Capital Gains, Dividends & NIIT
===============================================
Long-term gains and qualified dividends are taxed at preferential rates
stacked ABOVE ordinary taxable income: ordinary income fills the combined
bracket structure from zero first, then long-term gains, then qualified
dividends on top.

Short-term gains and ordinary dividends are ordinary income. Their detail
blocks report the ordinary tax attributable to them; that tax is already part
of the ordinary-bracket tax and is never added twice.
"""

from typing import Tuple

from tax_constants import (
    NIIT_RATE,
    NIIT_THRESHOLD,
    BracketTable,
    FilingStatus,
    calculate_ordinary_tax,
    capital_gains_brackets,
    find_bracket,
    format_rate,
    normalize_filing_status,
)
from models import CapitalGainsDetail, NIITDetail, StackedTaxDetail


def _tax_on_slice(bottom: float, top: float, table: BracketTable) -> float:
    """Tax on the income slice (bottom, top] of a bracket table."""
    if top <= bottom:
        return 0.0
    return calculate_ordinary_tax(top, table) - calculate_ordinary_tax(bottom, table)


def _rate_for_next_dollar(position: float, table: BracketTable) -> float:
    # The next dollar above position lands in the bracket containing position + epsilon
    current, following = find_bracket(position, table)
    if position > 0 and position == current.max and following is not None:
        return following.rate
    if position <= 0:
        return table[0].rate
    return current.rate


def _detail(amount: float, tax: float, marginal_rate: float) -> StackedTaxDetail:
    return StackedTaxDetail(
        amount=round(amount, 2),
        tax=round(tax, 2),
        effective_rate=round(tax / amount, 6) if amount > 0 else 0.0,
        marginal_rate=marginal_rate,
        bracket_label=f"{format_rate(marginal_rate)} bracket",
    )


def stack_preferential_income(amount: float, stacked_on: float, filing_status) -> StackedTaxDetail:
    """
    Tax a preferential-rate slice sitting on top of stacked_on dollars.

    Args:
        amount: Taxable long-term gains or qualified dividends in this slice
        stacked_on: Taxable income already occupying the brackets below
        filing_status: Filing status (any spelling)
    """
    table = capital_gains_brackets(filing_status)
    amount = max(0.0, amount)
    bottom = max(0.0, stacked_on)
    tax = _tax_on_slice(bottom, bottom + amount, table)
    marginal = _rate_for_next_dollar(bottom + amount if amount > 0 else bottom, table)
    return _detail(amount, tax, marginal)


def calculate_long_term_capital_gains_tax(gains: float, ordinary_taxable_income: float, filing_status) -> StackedTaxDetail:
    return stack_preferential_income(gains, ordinary_taxable_income, filing_status)


def calculate_qualified_dividends_tax(dividends: float, income_below: float, filing_status) -> StackedTaxDetail:
    return stack_preferential_income(dividends, income_below, filing_status)


def ordinary_slice_detail(amount: float, slice_top: float, table: BracketTable) -> StackedTaxDetail:
    """Ordinary tax attributable to the top `amount` dollars below slice_top."""
    amount = max(0.0, min(amount, slice_top))
    tax = _tax_on_slice(slice_top - amount, slice_top, table)
    marginal = _rate_for_next_dollar(slice_top, table) if slice_top > 0 else 0.0
    return _detail(amount, tax, marginal)


def split_taxable_income(
    taxable_income: float,
    long_term_gains: float,
    qualified_dividends: float,
) -> Tuple[float, float, float]:
    """
    Split total taxable income into (ordinary, long-term, qualified-dividend).

    Deductions consume ordinary income first, then qualified dividends, then
    long-term gains.
    """
    taxable_income = max(0.0, taxable_income)
    preferential = min(long_term_gains + qualified_dividends, taxable_income)
    ltcg_taxable = min(long_term_gains, preferential)
    qdiv_taxable = preferential - ltcg_taxable
    return taxable_income - preferential, ltcg_taxable, qdiv_taxable


def calculate_capital_gains(
    taxable_income: float,
    long_term_gains: float,
    qualified_dividends: float,
    short_term_gains: float,
    ordinary_dividends: float,
    ordinary_table: BracketTable,
    filing_status,
) -> Tuple[float, CapitalGainsDetail]:
    """
    Stack all gain/dividend buckets.

    Returns:
        (ordinary_taxable_income, CapitalGainsDetail)
    """
    ordinary_taxable, ltcg_taxable, qdiv_taxable = split_taxable_income(
        taxable_income, long_term_gains, qualified_dividends
    )

    long_term = calculate_long_term_capital_gains_tax(ltcg_taxable, ordinary_taxable, filing_status)
    qualified = calculate_qualified_dividends_tax(qdiv_taxable, ordinary_taxable + ltcg_taxable, filing_status)

    # Report against the full amounts, including any part sheltered by deductions
    long_term = long_term.model_copy(update={
        "amount": round(long_term_gains, 2),
        "effective_rate": round(long_term.tax / long_term_gains, 6) if long_term_gains > 0 else 0.0,
    })
    qualified = qualified.model_copy(update={
        "amount": round(qualified_dividends, 2),
        "effective_rate": round(qualified.tax / qualified_dividends, 6) if qualified_dividends > 0 else 0.0,
    })

    short_term = ordinary_slice_detail(short_term_gains, ordinary_taxable, ordinary_table)
    ordinary_div = ordinary_slice_detail(
        ordinary_dividends, max(0.0, ordinary_taxable - short_term.amount), ordinary_table
    )

    return ordinary_taxable, CapitalGainsDetail(
        long_term=long_term,
        short_term=short_term,
        qualified_dividends=qualified,
        ordinary_dividends=ordinary_div,
    )


# =============================================================================
# NET INVESTMENT INCOME TAX
# =============================================================================

def niit_threshold(filing_status) -> float:
    status = normalize_filing_status(filing_status)
    return float(NIIT_THRESHOLD.get(status, NIIT_THRESHOLD[FilingStatus.SINGLE]))


def calculate_niit(net_investment_income: float, magi: float, filing_status) -> NIITDetail:
    """3.8% on the lesser of NII or MAGI above the filing-status threshold."""
    threshold = niit_threshold(filing_status)
    nii = max(0.0, net_investment_income)
    excess = max(0.0, magi - threshold)
    base = min(nii, excess)
    return NIITDetail(
        net_investment_income=round(nii, 2),
        threshold=threshold,
        excess_magi=round(excess, 2),
        taxable_base=round(base, 2),
        tax=round(base * NIIT_RATE, 2),
    )
