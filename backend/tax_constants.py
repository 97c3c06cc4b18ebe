"""
TaxMap Engine - Tax Constants
=============================
Hardcoded federal bracket tables, standard deductions and senior add-ons.

CRITICAL: These are the ONLY source of truth for bracket math.
Every lookup returns a freshly built, immutable structure - nothing here is
cached or mutated between calls.

Covers tax years 2024 and 2025, plus the pre-TCJA-equivalent tables used from
2026 when the TCJA sunset flag is set.
"""

import re
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple


# =============================================================================
# FILING STATUS ENUM
# =============================================================================

class FilingStatus(str, Enum):
    SINGLE = "single"
    MARRIED_FILING_JOINTLY = "married_filing_jointly"
    MARRIED_FILING_SEPARATELY = "married_filing_separately"
    HEAD_OF_HOUSEHOLD = "head_of_household"
    QUALIFYING_WIDOW = "qualifying_widow"


_FILING_STATUS_ALIASES: Dict[str, FilingStatus] = {
    "single": FilingStatus.SINGLE,
    "s": FilingStatus.SINGLE,
    "marriedfilingjointly": FilingStatus.MARRIED_FILING_JOINTLY,
    "marriedjointly": FilingStatus.MARRIED_FILING_JOINTLY,
    "married": FilingStatus.MARRIED_FILING_JOINTLY,
    "joint": FilingStatus.MARRIED_FILING_JOINTLY,
    "mfj": FilingStatus.MARRIED_FILING_JOINTLY,
    "marriedfilingseparately": FilingStatus.MARRIED_FILING_SEPARATELY,
    "marriedseparately": FilingStatus.MARRIED_FILING_SEPARATELY,
    "mfs": FilingStatus.MARRIED_FILING_SEPARATELY,
    "headofhousehold": FilingStatus.HEAD_OF_HOUSEHOLD,
    "hoh": FilingStatus.HEAD_OF_HOUSEHOLD,
    "qualifyingwidow": FilingStatus.QUALIFYING_WIDOW,
    "qualifyingwidower": FilingStatus.QUALIFYING_WIDOW,
    "qualifyingsurvivingspouse": FilingStatus.QUALIFYING_WIDOW,
    "qw": FilingStatus.QUALIFYING_WIDOW,
    "qss": FilingStatus.QUALIFYING_WIDOW,
}


def normalize_filing_status(value) -> FilingStatus:
    """
    Map any reasonable spelling of a filing status onto the enum.

    Accepts enum members, snake_case, camelCase, kebab-case and the usual
    abbreviations. Anything unrecognised (including non-strings) is single.
    """
    if isinstance(value, FilingStatus):
        return value
    if not isinstance(value, str):
        return FilingStatus.SINGLE

    key = re.sub(r"[^a-z]", "", value.strip().lower())
    return _FILING_STATUS_ALIASES.get(key, FilingStatus.SINGLE)


def is_joint(filing_status: FilingStatus) -> bool:
    """Joint-style thresholds apply to MFJ and qualifying surviving spouses."""
    return filing_status in (FilingStatus.MARRIED_FILING_JOINTLY, FilingStatus.QUALIFYING_WIDOW)


# =============================================================================
# BRACKET TYPES
# =============================================================================

class TaxBracket(NamedTuple):
    """One progressive bracket. Income in (min, max] is taxed at rate."""
    min: float
    max: float
    rate: float


BracketTable = Tuple[TaxBracket, ...]

# Income <= 0 sits in a virtual 0% bracket
ZERO_BRACKET = TaxBracket(0.0, 0.0, 0.0)


# =============================================================================
# FEDERAL TAX BRACKETS
# Format: List of (upper_limit, marginal_rate) tuples
# The last tuple uses float('inf') for unlimited income
# =============================================================================

TAX_BRACKETS_2024: Dict[FilingStatus, List[Tuple[float, float]]] = {
    FilingStatus.SINGLE: [
        (11000, 0.10),
        (44725, 0.12),
        (95375, 0.22),
        (182050, 0.24),
        (231250, 0.32),
        (578125, 0.35),
        (float('inf'), 0.37)
    ],
    FilingStatus.MARRIED_FILING_JOINTLY: [
        (22000, 0.10),
        (89450, 0.12),
        (190750, 0.22),
        (364200, 0.24),
        (462500, 0.32),
        (693750, 0.35),
        (float('inf'), 0.37)
    ],
    FilingStatus.MARRIED_FILING_SEPARATELY: [
        (11000, 0.10),
        (44725, 0.12),
        (95375, 0.22),
        (182050, 0.24),
        (231250, 0.32),
        (346875, 0.35),
        (float('inf'), 0.37)
    ],
    FilingStatus.HEAD_OF_HOUSEHOLD: [
        (15700, 0.10),
        (59850, 0.12),
        (95350, 0.22),
        (182050, 0.24),
        (231250, 0.32),
        (578100, 0.35),
        (float('inf'), 0.37)
    ],
}

TAX_BRACKETS_2025: Dict[FilingStatus, List[Tuple[float, float]]] = {
    FilingStatus.SINGLE: [
        (11600, 0.10),      # 10% on first $11,600
        (47150, 0.12),      # 12% on $11,601 to $47,150
        (100525, 0.22),     # 22% on $47,151 to $100,525
        (191950, 0.24),     # 24% on $100,526 to $191,950
        (243725, 0.32),     # 32% on $191,951 to $243,725
        (609350, 0.35),     # 35% on $243,726 to $609,350
        (float('inf'), 0.37) # 37% on over $609,350
    ],
    FilingStatus.MARRIED_FILING_JOINTLY: [
        (23200, 0.10),
        (94300, 0.12),
        (201050, 0.22),
        (383900, 0.24),
        (487450, 0.32),
        (731200, 0.35),
        (float('inf'), 0.37)
    ],
    FilingStatus.MARRIED_FILING_SEPARATELY: [
        (11600, 0.10),
        (47150, 0.12),
        (100525, 0.22),
        (191950, 0.24),
        (243725, 0.32),
        (365600, 0.35),
        (float('inf'), 0.37)
    ],
    FilingStatus.HEAD_OF_HOUSEHOLD: [
        (16550, 0.10),
        (63100, 0.12),
        (100500, 0.22),
        (191950, 0.24),
        (243700, 0.32),
        (609350, 0.35),
        (float('inf'), 0.37)
    ],
}

# Pre-TCJA-equivalent rates, used from 2026 when the sunset flag is set
TAX_BRACKETS_TCJA_SUNSET: Dict[FilingStatus, List[Tuple[float, float]]] = {
    FilingStatus.SINGLE: [
        (12000, 0.10),
        (48000, 0.15),
        (116000, 0.25),
        (200000, 0.28),
        (250000, 0.33),
        (500000, 0.35),
        (float('inf'), 0.396)
    ],
    FilingStatus.MARRIED_FILING_JOINTLY: [
        (24000, 0.10),
        (96000, 0.15),
        (195000, 0.25),
        (250000, 0.28),
        (300000, 0.33),
        (500000, 0.35),
        (float('inf'), 0.396)
    ],
    FilingStatus.MARRIED_FILING_SEPARATELY: [
        (12000, 0.10),
        (48000, 0.15),
        (97500, 0.25),
        (125000, 0.28),
        (150000, 0.33),
        (250000, 0.35),
        (float('inf'), 0.396)
    ],
    FilingStatus.HEAD_OF_HOUSEHOLD: [
        (17000, 0.10),
        (65000, 0.15),
        (116000, 0.25),
        (200000, 0.28),
        (250000, 0.33),
        (500000, 0.35),
        (float('inf'), 0.396)
    ],
}

TCJA_SUNSET_YEAR = 2026


# =============================================================================
# STANDARD DEDUCTIONS
# =============================================================================

STANDARD_DEDUCTION_2024: Dict[FilingStatus, float] = {
    FilingStatus.SINGLE: 14600,
    FilingStatus.MARRIED_FILING_JOINTLY: 29200,
    FilingStatus.MARRIED_FILING_SEPARATELY: 14600,
    FilingStatus.HEAD_OF_HOUSEHOLD: 21900,
}

STANDARD_DEDUCTION_2025: Dict[FilingStatus, float] = {
    FilingStatus.SINGLE: 15000,
    FilingStatus.MARRIED_FILING_JOINTLY: 31500,
    FilingStatus.MARRIED_FILING_SEPARATELY: 15000,
    FilingStatus.HEAD_OF_HOUSEHOLD: 22500,
}

STANDARD_DEDUCTION_TCJA_SUNSET: Dict[FilingStatus, float] = {
    FilingStatus.SINGLE: 8000,
    FilingStatus.MARRIED_FILING_JOINTLY: 16000,
    FilingStatus.MARRIED_FILING_SEPARATELY: 8000,
    FilingStatus.HEAD_OF_HOUSEHOLD: 12000,
}

# Additional deduction for age 65+ (per qualifying person)
ADDITIONAL_STANDARD_DEDUCTION = {
    2024: {"single_or_hoh": 1950, "married": 1550},
    2025: {"single_or_hoh": 2000, "married": 1600},
}

# Senior deduction: separate from the age-65 add-on and phased out by MAGI
SENIOR_DEDUCTION = {
    "amount_per_person": 6000,
    "first_year": 2025,
    "last_year": 2028,
    "phase_out_rate": 0.05,
    "phase_out_start": {
        "single_like": 75000,
        "joint": 150000,
    },
}

SENIOR_AGE = 65


# =============================================================================
# TABLE SELECTION
# =============================================================================

def _uses_sunset_tables(tax_year: int, tcja_sunset: bool) -> bool:
    return bool(tcja_sunset) and tax_year >= TCJA_SUNSET_YEAR


def _table_key(filing_status: FilingStatus) -> FilingStatus:
    # Qualifying surviving spouses share the joint tables
    if filing_status == FilingStatus.QUALIFYING_WIDOW:
        return FilingStatus.MARRIED_FILING_JOINTLY
    return filing_status


def _raw_brackets(filing_status: FilingStatus, tax_year: int, tcja_sunset: bool) -> List[Tuple[float, float]]:
    if _uses_sunset_tables(tax_year, tcja_sunset):
        table = TAX_BRACKETS_TCJA_SUNSET
    elif tax_year <= 2024:
        table = TAX_BRACKETS_2024
    else:
        table = TAX_BRACKETS_2025
    return table.get(_table_key(filing_status), table[FilingStatus.SINGLE])


def brackets(filing_status, tax_year: int = 2025, tcja_sunset: bool = True) -> BracketTable:
    """
    Build the ordinary-income bracket table for a filing status and year.

    Unknown filing statuses fall back to single. The result is a fresh tuple
    of TaxBracket covering [0, inf) with strictly increasing rates.
    """
    status = normalize_filing_status(filing_status)
    table: List[TaxBracket] = []
    prev_limit = 0.0

    for limit, rate in _raw_brackets(status, tax_year, tcja_sunset):
        table.append(TaxBracket(prev_limit, float(limit), rate))
        prev_limit = float(limit)

    return tuple(table)


def base_standard_deduction(filing_status, tax_year: int = 2025, tcja_sunset: bool = True) -> float:
    status = _table_key(normalize_filing_status(filing_status))
    if _uses_sunset_tables(tax_year, tcja_sunset):
        table = STANDARD_DEDUCTION_TCJA_SUNSET
    elif tax_year <= 2024:
        table = STANDARD_DEDUCTION_2024
    else:
        table = STANDARD_DEDUCTION_2025
    return float(table.get(status, table[FilingStatus.SINGLE]))


# =============================================================================
# STANDARD DEDUCTION WITH SENIOR ADD-ONS
# =============================================================================

class StandardDeductionBreakdown(NamedTuple):
    base: float
    age_addon: float
    senior_deduction: float
    senior_deduction_before_phase_out: float
    qualifying_seniors: int

    @property
    def total(self) -> float:
        return self.base + self.age_addon + self.senior_deduction


def _qualifying_seniors(status: FilingStatus, taxpayer_age, spouse_age) -> int:
    count = 1 if taxpayer_age is not None and taxpayer_age >= SENIOR_AGE else 0
    # Only joint returns claim the spouse
    if is_joint(status) and spouse_age is not None and spouse_age >= SENIOR_AGE:
        count += 1
    return count


def senior_deduction_phase_out_start(filing_status) -> float:
    status = normalize_filing_status(filing_status)
    key = "joint" if is_joint(status) else "single_like"
    return float(SENIOR_DEDUCTION["phase_out_start"][key])


def senior_deduction_phase_out_end(filing_status) -> float:
    """
    MAGI at which a maximal senior deduction is fully phased out.

    Single-like returns cap out at one person, joint returns at two.
    """
    status = normalize_filing_status(filing_status)
    people = 2 if is_joint(status) else 1
    cap = SENIOR_DEDUCTION["amount_per_person"] * people
    return senior_deduction_phase_out_start(status) + cap / SENIOR_DEDUCTION["phase_out_rate"]


def senior_deduction(filing_status, taxpayer_age, spouse_age, magi: float, tax_year: int = 2025) -> float:
    """Senior deduction after the MAGI phase-out, floored at zero."""
    if not SENIOR_DEDUCTION["first_year"] <= tax_year <= SENIOR_DEDUCTION["last_year"]:
        return 0.0

    status = normalize_filing_status(filing_status)
    seniors = _qualifying_seniors(status, taxpayer_age, spouse_age)
    if seniors == 0:
        return 0.0

    full_amount = SENIOR_DEDUCTION["amount_per_person"] * seniors
    magi = max(0.0, float(magi or 0.0))
    if magi >= senior_deduction_phase_out_end(status):
        return 0.0

    excess = max(0.0, magi - senior_deduction_phase_out_start(status))
    reduction = excess * SENIOR_DEDUCTION["phase_out_rate"]
    return round(max(0.0, full_amount - reduction), 2)


def standard_deduction_breakdown(
    filing_status,
    taxpayer_age=None,
    spouse_age=None,
    magi: float = 0.0,
    tax_year: int = 2025,
    tcja_sunset: bool = True,
) -> StandardDeductionBreakdown:
    status = normalize_filing_status(filing_status)
    base = base_standard_deduction(status, tax_year, tcja_sunset)

    addons = ADDITIONAL_STANDARD_DEDUCTION[2024 if tax_year <= 2024 else 2025]
    per_person = addons["married"] if status in (
        FilingStatus.MARRIED_FILING_JOINTLY,
        FilingStatus.MARRIED_FILING_SEPARATELY,
        FilingStatus.QUALIFYING_WIDOW,
    ) else addons["single_or_hoh"]
    seniors = _qualifying_seniors(status, taxpayer_age, spouse_age)

    senior_full = 0.0
    if SENIOR_DEDUCTION["first_year"] <= tax_year <= SENIOR_DEDUCTION["last_year"]:
        senior_full = float(SENIOR_DEDUCTION["amount_per_person"] * seniors)

    return StandardDeductionBreakdown(
        base=base,
        age_addon=float(per_person * seniors),
        senior_deduction=senior_deduction(status, taxpayer_age, spouse_age, magi, tax_year),
        senior_deduction_before_phase_out=senior_full,
        qualifying_seniors=seniors,
    )


def standard_deduction(
    filing_status,
    taxpayer_age=None,
    spouse_age=None,
    magi: float = 0.0,
    tax_year: int = 2025,
    tcja_sunset: bool = True,
) -> float:
    """Base deduction + age-65 add-on + phased senior deduction."""
    return standard_deduction_breakdown(
        filing_status, taxpayer_age, spouse_age, magi, tax_year, tcja_sunset
    ).total


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def calculate_ordinary_tax(taxable_income: float, table: BracketTable) -> float:
    """
    Progressive tax on ordinary taxable income for an already-built table.

    Args:
        taxable_income: Income after deductions
        table: Bracket table from brackets()

    Returns:
        Tax owed, rounded to cents
    """
    if taxable_income <= 0:
        return 0.0

    total_tax = 0.0
    for bracket in table:
        if taxable_income <= bracket.min:
            break
        taxable_in_bracket = min(taxable_income, bracket.max) - bracket.min
        total_tax += taxable_in_bracket * bracket.rate

    return round(total_tax, 2)


def calculate_federal_tax(taxable_income: float, filing_status, tax_year: int = 2025,
                          tcja_sunset: bool = True) -> float:
    """Calculate federal ordinary income tax for a filing status and year."""
    return calculate_ordinary_tax(taxable_income, brackets(filing_status, tax_year, tcja_sunset))


def find_bracket(taxable_income: float, table: BracketTable) -> Tuple[TaxBracket, Optional[TaxBracket]]:
    """
    Return (current, next) brackets for a taxable income.

    Income <= 0 maps to the virtual 0% bracket, whose next bracket is the
    first real one. The top bracket has no next bracket.
    """
    if taxable_income <= 0:
        return ZERO_BRACKET, table[0]

    for index, bracket in enumerate(table):
        if bracket.min < taxable_income <= bracket.max:
            following = table[index + 1] if index + 1 < len(table) else None
            return bracket, following

    return table[-1], None


def marginal_bracket_rate(taxable_income: float, filing_status, tax_year: int = 2025,
                          tcja_sunset: bool = True) -> float:
    """Get the marginal bracket rate for a given taxable income."""
    current, _ = find_bracket(taxable_income, brackets(filing_status, tax_year, tcja_sunset))
    return current.rate


def format_rate(rate: float) -> str:
    """0.22 -> '22%', 0.396 -> '39.6%'."""
    percent = round(rate * 100, 1)
    if percent == int(percent):
        return f"{int(percent)}%"
    return f"{percent}%"


# =============================================================================
# SOCIAL SECURITY TAXATION THRESHOLDS (base amounts, not indexed)
# Format: (tier1, tier2) provisional-income thresholds
# =============================================================================

SOCIAL_SECURITY_THRESHOLDS: Dict[FilingStatus, Tuple[float, float]] = {
    FilingStatus.SINGLE: (25000, 34000),
    FilingStatus.HEAD_OF_HOUSEHOLD: (25000, 34000),
    FilingStatus.MARRIED_FILING_JOINTLY: (32000, 44000),
    FilingStatus.QUALIFYING_WIDOW: (25000, 34000),
    FilingStatus.MARRIED_FILING_SEPARATELY: (0, 0),  # Assumes spouses lived together
}

SOCIAL_SECURITY_MAX_TAXABLE_SHARE = 0.85


# =============================================================================
# CAPITAL GAINS TAX RATES (2025)
# =============================================================================

CAPITAL_GAINS_RATES_2025: Dict[FilingStatus, List[Tuple[float, float]]] = {
    FilingStatus.SINGLE: [
        (48350, 0.00),    # 0% up to $48,350
        (533400, 0.15),   # 15% from $48,351 to $533,400
        (float('inf'), 0.20)  # 20% over $533,400
    ],
    FilingStatus.MARRIED_FILING_JOINTLY: [
        (96700, 0.00),
        (600050, 0.15),
        (float('inf'), 0.20)
    ],
    FilingStatus.MARRIED_FILING_SEPARATELY: [
        (48350, 0.00),
        (300000, 0.15),
        (float('inf'), 0.20)
    ],
    FilingStatus.HEAD_OF_HOUSEHOLD: [
        (64750, 0.00),
        (566700, 0.15),
        (float('inf'), 0.20)
    ],
}

# Net Investment Income Tax (NIIT)
NIIT_THRESHOLD: Dict[FilingStatus, float] = {
    FilingStatus.SINGLE: 200000,
    FilingStatus.HEAD_OF_HOUSEHOLD: 200000,
    FilingStatus.MARRIED_FILING_JOINTLY: 250000,
    FilingStatus.QUALIFYING_WIDOW: 250000,
    FilingStatus.MARRIED_FILING_SEPARATELY: 125000
}
NIIT_RATE = 0.038


def capital_gains_brackets(filing_status) -> BracketTable:
    """Preferential-rate table for long-term gains and qualified dividends."""
    status = _table_key(normalize_filing_status(filing_status))
    raw = CAPITAL_GAINS_RATES_2025.get(status, CAPITAL_GAINS_RATES_2025[FilingStatus.SINGLE])
    table: List[TaxBracket] = []
    prev_limit = 0.0
    for limit, rate in raw:
        table.append(TaxBracket(prev_limit, float(limit), rate))
        prev_limit = float(limit)
    return tuple(table)


# =============================================================================
# PAYROLL TAXES (2025)
# =============================================================================

PAYROLL_TAX_2025 = {
    "social_security_wage_base": 176100,
    "social_security_tax_rate": 0.062,
    "medicare_tax_rate": 0.0145,
    "medicare_additional_rate": 0.009,
}

ADDITIONAL_MEDICARE_THRESHOLD: Dict[FilingStatus, float] = {
    FilingStatus.SINGLE: 200000,
    FilingStatus.HEAD_OF_HOUSEHOLD: 200000,
    FilingStatus.QUALIFYING_WIDOW: 200000,
    FilingStatus.MARRIED_FILING_JOINTLY: 250000,
    FilingStatus.MARRIED_FILING_SEPARATELY: 125000,
}


# =============================================================================
# MEDICARE IRMAA (2025)
# Format: (lower_bound, upper_bound, part_b_surcharge, part_d_surcharge)
# Surcharges are monthly, per enrolled person, on top of the base premium
# =============================================================================

IRMAA_BASE_PART_B_PREMIUM = 185.00

IRMAA_TIERS_2025: Dict[str, List[Tuple[float, float, float, float]]] = {
    "single_like": [
        (0, 106000, 0.00, 0.00),
        (106000, 133000, 74.00, 13.70),
        (133000, 167000, 185.00, 35.40),
        (167000, 200000, 296.00, 57.20),
        (200000, 500000, 407.00, 78.90),
        (500000, float('inf'), 444.30, 86.20),
    ],
    "joint": [
        (0, 212000, 0.00, 0.00),
        (212000, 266000, 74.00, 13.70),
        (266000, 334000, 185.00, 35.40),
        (334000, 400000, 296.00, 57.20),
        (400000, 750000, 407.00, 78.90),
        (750000, float('inf'), 444.30, 86.20),
    ],
    "separate": [
        (0, 106000, 0.00, 0.00),
        (106000, 394000, 407.00, 78.90),
        (394000, float('inf'), 444.30, 86.20),
    ],
}


def irmaa_table_key(filing_status) -> str:
    status = normalize_filing_status(filing_status)
    if is_joint(status):
        return "joint"
    if status == FilingStatus.MARRIED_FILING_SEPARATELY:
        return "separate"
    return "single_like"


# =============================================================================
# STATE TAX (flat-rate state; Social Security exempt)
# =============================================================================

STATE_TAX_2025 = {
    "rate": 0.0425,
    "personal_exemption_single": 5600,
    "personal_exemption_joint": 11200,
    "homestead_credit": 1715,
    "homestead_income_limit": 69700,
}

# Retirement income exclusion by birth-year band: (last_birth_year, cap_single, cap_joint)
# None means unlimited
STATE_RETIREMENT_EXCLUSION_2025: List[Tuple[int, Optional[float], Optional[float]]] = [
    (1945, None, None),       # Born 1945 or earlier: full exclusion
    (1966, 46138, 92277),     # Born 1946-1966: capped
    (9999, 0, 0),             # Born 1967 and later: nothing excluded
]


# =============================================================================
# EARLY WITHDRAWAL
# =============================================================================

EARLY_WITHDRAWAL_PENALTY_RATE = 0.10
EARLY_WITHDRAWAL_AGE = 59.5
ROTH_FIVE_YEAR_RULE = 5
