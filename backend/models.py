"""
TaxMap Engine - Data Models
===========================
Pydantic models for income sources, settings and engine results.

These models serve as the contract between:
- Callers assembling a household snapshot (UI, import, report layers)
- The tax calculation pipeline
- The rate-hike search and claiming optimizer

Inputs are forgiving: amounts, ages and enums are coerced rather than
rejected. Results are frozen value objects and are never mutated after
construction.
"""

import logging
import math
from datetime import date
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    computed_field,
    field_validator,
    model_validator,
)

from tax_constants import FilingStatus, TaxBracket, normalize_filing_status

logger = logging.getLogger(__name__)

DEFAULT_TAXPAYER_AGE = 65
DEFAULT_TAX_YEAR = 2025


# =============================================================================
# ENUMS
# =============================================================================

class Frequency(str, Enum):
    YEARLY = "yearly"
    MONTHLY = "monthly"


class Owner(str, Enum):
    TAXPAYER = "taxpayer"
    SPOUSE = "spouse"


class IncomeKind(str, Enum):
    WAGES = "wages"
    SELF_EMPLOYMENT = "self_employment"
    BUSINESS = "business"
    TRADITIONAL_IRA = "traditional_ira"
    FOUR_OH_ONE_K = "401k"
    PENSION = "pension"
    SOCIAL_SECURITY = "social_security"
    LONG_TERM_CAPITAL_GAINS = "long_term_capital_gains"
    SHORT_TERM_CAPITAL_GAINS = "short_term_capital_gains"
    QUALIFIED_DIVIDENDS = "qualified_dividends"
    DIVIDENDS = "dividends"
    INTEREST = "interest"
    RENTAL = "rental"
    ROYALTIES = "royalties"
    ANNUITY = "annuity"
    ROTH_IRA = "roth_ira"
    LIFE_INSURANCE = "life_insurance"
    OTHER = "other"


_KIND_ALIASES: Dict[str, IncomeKind] = {
    "wage": IncomeKind.WAGES,
    "salary": IncomeKind.WAGES,
    "w2": IncomeKind.WAGES,
    "selfemployment": IncomeKind.SELF_EMPLOYMENT,
    "ira": IncomeKind.TRADITIONAL_IRA,
    "traditionalira": IncomeKind.TRADITIONAL_IRA,
    "tradira": IncomeKind.TRADITIONAL_IRA,
    "k": IncomeKind.FOUR_OH_ONE_K,
    "ss": IncomeKind.SOCIAL_SECURITY,
    "socialsecurity": IncomeKind.SOCIAL_SECURITY,
    "ltcg": IncomeKind.LONG_TERM_CAPITAL_GAINS,
    "longtermcapitalgains": IncomeKind.LONG_TERM_CAPITAL_GAINS,
    "longtermgains": IncomeKind.LONG_TERM_CAPITAL_GAINS,
    "stcg": IncomeKind.SHORT_TERM_CAPITAL_GAINS,
    "shorttermcapitalgains": IncomeKind.SHORT_TERM_CAPITAL_GAINS,
    "shorttermgains": IncomeKind.SHORT_TERM_CAPITAL_GAINS,
    "qualifieddividends": IncomeKind.QUALIFIED_DIVIDENDS,
    "ordinarydividends": IncomeKind.DIVIDENDS,
    "roth": IncomeKind.ROTH_IRA,
    "rothira": IncomeKind.ROTH_IRA,
    "lifeinsurance": IncomeKind.LIFE_INSURANCE,
}

EARNED_INCOME_KINDS = frozenset({IncomeKind.WAGES, IncomeKind.SELF_EMPLOYMENT, IncomeKind.BUSINESS})

NET_INVESTMENT_INCOME_KINDS = frozenset({
    IncomeKind.INTEREST,
    IncomeKind.DIVIDENDS,
    IncomeKind.QUALIFIED_DIVIDENDS,
    IncomeKind.LONG_TERM_CAPITAL_GAINS,
    IncomeKind.SHORT_TERM_CAPITAL_GAINS,
    IncomeKind.RENTAL,
    IncomeKind.ROYALTIES,
})


def normalize_income_kind(value) -> IncomeKind:
    """Resolve 'traditional-ira', 'traditionalIRA', 'Roth' etc. Unknown -> other."""
    if isinstance(value, IncomeKind):
        return value
    if not isinstance(value, str):
        return IncomeKind.OTHER

    cleaned = value.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return IncomeKind(cleaned)
    except ValueError:
        pass
    compact = "".join(ch for ch in cleaned if ch.isalnum())
    if compact in ("401k", "403b", "457b"):
        return IncomeKind.FOUR_OH_ONE_K
    return _KIND_ALIASES.get(compact.rstrip("s"), _KIND_ALIASES.get(compact, IncomeKind.OTHER))


def _coerce_money(value) -> float:
    """Numbers or numeric strings; negatives, NaN and junk become 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        amount = float(str(value).replace(",", "").replace("$", "")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        return 0.0
    return amount


def coerce_age(value, default: Optional[float] = None) -> Optional[float]:
    """Ages outside 0-120 (or non-numeric) fall back to the default."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        age = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(age) or age < 0 or age > 120:
        return default
    return int(age) if age == int(age) else age


# =============================================================================
# KIND-SPECIFIC METADATA
# =============================================================================

class AnnuityDetails(BaseModel):
    """Contract data needed for the exclusion ratio / basis recovery."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    purchase_date: Optional[date] = Field(default=None, validation_alias=AliasChoices("purchase_date", "purchaseDate"))
    basis_amount: float = Field(default=0.0, ge=0, validation_alias=AliasChoices("basis_amount", "basisAmount"))
    current_value: float = Field(default=0.0, ge=0, validation_alias=AliasChoices("current_value", "currentValue"))
    annuity_type: Literal["immediate", "deferred"] = Field(
        default="immediate", validation_alias=AliasChoices("annuity_type", "annuityType")
    )
    is_qualified: bool = Field(default=False, validation_alias=AliasChoices("is_qualified", "isQualified"))
    expected_return: Optional[float] = Field(
        default=None, gt=0, validation_alias=AliasChoices("expected_return", "expectedReturn")
    )


class RothDetails(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total_contributions: float = Field(
        default=0.0, ge=0, validation_alias=AliasChoices("total_contributions", "totalContributions")
    )
    five_year_rule_met: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("five_year_rule_met", "fiveYearRuleMet")
    )
    opening_year: Optional[int] = Field(
        default=None, ge=1900, le=2200, validation_alias=AliasChoices("opening_year", "openingYear")
    )


class LifeInsuranceDetails(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total_premiums_paid: float = Field(
        default=0.0, ge=0, validation_alias=AliasChoices("total_premiums_paid", "totalPremiumsPaid")
    )
    current_cash_value: float = Field(
        default=0.0, ge=0, validation_alias=AliasChoices("current_cash_value", "currentCashValue")
    )
    is_mec: bool = Field(default=False, validation_alias=AliasChoices("is_mec", "isMEC"))
    policy_type: Literal["whole_life", "universal_life", "term"] = Field(
        default="whole_life", validation_alias=AliasChoices("policy_type", "policyType")
    )
    access_method: Literal["withdrawal", "loan", "combination"] = Field(
        default="withdrawal", validation_alias=AliasChoices("access_method", "accessMethod")
    )
    existing_loans: float = Field(default=0.0, ge=0, validation_alias=AliasChoices("existing_loans", "existingLoans"))

    @field_validator("policy_type", mode="before")
    @classmethod
    def normalize_policy_type(cls, v):
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_")
        return v


# =============================================================================
# INCOME SOURCE VARIANTS
# =============================================================================

class _IncomeSourceBase(BaseModel):
    """
    Fields shared by every income source variant.

    Disabled sources are carried through parsing but never contribute to any
    aggregate. Monthly amounts are annualized via annual_amount.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = ""
    amount: float = 0.0
    frequency: Frequency = Frequency.YEARLY
    enabled: bool = True
    owner: Owner = Owner.TAXPAYER
    penalty_exempt: bool = Field(default=False, validation_alias=AliasChoices("penalty_exempt", "penaltyExempt"))
    details_malformed: bool = False

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v):
        return _coerce_money(v)

    @field_validator("frequency", mode="before")
    @classmethod
    def coerce_frequency(cls, v):
        if isinstance(v, str) and v.strip().lower() == "monthly":
            return Frequency.MONTHLY
        if isinstance(v, Frequency):
            return v
        return Frequency.YEARLY

    @field_validator("owner", mode="before")
    @classmethod
    def coerce_owner(cls, v):
        if isinstance(v, str) and v.strip().lower() == "spouse":
            return Owner.SPOUSE
        if isinstance(v, Owner):
            return v
        return Owner.TAXPAYER

    @field_validator("enabled", "penalty_exempt", mode="before")
    @classmethod
    def coerce_flag(cls, v):
        if v is None:
            return False
        return bool(v)

    @computed_field
    @property
    def annual_amount(self) -> float:
        """Amount annualized to a yearly figure."""
        if self.frequency == Frequency.MONTHLY:
            return self.amount * 12
        return self.amount

    @property
    def income_kind(self) -> IncomeKind:
        return IncomeKind(self.kind)


class EarnedIncome(_IncomeSourceBase):
    """Wages and self-employment / business income (subject to FICA)."""
    kind: Literal["wages", "self_employment", "business"] = "wages"


class RetirementDistribution(_IncomeSourceBase):
    """Traditional IRA, 401(k) and pension distributions."""
    kind: Literal["traditional_ira", "401k", "pension"] = "traditional_ira"


class SocialSecurityBenefit(_IncomeSourceBase):
    kind: Literal["social_security"] = "social_security"


class CapitalGain(_IncomeSourceBase):
    kind: Literal["long_term_capital_gains", "short_term_capital_gains"] = "long_term_capital_gains"


class DividendIncome(_IncomeSourceBase):
    kind: Literal["qualified_dividends", "dividends"] = "dividends"


class InvestmentIncome(_IncomeSourceBase):
    """Interest, rental and royalty income (ordinary, counts toward NIIT)."""
    kind: Literal["interest", "rental", "royalties"] = "interest"


class OtherIncome(_IncomeSourceBase):
    kind: Literal["other"] = "other"


class AnnuityIncome(_IncomeSourceBase):
    kind: Literal["annuity"] = "annuity"
    annuity_details: Optional[AnnuityDetails] = Field(
        default=None, validation_alias=AliasChoices("annuity_details", "annuityDetails")
    )


class RothDistribution(_IncomeSourceBase):
    kind: Literal["roth_ira"] = "roth_ira"
    roth_details: Optional[RothDetails] = Field(
        default=None, validation_alias=AliasChoices("roth_details", "rothDetails")
    )


class LifeInsuranceIncome(_IncomeSourceBase):
    kind: Literal["life_insurance"] = "life_insurance"
    life_insurance_details: Optional[LifeInsuranceDetails] = Field(
        default=None, validation_alias=AliasChoices("life_insurance_details", "lifeInsuranceDetails")
    )


IncomeSource = Annotated[
    Union[
        EarnedIncome,
        RetirementDistribution,
        SocialSecurityBenefit,
        CapitalGain,
        DividendIncome,
        InvestmentIncome,
        OtherIncome,
        AnnuityIncome,
        RothDistribution,
        LifeInsuranceIncome,
    ],
    Field(discriminator="kind"),
]

_INCOME_SOURCE_ADAPTER = TypeAdapter(IncomeSource)

_DETAIL_FIELDS = {
    "annuity": ("annuity_details", "annuityDetails"),
    "roth_ira": ("roth_details", "rothDetails"),
    "life_insurance": ("life_insurance_details", "lifeInsuranceDetails"),
}


def parse_income_source(raw) -> Optional[_IncomeSourceBase]:
    """
    Turn a dict (or an already-built variant) into an income source variant.

    Kind is read from 'kind' or 'type' and normalized. When only the
    kind-specific details fail validation the details are dropped and the
    source is flagged details_malformed. Returns None for unusable entries.
    """
    if isinstance(raw, _IncomeSourceBase):
        return raw
    if not isinstance(raw, dict):
        logger.warning(f"Skipping income source of type {type(raw).__name__}")
        return None

    data = dict(raw)
    data["kind"] = normalize_income_kind(data.pop("kind", None) or data.pop("type", None)).value
    data.pop("type", None)

    try:
        return _INCOME_SOURCE_ADAPTER.validate_python(data)
    except ValidationError as e:
        detail_keys = _DETAIL_FIELDS.get(data["kind"], ())
        if not any(key in data for key in detail_keys):
            logger.warning(f"Skipping unparseable income source {data.get('name', '')!r}: {e}")
            return None

    for key in detail_keys:
        data.pop(key, None)
    data["details_malformed"] = True
    logger.warning(f"Malformed {data['kind']} details on {data.get('name', '')!r}; using default taxation")
    try:
        return _INCOME_SOURCE_ADAPTER.validate_python(data)
    except ValidationError as e:
        logger.warning(f"Skipping unparseable income source {data.get('name', '')!r}: {e}")
        return None


def parse_income_sources(raw) -> List[_IncomeSourceBase]:
    """Non-list input yields an empty list; bad entries are skipped."""
    if not isinstance(raw, (list, tuple)):
        if raw is not None:
            logger.warning(f"Income sources must be a list, got {type(raw).__name__}")
        return []

    sources = []
    for item in raw:
        source = parse_income_source(item)
        if source is not None:
            sources.append(source)
    return sources


# =============================================================================
# DEDUCTIONS & SETTINGS
# =============================================================================

class ItemizedDeductions(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    salt: float = Field(default=0.0, validation_alias=AliasChoices("salt", "saltDeduction"))
    mortgage_interest: float = Field(default=0.0, validation_alias=AliasChoices("mortgage_interest", "mortgageInterest"))
    charitable: float = Field(default=0.0, validation_alias=AliasChoices("charitable", "charitableGiving"))
    medical_expenses: float = Field(default=0.0, validation_alias=AliasChoices("medical_expenses", "medicalExpenses"))
    other: float = Field(default=0.0, validation_alias=AliasChoices("other", "otherDeductions"))

    @field_validator("salt", "mortgage_interest", "charitable", "medical_expenses", "other", mode="before")
    @classmethod
    def coerce_amounts(cls, v):
        return _coerce_money(v)

    def total(self, agi: float) -> float:
        """Itemized total; medical counts only the excess over 7.5% of AGI."""
        medical = max(0.0, self.medical_expenses - max(0.0, agi) * 0.075)
        return self.salt + self.mortgage_interest + self.charitable + medical + self.other


class StateDeductions(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    other_credits: float = Field(default=0.0, validation_alias=AliasChoices("other_credits", "otherCredits"))

    @field_validator("other_credits", mode="before")
    @classmethod
    def coerce_credits(cls, v):
        return _coerce_money(v)


class Deductions(BaseModel):
    model_config = ConfigDict(frozen=True)

    itemized: Optional[ItemizedDeductions] = None
    state: Optional[StateDeductions] = None


class MedicareElection(BaseModel):
    """Which Medicare parts a person is enrolled in (drives IRMAA surcharges)."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    part_b: bool = Field(default=False, validation_alias=AliasChoices("part_b", "partB"))
    part_d: bool = Field(default=False, validation_alias=AliasChoices("part_d", "partD"))


class Settings(BaseModel):
    """
    Explicit, read-only configuration for one calculation.

    magi_override replaces AGI wherever MAGI is used (IRMAA tier and the
    senior-deduction phase-out).
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tax_year: int = Field(default=DEFAULT_TAX_YEAR, validation_alias=AliasChoices("tax_year", "taxYear"))
    tcja_sunset: bool = Field(default=True, validation_alias=AliasChoices("tcja_sunset", "tcjaSunset"))
    taxpayer_medicare: MedicareElection = Field(
        default_factory=MedicareElection, validation_alias=AliasChoices("taxpayer_medicare", "taxpayerMedicare")
    )
    spouse_medicare: MedicareElection = Field(
        default_factory=MedicareElection, validation_alias=AliasChoices("spouse_medicare", "spouseMedicare")
    )
    magi_override: Optional[float] = Field(default=None, validation_alias=AliasChoices("magi_override", "magi"))

    @field_validator("tax_year", mode="before")
    @classmethod
    def coerce_tax_year(cls, v):
        try:
            year = int(v)
        except (TypeError, ValueError):
            return DEFAULT_TAX_YEAR
        return year if 1990 <= year <= 2100 else DEFAULT_TAX_YEAR

    @field_validator("magi_override", mode="before")
    @classmethod
    def coerce_magi(cls, v):
        if v is None:
            return None
        return _coerce_money(v)


def coerce_settings(raw) -> Settings:
    if isinstance(raw, Settings):
        return raw
    if isinstance(raw, dict):
        try:
            return Settings.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Invalid settings, using defaults: {e}")
    return Settings()


def coerce_deductions(raw) -> Optional[Deductions]:
    if raw is None or isinstance(raw, Deductions):
        return raw
    if isinstance(raw, dict):
        try:
            return Deductions.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Invalid deductions ignored: {e}")
    return None


# =============================================================================
# SCENARIO RESULT MODELS
# =============================================================================

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class SourceAdjustment(_Frozen):
    """How one enabled source splits into taxable / tax-free / penalty."""
    name: str
    kind: IncomeKind
    owner: Owner
    annual_amount: float
    taxable_amount: float
    tax_free_amount: float
    penalty: float = 0.0
    note: str = ""


class DeductionDetail(_Frozen):
    base_standard_deduction: float
    age_addon: float
    senior_deduction: float
    standard_deduction: float
    itemized_deduction: float = 0.0
    using_itemized: bool = False
    final_deduction: float


class SocialSecurityTaxation(_Frozen):
    benefits: float
    other_income: float
    provisional_income: float
    taxable_amount: float
    tier: Literal["I", "II", "III"]
    percent_taxable: float
    tier1_threshold: float
    tier2_threshold: float


class StackedTaxDetail(_Frozen):
    amount: float
    tax: float
    effective_rate: float
    marginal_rate: float
    bracket_label: str


class CapitalGainsDetail(_Frozen):
    long_term: StackedTaxDetail
    short_term: StackedTaxDetail
    qualified_dividends: StackedTaxDetail
    ordinary_dividends: StackedTaxDetail

    @property
    def preferential_tax(self) -> float:
        return self.long_term.tax + self.qualified_dividends.tax


class NIITDetail(_Frozen):
    net_investment_income: float
    threshold: float
    excess_magi: float
    taxable_base: float
    tax: float

    @computed_field
    @property
    def applies(self) -> bool:
        return self.tax > 0


class IrmaaDetail(_Frozen):
    magi: float
    tier_index: int
    label: str
    part_b_surcharge: float
    part_d_surcharge: float
    enrolled_part_b: int = 0
    enrolled_part_d: int = 0
    monthly_surcharge: float = 0.0
    annual_surcharge: float = 0.0
    base_part_b_premium: float


class FicaDetail(_Frozen):
    earned_income: float
    social_security_tax: float
    medicare_tax: float
    additional_medicare_tax: float
    total: float


class StateTaxDetail(_Frozen):
    birth_year: Optional[int]
    state_agi: float
    retirement_income: float
    retirement_exclusion: float
    personal_exemption: float
    taxable_income: float
    tax: float
    credit: float
    net_tax: float
    marginal_rate: float


class ScenarioResult(_Frozen):
    """
    Complete output of one comprehensive tax calculation.

    Produced fresh per call and never mutated.
    """
    filing_status: FilingStatus
    taxpayer_age: float
    spouse_age: Optional[float] = None
    tax_year: int

    # Income summary
    total_income: float
    ordinary_income: float
    other_income: float
    agi: float
    magi: float
    taxable_income: float
    ordinary_taxable_income: float

    deductions: DeductionDetail

    # Federal
    ordinary_tax: float
    preferential_tax: float
    niit_tax: float
    federal_tax: float
    penalties: float
    federal_tax_with_penalties: float

    # Other taxes
    state: StateTaxDetail
    fica: FicaDetail
    total_tax: float

    # Detail blocks
    social_security: SocialSecurityTaxation
    capital_gains: CapitalGainsDetail
    niit: NIITDetail
    irmaa: IrmaaDetail
    adjustments: Tuple[SourceAdjustment, ...] = ()

    # Rates
    federal_marginal_rate: float
    state_marginal_rate: float
    total_marginal_rate: float
    effective_rate_federal: float
    effective_rate_penalty: float
    effective_rate_total: float

    # Bracket position
    brackets: Tuple[TaxBracket, ...]
    current_bracket: TaxBracket
    next_bracket: Optional[TaxBracket] = None
    taxable_income_to_next_bracket: float
    amount_to_next_bracket: float


# =============================================================================
# RATE-HIKE SEARCH
# =============================================================================

class RateHikeResult(_Frozen):
    """
    Next effective-rate jump.

    Rates found by the scan are effective (finite-difference) rates; the
    bracket fallback reports nominal bracket rates. rate_basis says which.
    """
    amount_to_next_hike: float = Field(ge=0)
    current_rate: float
    next_rate: float
    cause: str
    causes: Tuple[str, ...] = ()
    found_by: Literal["scan", "bracket_fallback"] = "scan"

    @computed_field
    @property
    def rate_basis(self) -> str:
        return "effective" if self.found_by == "scan" else "bracket"


# =============================================================================
# SOCIAL SECURITY CLAIMING
# =============================================================================

class PersonInfo(BaseModel):
    """A person in the claiming search. Birth year wins over date_of_birth."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    date_of_birth: Optional[date] = Field(default=None, validation_alias=AliasChoices("date_of_birth", "dateOfBirth"))
    birth_year: Optional[int] = Field(default=None, validation_alias=AliasChoices("birth_year", "birthYear"))
    filing_status: FilingStatus = Field(
        default=FilingStatus.SINGLE, validation_alias=AliasChoices("filing_status", "filingStatus")
    )

    @field_validator("filing_status", mode="before")
    @classmethod
    def coerce_filing_status(cls, v):
        return normalize_filing_status(v)

    @field_validator("birth_year", mode="before")
    @classmethod
    def coerce_birth_year(cls, v):
        try:
            year = int(v)
        except (TypeError, ValueError):
            return None
        return year if 1880 <= year <= 2100 else None

    @property
    def has_birth_data(self) -> bool:
        return self.birth_year is not None or self.date_of_birth is not None

    def resolved_birth_year(self, current_year: int) -> int:
        if self.birth_year is not None:
            return self.birth_year
        if self.date_of_birth is not None:
            return self.date_of_birth.year
        return current_year - DEFAULT_TAXPAYER_AGE


class OptimizationSettings(BaseModel):
    """Knobs for the claiming search. Rates are in percent, as entered."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    taxpayer_fra_benefit: float = Field(default=2500, ge=0, validation_alias=AliasChoices("taxpayer_fra_benefit", "taxpayerFRABenefit"))
    spouse_fra_benefit: float = Field(default=1800, ge=0, validation_alias=AliasChoices("spouse_fra_benefit", "spouseFRABenefit"))
    taxpayer_life_expectancy: float = Field(default=85, validation_alias=AliasChoices("taxpayer_life_expectancy", "taxpayerLifeExpectancy"))
    spouse_life_expectancy: float = Field(default=87, validation_alias=AliasChoices("spouse_life_expectancy", "spouseLifeExpectancy"))
    discount_rate: float = Field(default=3.0, validation_alias=AliasChoices("discount_rate", "discountRate"))
    cola_rate: float = Field(default=2.5, validation_alias=AliasChoices("cola_rate", "colaRate"))
    consider_irmaa: bool = Field(default=True, validation_alias=AliasChoices("consider_irmaa", "considerIRMAA"))
    consider_roth_conversions: bool = Field(
        default=True, validation_alias=AliasChoices("consider_roth_conversions", "considerRothConversions")
    )
    target_tax_bracket: Optional[float] = Field(
        default=12, validation_alias=AliasChoices("target_tax_bracket", "targetTaxBracket")
    )
    current_year: int = Field(default=DEFAULT_TAX_YEAR, validation_alias=AliasChoices("current_year", "currentYear"))
    tax_settings: Settings = Field(default_factory=Settings, validation_alias=AliasChoices("tax_settings", "taxSettings"))

    @model_validator(mode="after")
    def check_discount_rate(self):
        # (1 + d) must stay positive for discounting
        if self.discount_rate <= -100:
            raise ValueError("discount_rate must be greater than -100")
        return self


class RothConversionOpportunity(_Frozen):
    age: int
    available_room: float
    current_bracket: float


class ClaimingStrategy(_Frozen):
    taxpayer_claiming_age: int
    spouse_claiming_age: Optional[int] = None
    taxpayer_monthly_benefit: float
    spouse_monthly_benefit: float = 0.0
    after_tax_present_value: float = Field(description="Present value net of IRMAA impact")
    gross_present_value: float
    irmaa_impact: float
    tax_bracket_violations: int
    roth_conversion_opportunities: Tuple[RothConversionOpportunity, ...] = ()
    taxpayer_delay: float = 0.0
    spouse_delay: float = 0.0

    @computed_field
    @property
    def strategy_key(self) -> str:
        spouse = self.spouse_claiming_age if self.spouse_claiming_age is not None else "N/A"
        return f"{self.taxpayer_claiming_age}-{spouse}"


class AnalysisItem(_Frozen):
    type: str
    title: str
    description: str
    detail: str = ""
    priority: str = "medium"
    years: Tuple[int, ...] = ()


class OptimizationSummary(_Frozen):
    after_tax_value: float
    irmaa_impact: float
    net_benefit: float
    optimization_score: int = Field(ge=0, le=100)


class OptimizationAnalysis(_Frozen):
    recommendations: Tuple[AnalysisItem, ...] = ()
    warnings: Tuple[AnalysisItem, ...] = ()
    opportunities: Tuple[AnalysisItem, ...] = ()
    summary: Optional[OptimizationSummary] = None


class ClaimingOptimizationResult(_Frozen):
    best_strategy: Optional[ClaimingStrategy] = None
    optimization_factors: Dict[str, Any] = Field(default_factory=dict)
    analysis: OptimizationAnalysis = Field(default_factory=OptimizationAnalysis)
    strategies_evaluated: int = 0


class MonteCarloResult(_Frozen):
    scenarios: int = 0
    most_frequent_strategy: str = "N/A"
    value_percentiles: Dict[str, float] = Field(default_factory=dict)
    claiming_age_frequency: Dict[str, int] = Field(default_factory=dict)
    risk_metrics: Dict[str, float] = Field(default_factory=dict)
