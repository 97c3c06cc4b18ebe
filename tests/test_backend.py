"""
TaxMap Engine - Test Suite
==========================
Tests for the tax tables, models, leaf calculators and the orchestrator.
"""

import pytest
from datetime import date

# Import modules to test
import sys
sys.path.insert(0, './backend')

from tax_constants import (
    FilingStatus,
    ZERO_BRACKET,
    brackets,
    calculate_federal_tax,
    find_bracket,
    format_rate,
    marginal_bracket_rate,
    normalize_filing_status,
    senior_deduction,
    standard_deduction,
    standard_deduction_breakdown,
)
from models import (
    AnnuityDetails,
    AnnuityIncome,
    IncomeKind,
    LifeInsuranceDetails,
    MedicareElection,
    RetirementDistribution,
    RothDetails,
    RothDistribution,
    Settings,
    coerce_age,
    parse_income_sources,
)
from social_security import (
    benefit_adjustment_factor,
    calculate_social_security_taxation,
    full_retirement_age,
)
from capital_gains import calculate_niit, split_taxable_income, stack_preferential_income
from irmaa import find_irmaa_tier, resolve_irmaa
from fica import calculate_fica_taxes
from income_adjustments import (
    adjust_source,
    adjust_sources,
    annuity_taxation,
    life_insurance_taxation,
    roth_five_year_rule_met,
    roth_taxation,
)
from state_tax import calculate_state_tax, retirement_exclusion
from tax_calculator import calculate_comprehensive_taxes, standard_deduction as settings_standard_deduction, tax_brackets


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def scenario_a():
    """Single filer, 45, $75,000 wages, 2025 rules."""
    return calculate_comprehensive_taxes(
        [{"kind": "wages", "name": "Salary", "amount": 75000}],
        taxpayer_age=45,
        filing_status="single",
    )


@pytest.fixture
def scenario_b_sources():
    return [
        {"kind": "traditional_ira", "name": "IRA", "amount": 94000},
        {"kind": "social_security", "name": "SS A", "amount": 25000},
        {"kind": "social_security", "name": "SS B", "amount": 25600, "owner": "spouse"},
    ]


# =============================================================================
# TAX TABLE TESTS
# =============================================================================

class TestTaxConstants:
    """Bracket tables, deductions and helpers."""

    @pytest.mark.parametrize("year,sunset", [(2024, True), (2025, True), (2026, True), (2026, False)])
    def test_bracket_tables_cover_zero_to_infinity(self, year, sunset):
        """Tables are contiguous from zero with strictly increasing rates."""
        for status in FilingStatus:
            table = brackets(status, year, sunset)
            assert table[0].min == 0
            assert table[-1].max == float('inf')
            for lower, upper in zip(table, table[1:]):
                assert lower.max == upper.min
                assert upper.rate > lower.rate

    def test_brackets_returns_fresh_equal_tuples(self):
        first = brackets("single")
        second = brackets("single")
        assert first == second
        assert first is not second
        assert isinstance(first, tuple)

    def test_unknown_status_uses_single_table(self):
        assert brackets("martian") == brackets(FilingStatus.SINGLE)

    def test_qualifying_widow_uses_joint_table(self):
        assert brackets(FilingStatus.QUALIFYING_WIDOW) == brackets(FilingStatus.MARRIED_FILING_JOINTLY)

    def test_sunset_tables_from_2026(self):
        assert brackets("single", 2026, True)[-1].rate == 0.396
        assert brackets("single", 2026, False) == brackets("single", 2025)

    @pytest.mark.parametrize("raw,expected", [
        ("marriedFilingJointly", FilingStatus.MARRIED_FILING_JOINTLY),
        ("married-filing-jointly", FilingStatus.MARRIED_FILING_JOINTLY),
        ("MFJ", FilingStatus.MARRIED_FILING_JOINTLY),
        ("head of household", FilingStatus.HEAD_OF_HOUSEHOLD),
        ("mfs", FilingStatus.MARRIED_FILING_SEPARATELY),
        ("nonsense", FilingStatus.SINGLE),
        (None, FilingStatus.SINGLE),
        (42, FilingStatus.SINGLE),
    ])
    def test_normalize_filing_status(self, raw, expected):
        assert normalize_filing_status(raw) == expected

    def test_standard_deduction_under_65(self):
        assert standard_deduction("single", 40) == 15000

    def test_standard_deduction_single_senior(self):
        """Base + $2,000 age add-on + $6,000 senior deduction."""
        assert standard_deduction("single", 65, magi=0) == 23000

    def test_standard_deduction_joint_seniors(self):
        assert standard_deduction("married_filing_jointly", 66, 67, magi=100000) == 31500 + 3200 + 12000

    def test_senior_deduction_joint_phase_out_exact(self):
        """12,000 - 0.05 x (340,000 - 150,000) = 2,500."""
        assert senior_deduction("married_filing_jointly", 66, 67, 340000) == 2500

    def test_senior_deduction_single_phase_out(self):
        assert senior_deduction("single", 70, None, 194000) == 50
        assert senior_deduction("single", 70, None, 195000) == 0

    def test_senior_deduction_outside_window(self):
        assert senior_deduction("single", 70, None, 0, tax_year=2029) == 0
        assert senior_deduction("single", 70, None, 0, tax_year=2024) == 0

    def test_separate_filer_does_not_count_spouse(self):
        breakdown = standard_deduction_breakdown("married_filing_separately", 70, 70)
        assert breakdown.qualifying_seniors == 1

    def test_calculate_federal_tax_zero_and_negative_income(self):
        assert calculate_federal_tax(0, FilingStatus.SINGLE) == 0
        assert calculate_federal_tax(-10000, FilingStatus.SINGLE) == 0

    def test_calculate_federal_tax_first_bracket_only(self):
        assert calculate_federal_tax(10000, FilingStatus.SINGLE) == 1000

    def test_calculate_federal_tax_multiple_brackets(self):
        # 11,600 x 10% + 35,550 x 12% + 2,850 x 22%
        expected = 1160 + 4266 + 627
        assert calculate_federal_tax(50000, FilingStatus.SINGLE) == pytest.approx(expected)

    def test_find_bracket_zero_income_is_virtual_bracket(self):
        table = brackets("single")
        current, following = find_bracket(0, table)
        assert current == ZERO_BRACKET
        assert following == table[0]

    def test_find_bracket_boundary_belongs_to_lower_bracket(self):
        table = brackets("single")
        current, following = find_bracket(11600, table)
        assert current.rate == 0.10
        assert following.rate == 0.12

    def test_find_bracket_top_has_no_next(self):
        current, following = find_bracket(10_000_000, brackets("single"))
        assert current.rate == 0.37
        assert following is None

    def test_marginal_bracket_rate(self):
        assert marginal_bracket_rate(0, "single") == 0
        assert marginal_bracket_rate(5000, "single") == 0.10
        assert marginal_bracket_rate(1_000_000, "single") == 0.37

    def test_format_rate(self):
        assert format_rate(0.22) == "22%"
        assert format_rate(0.396) == "39.6%"

    def test_settings_aware_wrappers(self):
        settings = Settings(tax_year=2026, tcja_sunset=True)
        assert tax_brackets("single", settings)[1].rate == 0.15
        assert settings_standard_deduction("single", 40, None, settings) == 8000


# =============================================================================
# DATA MODEL TESTS
# =============================================================================

class TestDataModels:
    """Parsing and coercion of income sources."""

    def test_non_list_sources_yield_empty(self):
        assert parse_income_sources("junk") == []
        assert parse_income_sources(None) == []
        assert parse_income_sources({"kind": "wages"}) == []

    def test_monthly_amount_is_annualized(self):
        [source] = parse_income_sources([{"kind": "pension", "amount": 2000, "frequency": "monthly"}])
        assert source.annual_amount == 24000

    @pytest.mark.parametrize("raw,expected", [
        ("traditional-ira", IncomeKind.TRADITIONAL_IRA),
        ("401k", IncomeKind.FOUR_OH_ONE_K),
        ("Roth", IncomeKind.ROTH_IRA),
        ("social-security", IncomeKind.SOCIAL_SECURITY),
        ("lottery", IncomeKind.OTHER),
    ])
    def test_kind_aliases(self, raw, expected):
        [source] = parse_income_sources([{"type": raw, "amount": 100}])
        assert source.income_kind == expected

    def test_negative_and_junk_amounts_become_zero(self):
        sources = parse_income_sources([
            {"kind": "wages", "amount": -500},
            {"kind": "wages", "amount": "lots"},
            {"kind": "wages", "amount": "$1,250"},
        ])
        assert [s.amount for s in sources] == [0, 0, 1250]

    def test_non_dict_entries_are_skipped(self):
        sources = parse_income_sources([42, "x", {"kind": "interest", "amount": 10}])
        assert len(sources) == 1

    def test_malformed_roth_details_are_flagged(self):
        [source] = parse_income_sources([
            {"kind": "roth_ira", "amount": 10000, "roth_details": {"total_contributions": "abc"}}
        ])
        assert isinstance(source, RothDistribution)
        assert source.details_malformed
        assert source.roth_details is None

    def test_camel_case_details_accepted(self):
        [source] = parse_income_sources([{
            "type": "annuity",
            "amount": 1000,
            "annuityDetails": {"basisAmount": 500, "currentValue": 1000, "annuityType": "deferred"},
        }])
        assert source.annuity_details.basis_amount == 500

    def test_coerce_age(self):
        assert coerce_age(-5, 65) == 65
        assert coerce_age(200, 65) == 65
        assert coerce_age("70", 65) == 70
        assert coerce_age(None, None) is None


# =============================================================================
# SOCIAL SECURITY TESTS
# =============================================================================

class TestSocialSecurity:
    """Provisional-income tiers and claiming math."""

    def test_below_first_threshold_is_untaxed(self):
        result = calculate_social_security_taxation(20000, 10000, "single")
        assert result.taxable_amount == 0
        assert result.tier == "I"

    def test_middle_tier(self):
        # PI = 30,000; min(0.5 x 5,000, 0.5 x 20,000)
        result = calculate_social_security_taxation(20000, 20000, "single")
        assert result.taxable_amount == 2500
        assert result.tier == "II"

    def test_upper_tier_joint(self):
        result = calculate_social_security_taxation(50600, 94000, "married_filing_jointly")
        assert result.tier == "III"
        assert result.taxable_amount == pytest.approx(0.85 * 50600)

    def test_never_exceeds_85_percent(self):
        result = calculate_social_security_taxation(10000, 1_000_000, "single")
        assert result.taxable_amount == pytest.approx(8500)
        assert result.percent_taxable == pytest.approx(85)

    def test_married_separately_has_zero_thresholds(self):
        result = calculate_social_security_taxation(10000, 0, "married_filing_separately")
        assert result.taxable_amount == pytest.approx(4250)

    def test_taxable_benefits_monotone_in_other_income(self):
        previous = 0.0
        for other in range(0, 150001, 2500):
            taxable = calculate_social_security_taxation(30000, other, "single").taxable_amount
            assert taxable >= previous
            previous = taxable

    @pytest.mark.parametrize("birth_year,expected", [(1954, (66, 0)), (1957, (66, 6)), (1960, (67, 0))])
    def test_full_retirement_age(self, birth_year, expected):
        assert full_retirement_age(birth_year) == expected

    def test_benefit_adjustment_factor(self):
        assert benefit_adjustment_factor(67, 1960) == 1.0
        assert benefit_adjustment_factor(62, 1960) == pytest.approx(0.75)
        assert benefit_adjustment_factor(64, 1960) == pytest.approx(1 - 36 * (5 / 9) * 0.01)
        assert benefit_adjustment_factor(70, 1960) == pytest.approx(1.24)
        assert benefit_adjustment_factor(70, 1940) == pytest.approx(1.26)


# =============================================================================
# CAPITAL GAINS & NIIT TESTS
# =============================================================================

class TestCapitalGains:
    """Preferential stacking above ordinary income."""

    def test_split_taxable_income(self):
        assert split_taxable_income(45000, 20000, 0) == (25000, 20000, 0)

    def test_deductions_absorb_dividends_before_gains(self):
        assert split_taxable_income(10000, 20000, 5000) == (0, 10000, 0)

    def test_gains_inside_zero_bracket(self):
        assert stack_preferential_income(20000, 25000, "single").tax == 0

    def test_gains_straddling_zero_bracket(self):
        # 3,350 at 0%, 16,650 at 15%
        detail = stack_preferential_income(20000, 45000, "single")
        assert detail.tax == pytest.approx(2497.50)
        assert detail.marginal_rate == 0.15

    def test_niit(self):
        assert calculate_niit(50000, 230000, "single").tax == pytest.approx(1140)
        assert calculate_niit(50000, 150000, "single").tax == 0
        assert calculate_niit(10000, 400000, "married_filing_jointly").taxable_base == 10000


# =============================================================================
# IRMAA & FICA TESTS
# =============================================================================

class TestIrmaaAndFica:

    def test_no_irmaa_below_first_tier(self):
        tier = find_irmaa_tier(100000, "single")
        assert tier.index == 0
        assert tier.label == "No IRMAA"

    def test_tier_boundary_is_inclusive_below(self):
        assert find_irmaa_tier(106000, "single").index == 1
        assert find_irmaa_tier(105999.99, "single").index == 0

    def test_surcharge_counts_only_enrolled_parts(self):
        detail = resolve_irmaa(120000, "single", MedicareElection(part_b=True, part_d=True))
        assert detail.monthly_surcharge == pytest.approx(87.70)
        assert detail.annual_surcharge == pytest.approx(1052.40)

        unenrolled = resolve_irmaa(120000, "single")
        assert unenrolled.tier_index == 1
        assert unenrolled.annual_surcharge == 0

    def test_fica_wage_base(self):
        detail = calculate_fica_taxes(200000, "single")
        assert detail.social_security_tax == pytest.approx(10918.20)
        assert detail.additional_medicare_tax == 0
        assert detail.total == pytest.approx(13818.20)

    def test_additional_medicare_joint(self):
        detail = calculate_fica_taxes(300000, "married_filing_jointly")
        assert detail.additional_medicare_tax == pytest.approx(450)
        assert detail.total == pytest.approx(15718.20)


# =============================================================================
# INCOME ADJUSTMENT TESTS
# =============================================================================

class TestIncomeAdjustments:
    """Annuity, life insurance and Roth splits plus penalties."""

    def test_qualified_annuity_fully_taxable(self):
        split = annuity_taxation(AnnuityDetails(is_qualified=True, basis_amount=5000), 10000)
        assert split.taxable == 10000

    def test_post_tefra_exclusion_ratio(self):
        details = AnnuityDetails(
            purchase_date=date(2000, 1, 1), basis_amount=60000, expected_return=100000, annuity_type="immediate"
        )
        assert annuity_taxation(details, 10000).taxable == pytest.approx(4000)

    def test_pre_tefra_basis_first(self):
        details = AnnuityDetails(purchase_date=date(1980, 1, 1), basis_amount=5000, current_value=50000)
        assert annuity_taxation(details, 8000).taxable == pytest.approx(3000)

    def test_annuity_without_details_penalized_under_59_half(self):
        source = AnnuityIncome(name="Annuity", amount=10000)
        adj = adjust_source(source, 50, None, 2025)
        assert adj.taxable_amount == 10000
        assert adj.penalty == pytest.approx(1000)

    def test_life_insurance_rules(self):
        assert life_insurance_taxation(LifeInsuranceDetails(policy_type="term"), 5000).taxable == 0
        assert life_insurance_taxation(
            LifeInsuranceDetails(total_premiums_paid=50000, current_cash_value=90000), 60000
        ).taxable == pytest.approx(10000)
        assert life_insurance_taxation(
            LifeInsuranceDetails(total_premiums_paid=50000, current_cash_value=80000, is_mec=True), 40000
        ).taxable == pytest.approx(30000)
        assert life_insurance_taxation(
            LifeInsuranceDetails(total_premiums_paid=50000, current_cash_value=80000, access_method="loan"), 40000
        ).taxable == 0

    def test_life_insurance_without_details_fully_taxable(self):
        assert life_insurance_taxation(None, 7000).taxable == 7000

    @pytest.mark.parametrize("age,met,taxable,penalty", [
        (62, True, 0, 0),
        (62, False, 10000, 0),
        (50, True, 0, 1000),
        (50, False, 10000, 1000),
    ])
    def test_roth_earnings_matrix(self, age, met, taxable, penalty):
        details = RothDetails(total_contributions=20000, five_year_rule_met=met)
        split = roth_taxation(details, 30000, age, 2025)
        assert split.taxable == pytest.approx(taxable)
        assert split.penalty == pytest.approx(penalty)

    def test_roth_contributions_come_out_first(self):
        split = roth_taxation(RothDetails(total_contributions=20000), 15000, 50, 2025)
        assert split.taxable == 0
        assert split.penalty == 0

    def test_roth_five_year_rule_from_opening_year(self):
        assert roth_five_year_rule_met(RothDetails(opening_year=2019), 2025)
        assert not roth_five_year_rule_met(RothDetails(opening_year=2022), 2025)

    def test_roth_without_details_is_tax_free(self):
        assert roth_taxation(None, 10000, 50, 2025).taxable == 0

    def test_malformed_roth_treated_as_earnings(self):
        [source] = parse_income_sources([
            {"kind": "roth_ira", "amount": 10000, "roth_details": {"opening_year": "soon"}}
        ])
        adj = adjust_source(source, 50, None, 2025)
        assert adj.taxable_amount == 10000
        assert adj.penalty == pytest.approx(1000)

    def test_traditional_ira_penalty_and_exemption(self):
        penalized = adjust_source(RetirementDistribution(amount=20000), 50, None, 2025)
        exempt = adjust_source(RetirementDistribution(amount=20000, penalty_exempt=True), 50, None, 2025)
        pension = adjust_source(RetirementDistribution(kind="pension", amount=20000), 50, None, 2025)
        assert penalized.penalty == pytest.approx(2000)
        assert exempt.penalty == 0
        assert pension.penalty == 0

    def test_spouse_owned_source_uses_spouse_age(self):
        source = RetirementDistribution(amount=10000, owner="spouse")
        assert adjust_source(source, 70, 55, 2025).penalty == pytest.approx(1000)
        assert adjust_source(source, 55, 70, 2025).penalty == 0

    def test_disabled_sources_are_dropped(self):
        sources = parse_income_sources([
            {"kind": "wages", "amount": 1000, "enabled": False},
            {"kind": "wages", "amount": 2000},
        ])
        adjustments = adjust_sources(sources, 40, None, 2025)
        assert [a.annual_amount for a in adjustments] == [2000]


# =============================================================================
# STATE TAX TESTS
# =============================================================================

class TestStateTax:

    def test_retirement_exclusion_bands(self):
        assert retirement_exclusion(80000, 1944, "single") == 80000
        assert retirement_exclusion(80000, 1955, "single") == 46138
        assert retirement_exclusion(120000, 1955, "married_filing_jointly") == 92277
        assert retirement_exclusion(80000, 1970, "single") == 0

    def test_flat_tax_with_homestead_credit(self):
        [adj] = adjust_sources(parse_income_sources([{"kind": "traditional_ira", "amount": 50000}]), 60, None, 2025)
        detail = calculate_state_tax([adj], 50000, 0, 50000, "single", 1970)
        # (50,000 - 5,600) x 4.25% - 1,715
        assert detail.tax == pytest.approx(1887)
        assert detail.net_tax == pytest.approx(172)

    def test_taxable_social_security_excluded_from_state_agi(self):
        detail = calculate_state_tax([], 60000, 20000, 90000, "single", 1970)
        assert detail.state_agi == 40000


# =============================================================================
# COMPREHENSIVE CALCULATOR TESTS
# =============================================================================

class TestComprehensiveTaxes:
    """End-to-end scenarios through the orchestrator."""

    def test_scenario_a_single_wages(self, scenario_a):
        assert scenario_a.taxable_income == 60000
        assert scenario_a.federal_tax == pytest.approx(1160 + 4266 + 2827)
        assert scenario_a.federal_marginal_rate == 0.22
        assert scenario_a.effective_rate_federal < scenario_a.federal_marginal_rate

    def test_scenario_a_state_and_total(self, scenario_a):
        # (75,000 - 5,600) x 4.25%, no credit above the income limit
        assert scenario_a.state.net_tax == pytest.approx(2949.50)
        assert scenario_a.total_tax == pytest.approx(scenario_a.federal_tax + 2949.50)

    def test_scenario_b_stays_in_12_percent_bracket(self, scenario_b_sources):
        result = calculate_comprehensive_taxes(scenario_b_sources, 67, 65, "married_filing_jointly")
        assert result.total_income == 144600
        assert result.social_security.tier == "III"
        assert result.current_bracket.rate == 0.12
        assert 23200 < result.taxable_income <= 94300
        assert result.taxable_income == pytest.approx(90310)

    def test_scenario_c_senior_deduction_phase_out(self):
        result = calculate_comprehensive_taxes(
            [{"kind": "traditional_ira", "amount": 100000}],
            66, 67, "married_filing_jointly",
            settings={"magi": 340000},
        )
        assert result.magi == 340000
        assert result.deductions.senior_deduction == pytest.approx(2500)

    def test_idempotent(self, scenario_b_sources):
        first = calculate_comprehensive_taxes(scenario_b_sources, 67, 65, "married_filing_jointly")
        second = calculate_comprehensive_taxes(scenario_b_sources, 67, 65, "married_filing_jointly")
        assert first == second

    def test_total_tax_monotone_in_ordinary_income(self):
        previous = 0.0
        for ira in range(0, 200001, 5000):
            result = calculate_comprehensive_taxes(
                [
                    {"kind": "traditional_ira", "amount": ira},
                    {"kind": "social_security", "amount": 30000},
                ],
                67, None, "single",
            )
            assert result.total_tax >= previous
            previous = result.total_tax

    def test_malformed_input_degrades(self):
        result = calculate_comprehensive_taxes("garbage", "abc", None, "weird")
        assert result.total_income == 0
        assert result.total_tax == 0
        assert result.filing_status == FilingStatus.SINGLE
        assert result.taxpayer_age == 65
        assert result.effective_rate_total == 0

    def test_disabled_sources_do_not_count(self):
        result = calculate_comprehensive_taxes(
            [{"kind": "wages", "amount": 50000, "enabled": False}], 40, None, "single"
        )
        assert result.total_income == 0

    def test_zero_taxable_income_gap(self):
        result = calculate_comprehensive_taxes([{"kind": "wages", "amount": 10000}], 40, None, "single")
        assert result.current_bracket == ZERO_BRACKET
        assert result.federal_marginal_rate == 0
        # deduction - AGI + 1
        assert result.amount_to_next_bracket == 5001

    def test_gap_without_social_security_passes_through(self, scenario_a):
        assert scenario_a.taxable_income_to_next_bracket == pytest.approx(40525)
        assert scenario_a.amount_to_next_bracket == 40526

    def test_gap_with_social_security_phase_in(self):
        """Each extra dollar also makes 85 cents of benefits taxable."""
        result = calculate_comprehensive_taxes(
            [
                {"kind": "traditional_ira", "amount": 20000},
                {"kind": "social_security", "amount": 30000},
            ],
            66, None, "single",
        )
        assert result.taxable_income_to_next_bracket == pytest.approx(9250)
        assert result.amount_to_next_bracket == pytest.approx(5001, abs=1)

    def test_long_term_gains_stacked(self):
        result = calculate_comprehensive_taxes(
            [
                {"kind": "wages", "amount": 60000},
                {"kind": "long_term_capital_gains", "amount": 20000},
            ],
            40, None, "single",
        )
        assert result.ordinary_taxable_income == 45000
        assert result.preferential_tax == pytest.approx(2497.50)
        assert result.federal_tax == pytest.approx(calculate_federal_tax(45000, "single") + 2497.50)

    def test_early_withdrawal_penalty(self):
        result = calculate_comprehensive_taxes([{"kind": "traditional_ira", "amount": 20000}], 50, None, "single")
        assert result.penalties == pytest.approx(2000)
        assert result.federal_tax_with_penalties == pytest.approx(result.federal_tax + 2000)

    def test_fica_only_when_enabled(self):
        sources = [{"kind": "wages", "amount": 75000}]
        without = calculate_comprehensive_taxes(sources, 45, None, "single")
        with_fica = calculate_comprehensive_taxes(sources, 45, None, "single", fica_enabled=True)
        assert without.fica.total == 0
        assert with_fica.fica.total == pytest.approx(5737.50)
        assert with_fica.total_tax == pytest.approx(without.total_tax + 5737.50)

    def test_itemized_deductions_win_when_larger(self):
        result = calculate_comprehensive_taxes(
            [{"kind": "wages", "amount": 100000}],
            45, None, "single",
            deductions={"itemized": {"salt": 10000, "mortgage_interest": 12000}},
        )
        assert result.deductions.using_itemized
        assert result.deductions.final_deduction == 22000

    def test_irmaa_uses_medicare_elections(self):
        result = calculate_comprehensive_taxes(
            [{"kind": "pension", "amount": 150000}],
            70, None, "single",
            settings={"taxpayer_medicare": {"part_b": True, "part_d": False}},
        )
        assert result.irmaa.tier_index == 2
        assert result.irmaa.annual_surcharge == pytest.approx(185.00 * 12)

    def test_sunset_year_uses_sunset_rates(self):
        result = calculate_comprehensive_taxes(
            [{"kind": "wages", "amount": 75000}], 45, None, "single", settings={"tax_year": 2026}
        )
        assert result.brackets[-1].rate == 0.396
