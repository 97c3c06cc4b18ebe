"""
TaxMap Engine - Social Security Claiming Optimizer
==================================================
Searches claiming-age combinations (62-70 for each spouse) for the strategy
with the highest after-tax present value net of IRMAA, and stress-tests the
choice with a Monte Carlo run over discount rate, COLA and life expectancy.

Every projected year is priced by the comprehensive tax calculator under the
tax settings supplied (today's law held constant).
"""

import logging
import math
import multiprocessing as mp
import os
import time
from collections import Counter
from typing import List, NamedTuple, Optional

import numpy as np
from pydantic import ValidationError

from models import (
    AnalysisItem,
    ClaimingOptimizationResult,
    ClaimingStrategy,
    IncomeKind,
    MedicareElection,
    MonteCarloResult,
    OptimizationAnalysis,
    OptimizationSettings,
    OptimizationSummary,
    PersonInfo,
    RothConversionOpportunity,
    SocialSecurityBenefit,
    parse_income_sources,
)
from social_security import benefit_adjustment_factor, full_retirement_age_months
from tax_calculator import TaxCalculator

logger = logging.getLogger(__name__)

CLAIMING_AGES = tuple(range(62, 71))
MAX_MONTE_CARLO_SCENARIOS = 2000
ROTH_ROOM_MINIMUM = 10000
IRMAA_WARNING_THRESHOLD = 1000
MEDICARE_AGE = 65
DEFAULT_BIRTH_YEAR = 1960

WORKERS_ENV_VAR = "TAXMAP_WORKERS"

_BOTH_PARTS = MedicareElection(part_b=True, part_d=True)
_NOT_ENROLLED = MedicareElection()


# =============================================================================
# INPUT COERCION
# =============================================================================

def coerce_person(raw) -> Optional[PersonInfo]:
    if isinstance(raw, PersonInfo):
        return raw
    if isinstance(raw, dict):
        try:
            return PersonInfo.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Invalid person info: {e}")
    return None


def coerce_optimization_settings(raw) -> OptimizationSettings:
    if isinstance(raw, OptimizationSettings):
        return raw
    if isinstance(raw, dict):
        try:
            return OptimizationSettings.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Invalid optimization settings, using defaults: {e}")
    return OptimizationSettings()


def resolve_workers(workers: Optional[int]) -> int:
    """Explicit worker count, else TAXMAP_WORKERS, else 1 (in-process)."""
    if workers is None:
        raw = os.getenv(WORKERS_ENV_VAR)
        if not raw:
            return 1
        try:
            workers = int(raw)
        except ValueError:
            logger.warning(f"Ignoring non-integer {WORKERS_ENV_VAR}={raw!r}")
            return 1
    return max(1, int(workers))


# =============================================================================
# STRATEGY EVALUATION
# =============================================================================

class Household(NamedTuple):
    """Everything a strategy evaluation needs; picklable for worker pools."""
    taxpayer_birth_year: int
    taxpayer_age: int
    spouse_birth_year: Optional[int]
    spouse_age: Optional[int]
    filing_status: str
    base_sources: tuple
    settings: OptimizationSettings

    @property
    def married(self) -> bool:
        return self.spouse_birth_year is not None


def build_household(taxpayer: PersonInfo, spouse: Optional[PersonInfo], income_sources, settings) -> Household:
    year = settings.current_year
    tp_birth = taxpayer.resolved_birth_year(year)
    sp_birth = spouse.resolved_birth_year(year) if spouse is not None and spouse.has_birth_data else None

    # Benefits are modelled per strategy; existing SS sources are replaced
    base_sources = tuple(
        s for s in parse_income_sources(income_sources)
        if s.income_kind != IncomeKind.SOCIAL_SECURITY
    )

    return Household(
        taxpayer_birth_year=tp_birth,
        taxpayer_age=year - tp_birth,
        spouse_birth_year=sp_birth,
        spouse_age=year - sp_birth if sp_birth is not None else None,
        filing_status=taxpayer.filing_status.value,
        base_sources=base_sources,
        settings=settings,
    )


def available_claiming_ages(current_age: int) -> List[int]:
    """Claiming ages not already passed; 70 when past every option."""
    ages = [age for age in CLAIMING_AGES if age >= current_age]
    return ages or [CLAIMING_AGES[-1]]


def _delay_years(claiming_age: int, birth_year: int) -> float:
    return (claiming_age * 12 - full_retirement_age_months(birth_year)) / 12


def _target_bracket_room(result, target_rate: float) -> float:
    """Room left below the top of the highest bracket at or under the target rate."""
    candidates = [b for b in result.brackets if b.rate <= target_rate + 1e-9]
    if not candidates or math.isinf(candidates[-1].max):
        return 0.0
    return max(0.0, candidates[-1].max - result.taxable_income)


def evaluate_strategy(household: Household, taxpayer_claim: int, spouse_claim: Optional[int]) -> ClaimingStrategy:
    """
    Project one claiming-age pair year by year and price each year.

    Each person's benefit starts at their claiming age, grows with COLA from
    claiming, and stops after their life expectancy.
    """
    opt = household.settings
    tp_monthly = opt.taxpayer_fra_benefit * benefit_adjustment_factor(taxpayer_claim, household.taxpayer_birth_year)
    sp_monthly = 0.0
    if household.married and spouse_claim is not None:
        sp_monthly = opt.spouse_fra_benefit * benefit_adjustment_factor(spouse_claim, household.spouse_birth_year)

    # Perturbed expectancies are fractional; count whole years to the nearest
    tp_life = round(opt.taxpayer_life_expectancy)
    sp_life = round(opt.spouse_life_expectancy)
    horizon = tp_life - household.taxpayer_age
    if household.married:
        horizon = max(horizon, sp_life - household.spouse_age)

    cola = 1 + opt.cola_rate / 100
    discount = 1 + opt.discount_rate / 100
    target_rate = opt.target_tax_bracket / 100 if opt.target_tax_bracket else None

    present_value = 0.0
    irmaa_impact = 0.0
    violations = 0
    opportunities = []

    for t in range(max(0, horizon) + 1):
        tp_age = household.taxpayer_age + t
        sp_age = household.spouse_age + t if household.married else None

        tp_receiving = taxpayer_claim <= tp_age <= tp_life
        sp_receiving = spouse_claim is not None and sp_age is not None and spouse_claim <= sp_age <= sp_life

        tp_ss = tp_monthly * 12 * cola ** (tp_age - taxpayer_claim) if tp_receiving else 0.0
        sp_ss = sp_monthly * 12 * cola ** (sp_age - spouse_claim) if sp_receiving else 0.0

        sources = list(household.base_sources)
        if tp_ss > 0:
            sources.append(SocialSecurityBenefit(name="Social Security (taxpayer)", amount=tp_ss))
        if sp_ss > 0:
            sources.append(SocialSecurityBenefit(name="Social Security (spouse)", amount=sp_ss, owner="spouse"))

        tax_settings = opt.tax_settings
        if opt.consider_irmaa:
            tax_settings = tax_settings.model_copy(update={
                "taxpayer_medicare": _BOTH_PARTS if tp_age >= MEDICARE_AGE else _NOT_ENROLLED,
                "spouse_medicare": _BOTH_PARTS if sp_age is not None and sp_age >= MEDICARE_AGE else _NOT_ENROLLED,
            })

        calculator = TaxCalculator(tp_age, sp_age, household.filing_status, tax_settings)
        result = calculator.calculate(sources, solve_bracket_gap=False)

        total_ss = tp_ss + sp_ss
        after_tax_ss = total_ss - result.social_security.taxable_amount * result.federal_marginal_rate
        factor = discount ** -t
        present_value += after_tax_ss * factor

        if opt.consider_irmaa:
            irmaa_impact += result.irmaa.annual_surcharge * factor

        if target_rate is not None and result.federal_marginal_rate > target_rate:
            violations += 1

        if opt.consider_roth_conversions and target_rate is not None and not tp_receiving:
            room = _target_bracket_room(result, target_rate)
            if room > ROTH_ROOM_MINIMUM:
                opportunities.append(RothConversionOpportunity(
                    age=tp_age,
                    available_room=round(room, 2),
                    current_bracket=result.federal_marginal_rate,
                ))

    return ClaimingStrategy(
        taxpayer_claiming_age=taxpayer_claim,
        spouse_claiming_age=spouse_claim if household.married else None,
        taxpayer_monthly_benefit=round(tp_monthly, 2),
        spouse_monthly_benefit=round(sp_monthly, 2),
        after_tax_present_value=round(present_value - irmaa_impact, 2),
        gross_present_value=round(present_value, 2),
        irmaa_impact=round(irmaa_impact, 2),
        tax_bracket_violations=violations,
        roth_conversion_opportunities=tuple(opportunities),
        taxpayer_delay=round(_delay_years(taxpayer_claim, household.taxpayer_birth_year), 4),
        spouse_delay=round(_delay_years(spouse_claim, household.spouse_birth_year), 4)
        if household.married and spouse_claim is not None else 0.0,
    )


def _evaluate_task(task) -> ClaimingStrategy:
    # Module-level so worker processes can unpickle it
    household, taxpayer_claim, spouse_claim = task
    return evaluate_strategy(household, taxpayer_claim, spouse_claim)


def evaluate_all_strategies(household: Household, workers: int = 1) -> List[ClaimingStrategy]:
    tp_ages = available_claiming_ages(household.taxpayer_age)
    sp_ages = available_claiming_ages(household.spouse_age) if household.married else [None]
    tasks = [(household, tp, sp) for tp in tp_ages for sp in sp_ages]

    if workers > 1 and len(tasks) > 1:
        with mp.Pool(min(workers, len(tasks))) as pool:
            return pool.map(_evaluate_task, tasks)
    return [_evaluate_task(task) for task in tasks]


# =============================================================================
# SCORING & ANALYSIS
# =============================================================================

def calculate_optimization_score(strategy: ClaimingStrategy) -> int:
    """70 base, rewards delay and Roth windows, penalizes IRMAA and violations."""
    score = 70.0
    if strategy.taxpayer_delay > 0:
        score += min(20, strategy.taxpayer_delay * 3)
    if strategy.irmaa_impact > 0:
        score -= min(10, strategy.irmaa_impact / 1000)
    if strategy.tax_bracket_violations > 0:
        score -= min(15, strategy.tax_bracket_violations * 2)
    if strategy.roth_conversion_opportunities:
        score += min(10, len(strategy.roth_conversion_opportunities))
    return max(0, min(100, round(score)))


def generate_optimization_analysis(
    best: Optional[ClaimingStrategy],
    reference: Optional[ClaimingStrategy] = None,
) -> OptimizationAnalysis:
    """
    Recommendations, warnings and opportunities for the chosen strategy.

    reference is the strategy claiming at the first whole age at or after full
    retirement age, used to quantify the value of delaying.
    """
    if best is None:
        return OptimizationAnalysis()

    recommendations = []
    warnings = []
    opportunities = []

    if best.taxpayer_delay > 0:
        detail = ""
        if reference is not None:
            gain = best.after_tax_present_value - reference.after_tax_present_value
            detail = f"+${gain:,.0f} after-tax value vs claiming at {reference.taxpayer_claiming_age}"
        recommendations.append(AnalysisItem(
            type="delay",
            title="Delay Taxpayer Claiming",
            description=f"Delaying Social Security claiming to age {best.taxpayer_claiming_age} increases lifetime benefits",
            detail=detail,
            priority="high",
        ))

    if best.spouse_delay > 0:
        recommendations.append(AnalysisItem(
            type="delay",
            title="Delay Spouse Claiming",
            description=f"Delaying spouse Social Security claiming to age {best.spouse_claiming_age} optimizes joint benefits",
            detail="Contributes to overall optimization strategy",
            priority="high",
        ))

    if best.irmaa_impact > IRMAA_WARNING_THRESHOLD:
        warnings.append(AnalysisItem(
            type="irmaa",
            title="IRMAA Impact Detected",
            description=f"This strategy results in ${best.irmaa_impact:,.0f} in additional Medicare premiums",
            detail="Consider income smoothing strategies to reduce IRMAA exposure",
        ))

    if best.tax_bracket_violations > 0:
        warnings.append(AnalysisItem(
            type="tax_bracket",
            title="Tax Bracket Exceeded",
            description=f"Strategy exceeds target tax bracket in {best.tax_bracket_violations} years",
            detail="Consider adjusting claiming timing or other income sources",
        ))

    if best.roth_conversion_opportunities:
        windows = best.roth_conversion_opportunities
        total_room = sum(o.available_room for o in windows)
        opportunities.append(AnalysisItem(
            type="roth_conversion",
            title="Roth Conversion Window",
            description=f"{len(windows)} years with conversion opportunities",
            detail=f"Up to ${total_room:,.0f} in low-bracket conversions",
            years=tuple(o.age for o in windows),
        ))

    return OptimizationAnalysis(
        recommendations=tuple(recommendations),
        warnings=tuple(warnings),
        opportunities=tuple(opportunities),
        summary=OptimizationSummary(
            after_tax_value=best.after_tax_present_value,
            irmaa_impact=best.irmaa_impact,
            net_benefit=best.after_tax_present_value,
            optimization_score=calculate_optimization_score(best),
        ),
    )


def reference_claiming_age(birth_year: int) -> int:
    """First whole claiming age at or after full retirement age."""
    return math.ceil(full_retirement_age_months(birth_year) / 12)


def _fra_reference(strategies: List[ClaimingStrategy], household: Household) -> Optional[ClaimingStrategy]:
    tp_ref = reference_claiming_age(household.taxpayer_birth_year)
    sp_ref = reference_claiming_age(household.spouse_birth_year) if household.married else None
    for strategy in strategies:
        if strategy.taxpayer_claiming_age == tp_ref and strategy.spouse_claiming_age == sp_ref:
            return strategy
    return None


# =============================================================================
# OPTIMIZER ENTRY POINT
# =============================================================================

def calculate_tax_efficient_claiming_strategy(
    taxpayer_info,
    spouse_info,
    income_sources,
    optimization_settings=None,
    workers: Optional[int] = None,
) -> ClaimingOptimizationResult:
    """
    Find the claiming-age pair with the highest after-tax present value.

    Args:
        taxpayer_info: PersonInfo or dict (birth_year / date_of_birth,
            filing_status); invalid -> born 1960, single
        spouse_info: PersonInfo, dict or None; married when it has birth data
        income_sources: Other income; Social Security sources are replaced
        optimization_settings: OptimizationSettings or dict
        workers: Pool size for evaluating age pairs (None -> TAXMAP_WORKERS)

    Returns:
        ClaimingOptimizationResult
    """
    taxpayer = coerce_person(taxpayer_info)
    if taxpayer is None or not taxpayer.has_birth_data:
        logger.warning("Invalid taxpayer info; assuming born 1960, filing single")
        taxpayer = PersonInfo(birth_year=DEFAULT_BIRTH_YEAR)
    spouse = coerce_person(spouse_info)
    settings = coerce_optimization_settings(optimization_settings)

    household = build_household(taxpayer, spouse, income_sources, settings)
    strategies = evaluate_all_strategies(household, resolve_workers(workers))

    best = strategies[0]
    for strategy in strategies[1:]:
        if strategy.after_tax_present_value > best.after_tax_present_value:
            best = strategy

    logger.debug(
        f"Evaluated {len(strategies)} claiming strategies; best {best.strategy_key} "
        f"at ${best.after_tax_present_value:,.0f}"
    )

    return ClaimingOptimizationResult(
        best_strategy=best,
        optimization_factors={
            "consider_irmaa": settings.consider_irmaa,
            "consider_roth_conversions": settings.consider_roth_conversions,
            "target_tax_bracket": settings.target_tax_bracket,
            "discount_rate": settings.discount_rate,
            "cola_rate": settings.cola_rate,
        },
        analysis=generate_optimization_analysis(best, _fra_reference(strategies, household)),
        strategies_evaluated=len(strategies),
    )


# =============================================================================
# MONTE CARLO
# =============================================================================

def perturb_settings(settings: OptimizationSettings, rng: np.random.Generator) -> OptimizationSettings:
    """Uniform shocks: discount +/-1pt, COLA +/-0.5pt, life expectancy +/-5y."""
    return settings.model_copy(update={
        "discount_rate": settings.discount_rate + float(rng.uniform(-1.0, 1.0)),
        "cola_rate": settings.cola_rate + float(rng.uniform(-0.5, 0.5)),
        "taxpayer_life_expectancy": settings.taxpayer_life_expectancy + float(rng.uniform(-5.0, 5.0)),
        "spouse_life_expectancy": settings.spouse_life_expectancy + float(rng.uniform(-5.0, 5.0)),
    })


def _run_trial(task) -> Optional[ClaimingStrategy]:
    taxpayer, spouse, income_sources, settings = task
    return calculate_tax_efficient_claiming_strategy(taxpayer, spouse, income_sources, settings, workers=1).best_strategy


def summarize_trials(strategies: List[ClaimingStrategy]) -> MonteCarloResult:
    if not strategies:
        return MonteCarloResult()

    values = np.array([s.after_tax_present_value for s in strategies])
    p10, p25, p50, p75, p90 = np.percentile(values, [10, 25, 50, 75, 90])
    frequency = Counter(s.strategy_key for s in strategies)

    return MonteCarloResult(
        scenarios=len(strategies),
        most_frequent_strategy=frequency.most_common(1)[0][0],
        value_percentiles={
            "p10": float(p10),
            "p25": float(p25),
            "p50": float(p50),
            "p75": float(p75),
            "p90": float(p90),
        },
        claiming_age_frequency=dict(frequency),
        risk_metrics={
            "standard_deviation": float(np.std(values)),
            "worst_case": float(values.min()),
            "best_case": float(values.max()),
        },
    )


def run_monte_carlo_analysis(
    taxpayer_info,
    spouse_info,
    income_sources,
    optimization_settings=None,
    scenario_count: int = 1000,
    seed: Optional[int] = None,
    workers: Optional[int] = None,
    time_limit: Optional[float] = None,
) -> MonteCarloResult:
    """
    Re-run the optimizer under perturbed assumptions.

    Trials are capped at 2000. All shocks are drawn up front from one seeded
    generator, so a seed reproduces the run regardless of worker count.
    time_limit (seconds) stops launching further trials once exceeded.
    """
    taxpayer = coerce_person(taxpayer_info)
    if taxpayer is None:
        logger.warning("Invalid taxpayer info provided to Monte Carlo analysis")
        return MonteCarloResult()
    spouse = coerce_person(spouse_info)
    settings = coerce_optimization_settings(optimization_settings)

    try:
        count = max(0, min(int(scenario_count), MAX_MONTE_CARLO_SCENARIOS))
    except (TypeError, ValueError):
        count = 0

    rng = np.random.default_rng(seed)
    tasks = [(taxpayer, spouse, income_sources, perturb_settings(settings, rng)) for _ in range(count)]

    started = time.monotonic()

    def out_of_time() -> bool:
        return time_limit is not None and time.monotonic() - started > time_limit

    results: List[ClaimingStrategy] = []
    pool_size = resolve_workers(workers)

    if pool_size > 1 and len(tasks) > 1:
        with mp.Pool(min(pool_size, len(tasks))) as pool:
            for strategy in pool.imap(_run_trial, tasks):
                if strategy is not None:
                    results.append(strategy)
                if out_of_time():
                    break
    else:
        for task in tasks:
            if out_of_time():
                break
            strategy = _run_trial(task)
            if strategy is not None:
                results.append(strategy)

    if len(results) < count:
        logger.info(f"Monte Carlo stopped after {len(results)} of {count} trials (time limit)")

    return summarize_trials(results)
