"""
TaxMap Engine - Medicare IRMAA
==============================
Maps MAGI to the Income-Related Monthly Adjustment Amount tier.

Tiers are scanned in ascending order and the tier with min <= MAGI < max
wins. Surcharges are monthly and per enrolled person/part; the annual figure
used downstream is the enrolled monthly total x 12.
"""

from typing import List, NamedTuple, Optional

from tax_constants import (
    IRMAA_BASE_PART_B_PREMIUM,
    IRMAA_TIERS_2025,
    irmaa_table_key,
)
from models import IrmaaDetail, MedicareElection


class IrmaaTier(NamedTuple):
    index: int
    min: float
    max: float
    part_b: float
    part_d: float

    @property
    def label(self) -> str:
        if self.index == 0:
            return "No IRMAA"
        return f"Tier {self.index} (+${self.part_b:.2f} B, +${self.part_d:.2f} D)"


def irmaa_tiers(filing_status) -> List[IrmaaTier]:
    raw = IRMAA_TIERS_2025[irmaa_table_key(filing_status)]
    return [IrmaaTier(i, float(lo), float(hi), b, d) for i, (lo, hi, b, d) in enumerate(raw)]


def find_irmaa_tier(magi: float, filing_status) -> IrmaaTier:
    tiers = irmaa_tiers(filing_status)
    magi = max(0.0, magi or 0.0)
    for tier in tiers:
        if tier.min <= magi < tier.max:
            return tier
    return tiers[-1]


def resolve_irmaa(
    magi: float,
    filing_status,
    taxpayer_medicare: Optional[MedicareElection] = None,
    spouse_medicare: Optional[MedicareElection] = None,
) -> IrmaaDetail:
    """
    Resolve the IRMAA tier and the surcharges actually owed.

    Args:
        magi: Modified AGI (the two-year lookback is the caller's concern)
        filing_status: Filing status (any spelling)
        taxpayer_medicare: Part B/D enrollment for the taxpayer
        spouse_medicare: Part B/D enrollment for the spouse
    """
    tier = find_irmaa_tier(magi, filing_status)
    elections = [e for e in (taxpayer_medicare, spouse_medicare) if e is not None]
    enrolled_b = sum(1 for e in elections if e.part_b)
    enrolled_d = sum(1 for e in elections if e.part_d)
    monthly = enrolled_b * tier.part_b + enrolled_d * tier.part_d

    return IrmaaDetail(
        magi=round(max(0.0, magi or 0.0), 2),
        tier_index=tier.index,
        label=tier.label,
        part_b_surcharge=tier.part_b,
        part_d_surcharge=tier.part_d,
        enrolled_part_b=enrolled_b,
        enrolled_part_d=enrolled_d,
        monthly_surcharge=round(monthly, 2),
        annual_surcharge=round(monthly * 12, 2),
        base_part_b_premium=IRMAA_BASE_PART_B_PREMIUM,
    )
