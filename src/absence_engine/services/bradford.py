"""Bradford Factor scoring.

Formula: S * S * D, where S is the number of absence spells in the lookback
window and D is the total working days lost across those spells. The
lookback is a rolling 52 weeks and ignores any rule period.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from absence_engine.models import SicknessCase
from absence_engine.services.working_days import count_weekdays

BRADFORD_LOOKBACK_WEEKS = 52

# (lower bound, label), highest first
BRADFORD_RISK_LEVELS: tuple[tuple[int, str], ...] = (
    (500, "Critical"),
    (200, "High"),
    (50, "Medium"),
    (0, "Low"),
)


def bradford_score(spells: int, total_days: int) -> int:
    return spells * spells * total_days


def bradford_risk_level(score: int) -> str:
    """Map a score to Low (0-49), Medium (50-199), High (200-499) or Critical (500+)."""
    for lower, label in BRADFORD_RISK_LEVELS:
        if score >= lower:
            return label
    return BRADFORD_RISK_LEVELS[-1][1]


@dataclass(frozen=True)
class BradfordResult:
    score: int
    spells: int
    total_days: int
    risk_level: str


def spell_days(case: SicknessCase, today: date) -> int:
    """Working days a spell contributes.

    Closed-out spells use working_days_lost. Ongoing spells count weekdays
    from the start to today inclusive, with a minimum of one.
    """
    if case.working_days_lost is not None:
        return case.working_days_lost
    return max(count_weekdays(case.absence_start_date, today), 1)


def score_cases(cases: Iterable[SicknessCase], today: date) -> BradfordResult:
    """Score cases already filtered to the lookback window."""
    cases = list(cases)
    spells = len(cases)
    total_days = sum(spell_days(case, today) for case in cases)
    score = bradford_score(spells, total_days)
    return BradfordResult(
        score=score,
        spells=spells,
        total_days=total_days,
        risk_level=bradford_risk_level(score),
    )


class BradfordFactorService:
    """Calculates the Bradford Factor for employees."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def calculate(self, employee_id: UUID, today: date | None = None) -> BradfordResult:
        today = today or date.today()
        cutoff = today - timedelta(weeks=BRADFORD_LOOKBACK_WEEKS)
        result = await self.session.execute(
            select(SicknessCase).where(
                SicknessCase.employee_id == employee_id,
                SicknessCase.absence_start_date > cutoff,
            )
        )
        return score_cases(result.scalars().all(), today)

    async def calculate_for_team(
        self,
        employee_ids: Iterable[UUID],
        today: date | None = None,
    ) -> dict[UUID, BradfordResult]:
        return {
            employee_id: await self.calculate(employee_id, today)
            for employee_id in employee_ids
        }
