from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Optional, Tuple

import pytz

from shortcraft.config import QuotaSettings
from shortcraft.errors import QuotaExceeded
from shortcraft.store.store import ArtifactStore
from shortcraft.utils.logging_setup import setup_logger

logger = setup_logger(__name__)


def window_starts(now_ts: float, tz_name: str) -> Tuple[float, float]:
    """
    Return (day_start, week_start) as absolute POSIX timestamps.

    Day starts at local midnight in `tz_name`, week at local midnight of the
    most recent Monday. Stored rows are in absolute time, so the local
    boundaries are converted back before counting.
    """
    tz = pytz.timezone(tz_name)
    local_now = datetime.fromtimestamp(now_ts, tz=timezone.utc).astimezone(tz)
    midnight = datetime(local_now.year, local_now.month, local_now.day)
    monday = midnight - timedelta(days=local_now.weekday())
    day_start = tz.localize(midnight, is_dst=False)
    week_start = tz.localize(monday, is_dst=False)
    return day_start.timestamp(), week_start.timestamp()


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    plan: str
    per_day: int
    per_week: int
    used_today: int
    used_week: int
    bypass: bool = False

    @property
    def remaining_today(self) -> int:
        return max(0, self.per_day - self.used_today)

    @property
    def remaining_week(self) -> int:
        return max(0, self.per_week - self.used_week)

    def to_dict(self) -> Dict[str, object]:
        return {
            "allowed": self.allowed,
            "bypass": self.bypass,
            "plan": self.plan,
            "limits": {"perDay": self.per_day, "perWeek": self.per_week},
            "usage": {"today": self.used_today, "week": self.used_week},
            "remaining": {"today": self.remaining_today, "week": self.remaining_week},
        }


class QuotaLimiter:
    """
    Plan-based limit on costly generations over day/week windows.

    Counts are derived from stored artifacts at check time; there is no
    counter state. Two requests racing at the boundary may both pass.
    """

    def __init__(
        self,
        settings: QuotaSettings,
        store: ArtifactStore,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.settings = settings
        self.store = store
        self.clock = clock or time.time

    def is_gated(self, stage_kind: str) -> bool:
        return stage_kind in self.settings.gated_stages

    def usage(self, account_id: str, email: Optional[str], now: Optional[float] = None) -> QuotaDecision:
        now_ts = float(self.clock() if now is None else now)
        plan = self.settings.plan_for(email)
        limits = self.settings.limits_for(plan)
        day_start, week_start = window_starts(now_ts, self.settings.timezone)
        stages: Iterable[str] = self.settings.gated_stages
        used_today = self.store.count_artifacts_since(account_id, stages, day_start)
        used_week = self.store.count_artifacts_since(account_id, stages, week_start)
        bypass = self.settings.is_bypassed(email)
        allowed = bypass or (used_today < limits.per_day and used_week < limits.per_week)
        return QuotaDecision(
            allowed=allowed,
            plan=plan,
            per_day=limits.per_day,
            per_week=limits.per_week,
            used_today=used_today,
            used_week=used_week,
            bypass=bypass,
        )

    def check(self, account_id: str, email: Optional[str], now: Optional[float] = None) -> QuotaDecision:
        if self.settings.is_bypassed(email):
            plan = self.settings.plan_for(email)
            limits = self.settings.limits_for(plan)
            logger.info("Quota bypassed for %s", email)
            return QuotaDecision(
                allowed=True,
                plan=plan,
                per_day=limits.per_day,
                per_week=limits.per_week,
                used_today=0,
                used_week=0,
                bypass=True,
            )

        decision = self.usage(account_id, email, now=now)
        if not decision.allowed:
            logger.warning(
                "Quota exceeded: plan=%s today=%d/%d week=%d/%d",
                decision.plan, decision.used_today, decision.per_day, decision.used_week, decision.per_week,
            )
            raise QuotaExceeded(
                plan=decision.plan,
                per_day=decision.per_day,
                per_week=decision.per_week,
                used_today=decision.used_today,
                used_week=decision.used_week,
            )
        return decision
