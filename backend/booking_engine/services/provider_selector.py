# backend/booking_engine/services/provider_selector.py
"""
Provider selection.

Orders the providers eligible for a service under the service's
preference strategy:

- specified_order     display order of the provider/service assignment
- most_expensive      price override (or base price), highest first
- least_expensive     price override (or base price), lowest first
- least_occupied_day  appointments in the occupancy window, fewest first
- most_occupied_day   appointments in the occupancy window, most first

Equal scores either keep display order or, with providers_random_tie,
are shuffled group by group.
"""

import logging
import random
from dataclasses import dataclass
from datetime import date, timedelta
from itertools import groupby
from typing import Sequence
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from .slots.calendar import Interval, day_bounds
from .slots.store import ProviderRecord, ServiceRules, count_appointments, load_providers, storage_errors

logger = logging.getLogger(__name__)

SPECIFIED_ORDER = "specified_order"
MOST_EXPENSIVE = "most_expensive"
LEAST_EXPENSIVE = "least_expensive"
LEAST_OCCUPIED_DAY = "least_occupied_day"
MOST_OCCUPIED_DAY = "most_occupied_day"

PREFERENCES = (
    SPECIFIED_ORDER,
    MOST_EXPENSIVE,
    LEAST_EXPENSIVE,
    LEAST_OCCUPIED_DAY,
    MOST_OCCUPIED_DAY,
)

# Unassigned providers sort after every configured display order
UNASSIGNED_ORDER = 1_000_000


@dataclass(frozen=True)
class RankedProvider:
    provider_id: int
    score: float | None


def occupancy_window(service: ServiceRules, target_date: date, tz: ZoneInfo) -> Interval:
    """[date - before, date + after] as whole local days."""
    first = target_date - timedelta(days=service.occupancy_before)
    last = target_date + timedelta(days=service.occupancy_after)
    return Interval(day_bounds(first, tz).start, day_bounds(last, tz).end)


def _display_order(provider: ProviderRecord | None, service_id: int) -> int:
    if provider is None:
        return UNASSIGNED_ORDER
    assignment = provider.services.get(service_id)
    return assignment.display_order if assignment else UNASSIGNED_ORDER


def _price(provider: ProviderRecord | None, service: ServiceRules) -> float:
    assignment = provider.services.get(service.id) if provider else None
    if assignment and assignment.price_override is not None:
        return float(assignment.price_override)
    return float(service.price or 0.0)


def rank_providers(
    service: ServiceRules,
    provider_ids: Sequence[int],
    providers: dict[int, ProviderRecord],
    occupancy: dict[int, int] | None = None,
    rng: random.Random | None = None,
) -> list[RankedProvider]:
    """
    Order provider_ids under the service's preference.

    Pure function; occupancy counts are required for occupancy strategies.
    """
    if not provider_ids:
        return []

    # Secondary key for every strategy: display order, then input position
    base = sorted(provider_ids, key=lambda p: _display_order(providers.get(p), service.id))

    preference = service.preference
    if preference not in PREFERENCES:
        logger.warning(f"Unknown provider preference {preference!r} on service #{service.id}, using {SPECIFIED_ORDER}")
        preference = SPECIFIED_ORDER

    if preference == SPECIFIED_ORDER:
        if service.random_tie:
            # equal display orders form the tie groups
            orders = [(p, float(_display_order(providers.get(p), service.id))) for p in base]
            return _shuffle_ties(orders, rng, keep_score=False)
        return [RankedProvider(p, None) for p in base]

    if preference in (MOST_EXPENSIVE, LEAST_EXPENSIVE):
        scored = [(p, _price(providers.get(p), service)) for p in base]
        descending = preference == MOST_EXPENSIVE
    else:
        counts = occupancy or {}
        scored = [(p, float(counts.get(p, 0))) for p in base]
        descending = preference == MOST_OCCUPIED_DAY

    # sorted() is stable, so ties keep display order
    scored.sort(key=lambda item: -item[1] if descending else item[1])

    if service.random_tie:
        return _shuffle_ties(scored, rng)
    return [RankedProvider(p, s) for p, s in scored]


def _shuffle_ties(
    scored: list[tuple[int, float]],
    rng: random.Random | None,
    keep_score: bool = True,
) -> list[RankedProvider]:
    """Shuffle each run of equal scores independently; run order is kept."""
    shuffle = (rng or random).shuffle
    ranked: list[RankedProvider] = []
    for _, group in groupby(scored, key=lambda item: item[1]):
        members = list(group)
        shuffle(members)
        ranked.extend(RankedProvider(p, s if keep_score else None) for p, s in members)
    return ranked


def select_providers(
    db: Session,
    service: ServiceRules,
    eligible_provider_ids: Sequence[int],
    target_date: date,
    tz: ZoneInfo,
    rng: random.Random | None = None,
) -> list[RankedProvider]:
    """
    Rank eligible providers for a booking of service on target_date.

    An empty eligible set yields an empty list; callers report that as
    "no qualified provider", not as "no free slot".
    """
    if not eligible_provider_ids:
        return []

    with storage_errors("provider selection"):
        providers = load_providers(db, eligible_provider_ids)
        occupancy = None
        if service.preference in (LEAST_OCCUPIED_DAY, MOST_OCCUPIED_DAY):
            window = occupancy_window(service, target_date, tz)
            occupancy = count_appointments(db, eligible_provider_ids, window)

    return rank_providers(service, list(eligible_provider_ids), providers, occupancy, rng)


def select_provider(
    db: Session,
    service: ServiceRules,
    eligible_provider_ids: Sequence[int],
    target_date: date,
    tz: ZoneInfo,
    rng: random.Random | None = None,
) -> RankedProvider | None:
    """Single winner, or None when nobody is eligible."""
    ranked = select_providers(db, service, eligible_provider_ids, target_date, tz, rng)
    return ranked[0] if ranked else None
