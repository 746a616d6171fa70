"""Plan catalog: static limits per plan tier."""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class PlanId(str, Enum):
    FREE = "free"
    PLUS = "plus"
    PRO = "pro"
    GUEST = "guest"


@dataclass(frozen=True)
class PlanLimits:
    name: str
    max_bytes: int
    max_files: int
    max_pwd: int
    max_custom_links: int
    max_days: float
    max_total_storage: int
    max_folders: int
    max_tags: int
    has_api_access: bool = False
    api_uploads_per_day: int = 0
    api_requests_per_hour: int = 0


MB = 1000 * 1000
GB = 1000 * MB

PLAN_LIMITS = {
    PlanId.FREE: PlanLimits(
        name="Gratis",
        max_bytes=200 * MB,
        max_files=5,
        max_pwd=1,
        max_custom_links=0,
        max_days=7,
        max_total_storage=500 * MB,
        max_folders=3,
        max_tags=5,
    ),
    PlanId.PLUS: PlanLimits(
        name="Plus",
        max_bytes=500 * MB,
        max_files=50,
        max_pwd=5,
        max_custom_links=5,
        max_days=30,
        max_total_storage=20 * GB,
        max_folders=10,
        max_tags=10,
        has_api_access=True,
        api_uploads_per_day=100,
        api_requests_per_hour=1000,
    ),
    PlanId.PRO: PlanLimits(
        name="Pro",
        max_bytes=5 * GB,
        max_files=250,
        max_pwd=50,
        max_custom_links=25,
        max_days=365,
        max_total_storage=200 * GB,
        max_folders=50,
        max_tags=20,
        has_api_access=True,
        api_uploads_per_day=1000,
        api_requests_per_hour=10000,
    ),
    PlanId.GUEST: PlanLimits(
        name="Invitado",
        max_bytes=10 * MB,
        max_files=0,
        max_pwd=0,
        max_custom_links=0,
        max_days=0.02,  # ~30 minutes
        max_total_storage=100 * MB,
        max_folders=0,
        max_tags=0,
    ),
}

# Plans that can be bought; guest is never assigned to a user record.
PRICING = {
    PlanId.PLUS: {"monthly": 4.99, "annual": 47.90},
    PlanId.PRO: {"monthly": 14.99, "annual": 143.90},
}


def resolve_plan(plan: Union[str, PlanId, None]) -> PlanId:
    """Map any stored plan identifier onto the closed enumeration.

    Unknown or missing identifiers degrade to ``free``.
    """
    if isinstance(plan, PlanId):
        return plan
    try:
        return PlanId((plan or "").strip().lower())
    except ValueError:
        return PlanId.FREE


def limits_for(plan: Union[str, PlanId, None]) -> PlanLimits:
    return PLAN_LIMITS[resolve_plan(plan)]


def format_bytes(num: int, decimals: int = 2) -> str:
    if not num:
        return "0 Bytes"
    k = 1000
    sizes = ["Bytes", "KB", "MB", "GB", "TB"]
    i = min(int(math.floor(math.log(num) / math.log(k))), len(sizes) - 1)
    value = round(num / math.pow(k, i), max(decimals, 0))
    return f"{value:g} {sizes[i]}"


def expected_price(plan: PlanId, months: int = 1, annual: bool = False) -> Optional[float]:
    pricing = PRICING.get(plan)
    if not pricing:
        return None
    if annual or months == 12:
        return pricing["annual"]
    return round(pricing["monthly"] * months, 2)
