"""Plan Catalog - static plan tier to quota and resource limit lookup"""

from datetime import timedelta
from types import MappingProxyType
from typing import Mapping, Tuple

from quota_service.core.config import settings
from quota_service.core.exceptions import InvalidPlanError
from quota_service.schemas.quota import PlanTier, PlanQuota, ResourceLimits


MONTHLY_WINDOW = timedelta(days=settings.MONTHLY_WINDOW_DAYS)
DAILY_WINDOW = timedelta(hours=settings.DAILY_WINDOW_HOURS)

# Tiers in ascending order; every limit must be non-decreasing along it
PLAN_ORDER: Tuple[str, ...] = (PlanTier.FREE.value, PlanTier.PRO.value, PlanTier.ENTERPRISE.value)

PLAN_QUOTAS = {
    PlanTier.FREE.value: PlanQuota(
        messages_per_month=500,
        api_calls_per_day=50,
        max_agents=1,
        max_containers=1,
    ),
    PlanTier.PRO.value: PlanQuota(
        messages_per_month=10000,
        api_calls_per_day=1000,
        max_agents=10,
        max_containers=5,
    ),
    # Effectively unlimited
    PlanTier.ENTERPRISE.value: PlanQuota(
        messages_per_month=1_000_000,
        api_calls_per_day=100_000,
        max_agents=100,
        max_containers=50,
    ),
}

RESOURCE_LIMITS = {
    PlanTier.FREE.value: ResourceLimits(
        max_cpu_per_container=500,  # 0.5 cores
        max_memory_per_container=512,
        max_disk_per_container=5120,  # 5 GB
        max_total_cpu=500,
        max_total_memory=512,
        max_total_disk=5120,
    ),
    PlanTier.PRO.value: ResourceLimits(
        max_cpu_per_container=2000,
        max_memory_per_container=4096,
        max_disk_per_container=51200,
        max_total_cpu=4000,
        max_total_memory=8192,
        max_total_disk=102400,
    ),
    PlanTier.ENTERPRISE.value: ResourceLimits(
        max_cpu_per_container=8000,
        max_memory_per_container=32768,
        max_disk_per_container=512000,
        max_total_cpu=64000,
        max_total_memory=262144,
        max_total_disk=5120000,
    ),
}


class PlanCatalog:
    """
    Immutable plan tier lookup.

    Built once at process start and handed to both engines. Construction
    validates that limits never decrease from one tier to the next and that
    every aggregate ceiling can hold at least one maximal container.
    """

    def __init__(
        self,
        quotas: Mapping[str, PlanQuota],
        resource_limits: Mapping[str, ResourceLimits],
        plan_order: Tuple[str, ...] = PLAN_ORDER
    ):
        if set(quotas) != set(plan_order) or set(resource_limits) != set(plan_order):
            raise ValueError(
                f"Plan tables must cover exactly {list(plan_order)}, "
                f"got quotas={sorted(quotas)} resource_limits={sorted(resource_limits)}"
            )

        self._quotas = MappingProxyType(dict(quotas))
        self._resource_limits = MappingProxyType(dict(resource_limits))
        self._plan_order = tuple(plan_order)

        self._validate_monotonic(self._quotas)
        self._validate_monotonic(self._resource_limits)
        self._validate_aggregate_fits_container()

    @classmethod
    def default(cls) -> "PlanCatalog":
        """Catalog with the built-in free/pro/enterprise tables"""
        return cls(PLAN_QUOTAS, RESOURCE_LIMITS)

    @property
    def plans(self) -> Tuple[str, ...]:
        return self._plan_order

    def limits_for(self, plan_tier: str) -> PlanQuota:
        """
        Get the quota limits for a plan tier.

        Raises:
            InvalidPlanError: If the tier is not in the catalog
        """
        return self._quotas[self.normalize(plan_tier)]

    def resource_limits_for(self, plan_tier: str) -> ResourceLimits:
        """
        Get the resource ceilings for a plan tier.

        Raises:
            InvalidPlanError: If the tier is not in the catalog
        """
        return self._resource_limits[self.normalize(plan_tier)]

    def is_valid_plan(self, plan_tier: str) -> bool:
        try:
            self.normalize(plan_tier)
        except InvalidPlanError:
            return False
        return True

    def normalize(self, plan_tier) -> str:
        """
        Return the catalog key for a tier given as a string or PlanTier.

        Raises:
            InvalidPlanError: If the tier is not in the catalog
        """
        key = plan_tier.value if isinstance(plan_tier, PlanTier) else plan_tier
        if key not in self._quotas:
            raise InvalidPlanError(str(key), list(self._plan_order))
        return key

    def _validate_monotonic(self, table: Mapping[str, object]) -> None:
        for lower, higher in zip(self._plan_order, self._plan_order[1:]):
            low_values = table[lower].model_dump()
            high_values = table[higher].model_dump()
            for field, low in low_values.items():
                if high_values[field] < low:
                    raise ValueError(
                        f"Plan '{higher}' has {field}={high_values[field]}, "
                        f"lower than '{lower}' ({low})"
                    )

    def _validate_aggregate_fits_container(self) -> None:
        for plan, limits in self._resource_limits.items():
            for resource in ("cpu", "memory", "disk"):
                per_container = getattr(limits, f"max_{resource}_per_container")
                total = getattr(limits, f"max_total_{resource}")
                if total < per_container:
                    raise ValueError(
                        f"Plan '{plan}' aggregate {resource} ceiling {total} is below "
                        f"the per-container ceiling {per_container}"
                    )


_default_catalog = PlanCatalog.default()


def get_plan_catalog() -> PlanCatalog:
    """Return the process-wide catalog built at import time"""
    return _default_catalog
