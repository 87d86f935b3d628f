"""
Pricing permutations for tiered-capacity volumes.
Eleven fixed variants: service level x double encryption x cool access, plus the flexible tier.
"""
from typing import Dict, List, Optional
from dataclasses import dataclass
from enum import Enum, IntEnum


class PermutationError(Exception):
    """Raised when a configuration does not map to a supported permutation."""
    pass


class ServiceLevel(Enum):
    """Capacity pool service levels."""
    STANDARD = "Standard"
    PREMIUM = "Premium"
    ULTRA = "Ultra"
    FLEXIBLE = "Flexible"

    @classmethod
    def parse(cls, value: str) -> "ServiceLevel":
        normalized = (value or "").strip().lower()
        for level in cls:
            if level.value.lower() == normalized:
                return level
        raise PermutationError(f"Unknown service level: {value!r}")


class PermutationId(IntEnum):
    STANDARD_REGULAR = 1
    STANDARD_DOUBLE_ENCRYPTED = 2
    STANDARD_COOL_ACCESS = 3
    PREMIUM_REGULAR = 4
    PREMIUM_DOUBLE_ENCRYPTED = 5
    PREMIUM_COOL_ACCESS = 6
    ULTRA_REGULAR = 7
    ULTRA_DOUBLE_ENCRYPTED = 8
    ULTRA_COOL_ACCESS = 9
    FLEXIBLE_REGULAR = 10
    FLEXIBLE_COOL_ACCESS = 11


# MiB/s of throughput included per TiB of billed capacity
INCLUDED_THROUGHPUT_PER_TIB: Dict[ServiceLevel, float] = {
    ServiceLevel.STANDARD: 16.0,
    ServiceLevel.PREMIUM: 64.0,
    ServiceLevel.ULTRA: 128.0,
}

INCLUDED_THROUGHPUT_PER_TIB_COOL: Dict[ServiceLevel, float] = {
    ServiceLevel.STANDARD: 16.0,
    ServiceLevel.PREMIUM: 36.0,
    ServiceLevel.ULTRA: 68.0,
}

FLEXIBLE_BASE_THROUGHPUT_MIBPS = 128.0

MIN_CAPACITY_GIB = 50.0
MIN_COOL_ACCESS_CAPACITY_GIB = 2400.0


@dataclass(frozen=True)
class PermutationConfig:
    """Immutable description of one pricing variant."""
    id: PermutationId
    name: str
    base_tier: ServiceLevel
    double_encryption: bool = False
    cool_access: bool = False

    @property
    def is_flexible(self) -> bool:
        return self.base_tier == ServiceLevel.FLEXIBLE

    @property
    def minimum_capacity_gib(self) -> float:
        return MIN_COOL_ACCESS_CAPACITY_GIB if self.cool_access else MIN_CAPACITY_GIB

    @property
    def throughput_per_tib(self) -> Optional[float]:
        """Included MiB/s per TiB, or None for the flat-base flexible tier."""
        if self.is_flexible:
            return None
        table = INCLUDED_THROUGHPUT_PER_TIB_COOL if self.cool_access else INCLUDED_THROUGHPUT_PER_TIB
        return table[self.base_tier]

    def included_throughput(self, capacity_gib: float) -> float:
        """Included throughput in MiB/s for a billed capacity."""
        per_tib = self.throughput_per_tib
        if per_tib is None:
            return FLEXIBLE_BASE_THROUGHPUT_MIBPS
        return (capacity_gib / 1024.0) * per_tib

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": int(self.id),
            "name": self.name,
            "base_tier": self.base_tier.value,
            "double_encryption": self.double_encryption,
            "cool_access": self.cool_access,
            "is_flexible": self.is_flexible,
            "minimum_capacity_gib": self.minimum_capacity_gib,
            "throughput_per_tib": self.throughput_per_tib,
        }


def _build_table() -> Dict[PermutationId, PermutationConfig]:
    table = {}
    for level, ids in (
        (ServiceLevel.STANDARD, (1, 2, 3)),
        (ServiceLevel.PREMIUM, (4, 5, 6)),
        (ServiceLevel.ULTRA, (7, 8, 9)),
    ):
        regular, double, cool = (PermutationId(i) for i in ids)
        table[regular] = PermutationConfig(regular, f"ANF {level.value} (Regular)", level)
        table[double] = PermutationConfig(
            double, f"ANF {level.value} with Double Encryption", level, double_encryption=True
        )
        table[cool] = PermutationConfig(
            cool, f"ANF {level.value} with Cool Access", level, cool_access=True
        )
    table[PermutationId.FLEXIBLE_REGULAR] = PermutationConfig(
        PermutationId.FLEXIBLE_REGULAR, "ANF Flexible (Regular)", ServiceLevel.FLEXIBLE
    )
    table[PermutationId.FLEXIBLE_COOL_ACCESS] = PermutationConfig(
        PermutationId.FLEXIBLE_COOL_ACCESS, "ANF Flexible with Cool Access", ServiceLevel.FLEXIBLE,
        cool_access=True
    )
    return table


PERMUTATIONS: Dict[PermutationId, PermutationConfig] = _build_table()


def get_permutation(permutation_id: int) -> PermutationConfig:
    """
    Look up a permutation by numeric id.

    Raises:
        PermutationError: If the id is not 1..11
    """
    try:
        return PERMUTATIONS[PermutationId(permutation_id)]
    except ValueError as error:
        raise PermutationError(f"Permutation {permutation_id} not supported") from error


def identify(service_level: str, cool_access: bool, double_encryption: bool) -> PermutationConfig:
    """
    Identify the permutation for a volume's pool configuration.

    Args:
        service_level: Pool service level ("Standard", "Premium", "Ultra", "Flexible")
        cool_access: Whether cool access is enabled on the volume
        double_encryption: Whether the pool uses double encryption

    Returns:
        Matching PermutationConfig

    Raises:
        PermutationError: For unknown levels or unsupported combinations
    """
    level = ServiceLevel.parse(service_level)
    if cool_access and double_encryption:
        raise PermutationError("Double encryption cannot be combined with Cool Access")
    if level == ServiceLevel.FLEXIBLE and double_encryption:
        raise PermutationError("Double encryption is not supported on the Flexible service level")

    for permutation in PERMUTATIONS.values():
        if (permutation.base_tier == level
                and permutation.cool_access == cool_access
                and permutation.double_encryption == double_encryption):
            return permutation
    raise PermutationError(
        f"No permutation for level={service_level}, cool={cool_access}, double={double_encryption}"
    )


def list_permutations() -> List[PermutationConfig]:
    return [PERMUTATIONS[pid] for pid in PermutationId]
