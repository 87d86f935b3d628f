"""
Domain models for cool data assumptions.
Used when a cool-access volume has no telemetry to split hot and cool capacity.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from costengine.core.config import config


class AssumptionValidationError(Exception):
    """Raised when assumption percentages are out of range."""
    pass


class AssumptionSource(Enum):
    """Level of the override hierarchy an assumption came from."""
    GLOBAL = "Global"
    JOB = "Job"
    VOLUME = "Volume"


@dataclass(frozen=True)
class CoolDataAssumptions:
    """Share of data assumed cool, and share of cool data retrieved per period."""
    cool_data_percentage: float = config.DEFAULT_COOL_DATA_PERCENTAGE
    cool_retrieval_percentage: float = config.DEFAULT_COOL_RETRIEVAL_PERCENTAGE
    source: AssumptionSource = AssumptionSource.GLOBAL
    last_modified_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_modified_by: Optional[str] = None

    def validate(self) -> List[str]:
        errors = []
        if not 0 <= self.cool_data_percentage <= 100:
            errors.append("Cool data percentage must be between 0 and 100")
        if not 0 <= self.cool_retrieval_percentage <= 100:
            errors.append("Retrieval percentage must be between 0 and 100")
        return errors

    def ensure_valid(self) -> "CoolDataAssumptions":
        errors = self.validate()
        if errors:
            raise AssumptionValidationError(f"Invalid assumptions: {', '.join(errors)}")
        return self

    def with_source(self, source: AssumptionSource, modified_by: Optional[str] = None) -> "CoolDataAssumptions":
        return replace(
            self,
            source=source,
            last_modified_at=datetime.now(timezone.utc),
            last_modified_by=modified_by or self.last_modified_by,
        )

    @classmethod
    def global_defaults(cls) -> "CoolDataAssumptions":
        return cls(source=AssumptionSource.GLOBAL, last_modified_by="System")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "cool_data_percentage": self.cool_data_percentage,
            "cool_retrieval_percentage": self.cool_retrieval_percentage,
            "source": self.source.value,
            "last_modified_at": self.last_modified_at.isoformat(),
            "last_modified_by": self.last_modified_by,
        }
