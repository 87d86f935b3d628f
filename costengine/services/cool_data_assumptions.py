"""
Cool data assumptions service.
Resolves cool/hot split assumptions through the volume -> job -> global override hierarchy.
"""
from typing import Callable, Dict, Optional, Tuple
from datetime import datetime, timedelta, timezone
import logging

from costengine.core.config import config
from costengine.domain.assumption_models import AssumptionSource, CoolDataAssumptions


logger = logging.getLogger(__name__)


class AssumptionStore:
    """In-memory store of explicit assumption records per level."""

    def __init__(self):
        self._global: Optional[CoolDataAssumptions] = None
        self._jobs: Dict[str, CoolDataAssumptions] = {}
        self._volumes: Dict[Tuple[str, str], CoolDataAssumptions] = {}

    async def get_global(self) -> Optional[CoolDataAssumptions]:
        return self._global

    async def put_global(self, assumptions: CoolDataAssumptions) -> None:
        self._global = assumptions

    async def get_job(self, job_id: str) -> Optional[CoolDataAssumptions]:
        return self._jobs.get(job_id)

    async def put_job(self, job_id: str, assumptions: CoolDataAssumptions) -> None:
        self._jobs[job_id] = assumptions

    async def delete_job(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    async def get_volume(self, job_id: str, volume_id: str) -> Optional[CoolDataAssumptions]:
        return self._volumes.get((job_id, volume_id))

    async def put_volume(self, job_id: str, volume_id: str, assumptions: CoolDataAssumptions) -> None:
        self._volumes[(job_id, volume_id)] = assumptions

    async def delete_volume(self, job_id: str, volume_id: str) -> bool:
        return self._volumes.pop((job_id, volume_id), None) is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CoolDataAssumptionsResolver:
    """
    Resolves which cool data assumptions apply to a volume.

    The first level holding an explicit record wins; values from different
    levels are never blended.
    """

    def __init__(
        self,
        store: Optional[AssumptionStore] = None,
        cache_ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store or AssumptionStore()
        self.cache_ttl = timedelta(seconds=cache_ttl_seconds or config.ASSUMPTIONS_CACHE_TTL_SECONDS)
        self._clock = clock or _utcnow
        self._global_cache: Optional[Tuple[CoolDataAssumptions, datetime]] = None

    async def get_global(self) -> CoolDataAssumptions:
        """Global assumptions, or the built-in defaults when none were saved."""
        now = self._clock()
        if self._global_cache is not None:
            cached, cached_at = self._global_cache
            if now - cached_at < self.cache_ttl:
                return cached

        assumptions = await self.store.get_global() or CoolDataAssumptions.global_defaults()
        self._global_cache = (assumptions, now)
        return assumptions

    async def set_global(self, assumptions: CoolDataAssumptions,
                         modified_by: Optional[str] = None) -> CoolDataAssumptions:
        """
        Save global assumptions.

        Raises:
            AssumptionValidationError: If a percentage is outside 0..100
        """
        saved = assumptions.ensure_valid().with_source(AssumptionSource.GLOBAL, modified_by)
        await self.store.put_global(saved)
        self._global_cache = None
        logger.info(
            f"Updated global cool data assumptions: {saved.cool_data_percentage}% cool, "
            f"{saved.cool_retrieval_percentage}% retrieval"
        )
        return saved

    async def set_job(self, job_id: str, assumptions: CoolDataAssumptions,
                      modified_by: Optional[str] = None) -> CoolDataAssumptions:
        saved = assumptions.ensure_valid().with_source(AssumptionSource.JOB, modified_by)
        await self.store.put_job(job_id, saved)
        logger.info(f"Set cool data assumptions for job {job_id}")
        return saved

    async def clear_job(self, job_id: str) -> bool:
        removed = await self.store.delete_job(job_id)
        if removed:
            logger.info(f"Cleared cool data assumptions for job {job_id}")
        return removed

    async def set_volume(self, job_id: str, volume_id: str, assumptions: CoolDataAssumptions,
                         modified_by: Optional[str] = None) -> CoolDataAssumptions:
        saved = assumptions.ensure_valid().with_source(AssumptionSource.VOLUME, modified_by)
        await self.store.put_volume(job_id, volume_id, saved)
        logger.info(f"Set cool data assumptions for volume {volume_id} in job {job_id}")
        return saved

    async def clear_volume(self, job_id: str, volume_id: str) -> bool:
        removed = await self.store.delete_volume(job_id, volume_id)
        if removed:
            logger.info(f"Cleared cool data assumptions for volume {volume_id} in job {job_id}")
        return removed

    async def resolve(self, job_id: Optional[str] = None, volume_id: Optional[str] = None) -> CoolDataAssumptions:
        """
        Resolve the assumptions for a volume.

        Args:
            job_id: Analysis job the volume belongs to
            volume_id: Volume identifier within the job

        Returns:
            Volume override, else job override, else global assumptions
        """
        if job_id and volume_id:
            volume = await self.store.get_volume(job_id, volume_id)
            if volume is not None:
                return volume
        if job_id:
            job = await self.store.get_job(job_id)
            if job is not None:
                return job
        return await self.get_global()
