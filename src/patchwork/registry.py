"""Model registry for Patchwork proxy."""

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from .models import ModelInfo

logger = logging.getLogger(__name__)


class ModelRegistry:
    """
    Resolves model ids to their capabilities.

    Seeded from the ``models`` section of config.yaml and optionally refreshed
    from the backend's /models listing.
    """

    def __init__(self, models: Optional[Iterable[ModelInfo]] = None):
        self._models: Dict[str, ModelInfo] = {}
        for model in models or []:
            self._models[model.id] = model

    @classmethod
    def from_config(cls, entries: List[Dict[str, Any]]) -> "ModelRegistry":
        models = []
        for entry in entries or []:
            try:
                models.append(ModelInfo.model_validate(entry))
            except ValueError as e:
                logger.error(f"Skipping invalid model entry {entry!r}: {str(e)}")
        return cls(models)

    def get(self, model_id: Optional[str]) -> Optional[ModelInfo]:
        if not model_id:
            return None
        return self._models.get(model_id)

    def list(self) -> List[ModelInfo]:
        return list(self._models.values())

    async def refresh(
        self, base_url: str, headers: Dict[str, str], timeout: float
    ) -> None:
        """Merge the backend's /models listing into the registry."""
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"{base_url}/models", headers=headers, timeout=timeout
                )
            response.raise_for_status()
            listing = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch models from {base_url}: {str(e)}")
            return

        entries = listing.get("data") if isinstance(listing, dict) else None
        if not isinstance(entries, list):
            logger.error(f"Unexpected models listing from {base_url}: {type(listing).__name__}")
            return

        count = 0
        for entry in entries:
            try:
                model = ModelInfo.model_validate(entry)
            except ValueError:
                continue
            self._models[model.id] = model
            count += 1
        logger.info(f"Loaded {count} models from backend")

    def to_listing(self) -> Dict[str, Any]:
        return {
            "object": "list",
            "data": [m.model_dump(exclude_none=True) for m in self._models.values()],
        }
