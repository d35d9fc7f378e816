"""
Decal store: id -> DecalInstance.

Decals reference their target model by id only. The store checks the id at
creation time through a caller-supplied predicate; it does not track model
removal afterwards (callers cascade with remove_for_model()).
"""

import logging
import uuid
from typing import Callable, Dict, List, Optional, Sequence

from PIL import Image

from meshsmith.exceptions import NotFoundError, UnknownTargetError
from meshsmith.scene import DecalInstance
from meshsmith.schema.options import DecalOptions

logger = logging.getLogger(__name__)

DEFAULT_POSITION = (0.0, 0.0, 0.0)
DEFAULT_ROTATION = (0.0, 0.0, 0.0)
DEFAULT_SCALE = (1.0, 1.0, 1.0)
DEFAULT_OPACITY = 1.0


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _vec3(value: Sequence[float]) -> tuple:
    return tuple(float(c) for c in value)


class DecalStore:
    """
    CRUD store for decals.

    Example:
        >>> store = DecalStore(model_exists=lambda mid: mid in models)
        >>> decal_id = store.add(model_id, image, DecalOptions(uv=(0.5, 0.5)))
        >>> store.update_opacity(decal_id, 0.5)
    """

    def __init__(self, model_exists: Callable[[str], bool]):
        self._model_exists = model_exists
        self._decals: Dict[str, DecalInstance] = {}

    def add(
        self,
        target_model_id: str,
        image: Optional[Image.Image],
        options: Optional[DecalOptions] = None,
        source: str = "image"
    ) -> str:
        """
        Register a decal against an existing model.

        Raises:
            UnknownTargetError: If target_model_id is not a registered model
        """
        if not self._model_exists(target_model_id):
            raise UnknownTargetError(f"Model with id {target_model_id} not found")

        options = options or DecalOptions()
        decal_id = uuid.uuid4().hex
        decal = DecalInstance(
            id=decal_id,
            target_model_id=target_model_id,
            image=image,
            position=_vec3(options.position or DEFAULT_POSITION),
            rotation=_vec3(options.rotation or DEFAULT_ROTATION),
            scale=_vec3(options.scale or DEFAULT_SCALE),
            opacity=clamp(options.opacity if options.opacity is not None else DEFAULT_OPACITY),
            uv=tuple(options.uv) if options.uv is not None else None,
            source=source,
        )
        self._decals[decal_id] = decal
        logger.debug(f"Added decal {decal_id} on model {target_model_id}")
        return decal_id

    def get(self, decal_id: str) -> DecalInstance:
        try:
            return self._decals[decal_id]
        except KeyError:
            raise NotFoundError(f"Decal with id {decal_id} not found") from None

    def update_transform(
        self,
        decal_id: str,
        position: Optional[Sequence[float]] = None,
        rotation: Optional[Sequence[float]] = None,
        scale: Optional[Sequence[float]] = None
    ) -> DecalInstance:
        """Replace the given transform components; the others are kept."""
        decal = self.get(decal_id)
        changes = {}
        if position is not None:
            changes['position'] = _vec3(position)
        if rotation is not None:
            changes['rotation'] = _vec3(rotation)
        if scale is not None:
            changes['scale'] = _vec3(scale)
        updated = decal.copy(**changes)
        self._decals[decal_id] = updated
        return updated

    def update_opacity(self, decal_id: str, opacity: float) -> DecalInstance:
        """Set opacity, silently clamped to [0, 1]."""
        updated = self.get(decal_id).copy(opacity=clamp(float(opacity)))
        self._decals[decal_id] = updated
        return updated

    def remove(self, decal_id: str) -> None:
        if decal_id not in self._decals:
            raise NotFoundError(f"Decal with id {decal_id} not found")
        del self._decals[decal_id]

    def list(self) -> List[DecalInstance]:
        """All decals in insertion order."""
        return list(self._decals.values())

    def list_for_model(self, model_id: str) -> List[DecalInstance]:
        """Decals targeting model_id, in insertion order (empty list if none)."""
        return [d for d in self._decals.values() if d.target_model_id == model_id]

    def remove_for_model(self, model_id: str) -> int:
        """Remove every decal targeting model_id. Returns how many were removed."""
        doomed = [d.id for d in self.list_for_model(model_id)]
        for decal_id in doomed:
            del self._decals[decal_id]
        return len(doomed)

    def clone(self, decal_id: str) -> str:
        """Duplicate a decal under a new id."""
        new_id = uuid.uuid4().hex
        self._decals[new_id] = self.get(decal_id).copy(id=new_id)
        return new_id

    def clear(self) -> None:
        self._decals.clear()

    def __len__(self) -> int:
        return len(self._decals)

    def __contains__(self, decal_id: str) -> bool:
        return decal_id in self._decals
