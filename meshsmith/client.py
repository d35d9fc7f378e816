"""
Core meshsmith client API

Provides the MeshMerger class: a registry of models and decals plus the
bake -> merge -> atlas pipeline that turns them into one mesh with one material.
"""

import logging
import uuid
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Union

from meshsmith.converters.gltf import export_glb, import_glb
from meshsmith.converters.images import ImageSource, load_image
from meshsmith.decals.baker import bake_model_decals
from meshsmith.decals.store import DecalStore
from meshsmith.exceptions import AssetLoadError, ExportError, NotFoundError
from meshsmith.geometry.merger import SubstitutionKey, merge_geometries
from meshsmith.scene import DecalInstance, Geometry, MaterialRecord, MergeResult, MeshRecord, ModelAsset
from meshsmith.schema.options import (
    DecalBakeOptions,
    DecalOptions,
    MergeOptions,
    OptionsLike,
    Transform,
    resolve_merge_options,
)
from meshsmith.texturing.atlas import generate_atlas, remap_uvs

logger = logging.getLogger(__name__)

ModelSource = Union[bytes, str, Path, Sequence[MeshRecord]]
TransformLike = Union[Transform, dict, None]
Decoder = Callable[[bytes], List[MeshRecord]]
Encoder = Callable[[Geometry, MaterialRecord, bool], bytes]


class ProgressSink(Protocol):
    """Anything callable as sink(stage, fraction)."""

    def __call__(self, stage: str, fraction: float) -> None:
        ...


def _resolve_transform(transform: TransformLike) -> Transform:
    if transform is None:
        return Transform()
    if isinstance(transform, Transform):
        return transform
    return Transform.model_validate(transform)


class MeshMerger:
    """
    Merge many models (and their decals) into one mesh with one material.

    Examples:
        Basic usage:
        >>> merger = MeshMerger()
        >>> chair = merger.add_model("chair.glb")
        >>> table = merger.add_model("table.glb", transform={"position": (2, 0, 0)})
        >>> merger.merge({"atlasSize": 1024})
        >>> merger.save("room.glb")

        With a decal:
        >>> merger.add_decal(chair, "logo.png", {"uv": (0.5, 0.5), "opacity": 0.8})
        >>> result = merger.merge()
        >>> print(result.vertex_count)
    """

    def __init__(
        self,
        decoder: Decoder = import_glb,
        encoder: Encoder = export_glb,
        progress_callback: Optional[ProgressSink] = None
    ):
        """
        Initialize the merger.

        Args:
            decoder: Model decode service (bytes -> mesh records)
            encoder: Model encode service (geometry, material, generate_mipmaps -> bytes)
            progress_callback: Optional sink for (stage, fraction) updates
        """
        self._decoder = decoder
        self._encoder = encoder
        self._progress = progress_callback
        self._models: Dict[str, ModelAsset] = OrderedDict()
        self._decals = DecalStore(model_exists=lambda model_id: model_id in self._models)
        self._result: Optional[MergeResult] = None
        self._result_options: Optional[MergeOptions] = None

    def set_progress_callback(self, callback: Optional[ProgressSink]) -> None:
        """Replace the progress sink (None disables progress reporting)."""
        self._progress = callback

    def _report(self, stage: str, fraction: float) -> None:
        if self._progress is None:
            return
        try:
            self._progress(stage, fraction)
        except Exception as e:
            logger.warning(f"Progress callback failed at '{stage}' ({fraction:.2f}): {e}")

    def add_model(
        self,
        source: ModelSource,
        transform: TransformLike = None,
        name: Optional[str] = None
    ) -> str:
        """
        Register a model.

        Args:
            source: Encoded model bytes, a file path, or a list of MeshRecords
            transform: Transform (or dict with position/rotation/scale)
            name: Display name (defaults to the file stem or "model")

        Returns:
            New model id

        Raises:
            AssetLoadError: If the file cannot be read or decoded
        """
        transform = _resolve_transform(transform)
        self._report("Loading model", 0.0)

        if isinstance(source, (str, Path)):
            path = Path(source)
            name = name or path.stem
            try:
                data = path.read_bytes()
            except OSError as e:
                raise AssetLoadError(f"Failed to read model file {path}: {e}") from e
            meshes = self._decode(data, name)
        elif isinstance(source, (bytes, bytearray)):
            meshes = self._decode(bytes(source), name or "model")
        else:
            meshes = list(source)

        model_id = uuid.uuid4().hex
        model = ModelAsset(id=model_id, meshes=meshes, transform=transform, name=name or "model")
        self._models[model_id] = model

        self._report("Loading model", 1.0)
        logger.info(f"Added model '{model.name}' ({model_id}): {len(meshes)} meshes, {len(model.materials)} materials")
        return model_id

    def _decode(self, data: bytes, name: str) -> List[MeshRecord]:
        try:
            return list(self._decoder(data))
        except Exception as e:
            raise AssetLoadError(f"Failed to decode model '{name}': {e}") from e

    def get_model(self, model_id: str) -> ModelAsset:
        try:
            return self._models[model_id]
        except KeyError:
            raise NotFoundError(f"Model with id {model_id} not found") from None

    def list_models(self) -> List[ModelAsset]:
        """Registered models in registration (= merge) order."""
        return list(self._models.values())

    def update_transform(self, model_id: str, transform: TransformLike) -> Transform:
        """
        Update a model's transform.

        A Transform replaces the current one; a dict only replaces the
        components it names.
        """
        model = self.get_model(model_id)
        if isinstance(transform, Transform):
            model.transform = transform
        elif transform:
            model.transform = model.transform.updated(**transform)
        return model.transform

    def remove_model(self, model_id: str) -> None:
        """
        Unregister a model.

        Decals targeting it are kept; merge() skips them. Use
        remove_decals_for_model() to drop them explicitly.
        """
        self.get_model(model_id)
        del self._models[model_id]
        orphans = len(self._decals.list_for_model(model_id))
        if orphans:
            logger.warning(f"Removed model {model_id}; {orphans} decals still reference it")

    def add_decal(
        self,
        model_id: str,
        image: ImageSource,
        options: Union[DecalOptions, dict, None] = None
    ) -> str:
        """
        Place a decal on a model.

        Args:
            model_id: Target model id
            image: PNG/JPEG bytes, a file path or a Pillow image
            options: DecalOptions (or dict): position, rotation, scale, opacity, uv

        Returns:
            New decal id

        Raises:
            UnknownTargetError: If model_id is not registered
            ImageCodecError: If the image cannot be decoded
        """
        if options is not None and not isinstance(options, DecalOptions):
            options = DecalOptions.model_validate(options)
        source = str(image) if isinstance(image, (str, Path)) else "image"
        return self._decals.add(model_id, load_image(image), options, source=source)

    def get_decal(self, decal_id: str) -> DecalInstance:
        return self._decals.get(decal_id)

    def clone_decal(self, decal_id: str) -> str:
        """Duplicate a decal (same target, image and placement) under a new id."""
        return self._decals.clone(decal_id)

    def update_decal_transform(
        self,
        decal_id: str,
        position: Optional[Sequence[float]] = None,
        rotation: Optional[Sequence[float]] = None,
        scale: Optional[Sequence[float]] = None
    ) -> DecalInstance:
        return self._decals.update_transform(decal_id, position, rotation, scale)

    def update_decal_opacity(self, decal_id: str, opacity: float) -> DecalInstance:
        return self._decals.update_opacity(decal_id, opacity)

    def remove_decal(self, decal_id: str) -> None:
        self._decals.remove(decal_id)

    def remove_decals_for_model(self, model_id: str) -> int:
        return self._decals.remove_for_model(model_id)

    def list_decals(self, model_id: Optional[str] = None) -> List[DecalInstance]:
        """All decals, or only those targeting model_id, in insertion order."""
        if model_id is None:
            return self._decals.list()
        return self._decals.list_for_model(model_id)

    def _bake_decals(
        self,
        models: List[ModelAsset],
        options: DecalBakeOptions,
        max_workers: int
    ) -> Dict[SubstitutionKey, MaterialRecord]:
        """Bake every model's decals; returns (model id, source) -> baked material copies."""
        for decal in self._decals.list():
            if decal.target_model_id not in self._models:
                logger.warning(f"Decal {decal.id} targets missing model {decal.target_model_id}; skipping")

        jobs = [(model, self._decals.list_for_model(model.id)) for model in models]
        jobs = [(model, decals) for model, decals in jobs if decals]
        if not jobs:
            return {}

        def bake(job):
            model, decals = job
            return bake_model_decals(model, decals, options)

        if max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                baked = list(pool.map(bake, jobs))
        else:
            baked = [bake(job) for job in jobs]

        substitutions: Dict[SubstitutionKey, MaterialRecord] = {}
        for (model, _), result in zip(jobs, baked):
            for source, copy in result.items():
                substitutions[(model.id, source)] = copy
        return substitutions

    def merge(self, options: OptionsLike = None) -> MergeResult:
        """
        Bake decals, merge every model and build the texture atlas.

        Args:
            options: MergeOptions, a dict (snake_case or camelCase keys) or None

        Returns:
            MergeResult (also kept for export())

        Raises:
            NoGeometryError: If no model has any mesh
            InvalidAttributeError: If a mesh has no positions
            pydantic.ValidationError: If options are invalid
        """
        options = resolve_merge_options(options)
        models = self.list_models()
        logger.info(f"Merging {len(models)} models, {len(self._decals)} decals (atlas {options.atlas_size}px)")

        self._report("Baking decals", 0.0)
        substitutions = self._bake_decals(models, options.bake, options.max_workers)

        self._report("Merging geometries", 0.2)
        geometry, materials, mapping = merge_geometries(models, substitutions)

        self._report("Generating texture atlas", 0.5)
        atlas = generate_atlas(
            materials,
            options.atlas_size,
            atlas_mode=options.atlas_mode,
            quality=options.texture_quality,
            material_overrides=options.material_overrides,
            max_workers=options.max_workers,
        )

        self._report("Creating merged mesh", 0.8)
        merged_geometry = remap_uvs(geometry, materials, mapping, atlas.layout, options.atlas_size)

        result = MergeResult(
            geometry=merged_geometry,
            material=atlas.material,
            materials=materials,
            material_mapping=mapping,
            atlas=atlas,
        )
        self._result = result
        self._result_options = options

        self._report("Merge complete", 1.0)
        return result

    @property
    def result(self) -> Optional[MergeResult]:
        """Result of the last successful merge() (None before the first)."""
        return self._result

    def export(self) -> bytes:
        """
        Encode the last merge result.

        Raises:
            ExportError: If merge() has not run or the encoder fails
        """
        if self._result is None:
            raise ExportError("Nothing to export; call merge() first")

        self._report("Exporting", 0.0)
        try:
            data = self._encoder(
                self._result.geometry,
                self._result.material,
                self._result_options.generate_mipmaps,
            )
        except Exception as e:
            raise ExportError(f"Failed to encode merged model: {e}") from e

        self._report("Exporting", 1.0)
        return data

    def save(self, path: Union[str, Path]) -> Path:
        """Export the last merge result to a file."""
        path = Path(path)
        data = self.export()
        path.write_bytes(data)
        logger.info(f"Saved {len(data) / 1024:.0f} KB to {path}")
        return path

    def clear(self) -> None:
        """Drop every model, decal and the last merge result."""
        self._models.clear()
        self._decals.clear()
        self._result = None
        self._result_options = None
