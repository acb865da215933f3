"""A hierarchy of transforms with attached drawables, cameras and lights."""

from __future__ import annotations

import enum
import logging
import math
import os
import struct
from dataclasses import dataclass, field, replace
from typing import Any, BinaryIO, Callable, Optional

import numpy as np

from walkscene.chunk import read_bytes_chunk, read_chunk
from walkscene.quat import quat_identity, quat_inverse, quat_to_mat3

logger = logging.getLogger(__name__)

_NO_PARENT = 0xFFFFFFFF
_HIERARCHY = struct.Struct("<3I3f4f3f")
_MESH = struct.Struct("<3I")
_CAMERA = struct.Struct("<I4s3f")
_LIGHT = struct.Struct("<Ic3B3f")
_PI = 3.1415926


class SceneError(RuntimeError):
    """Raised when a scene file is malformed or a scene is inconsistent."""


def _pad(m: np.ndarray) -> np.ndarray:
    """Extend a 3x4 affine matrix to 4x4 with a (0, 0, 0, 1) row."""
    return np.vstack([m, [0.0, 0.0, 0.0, 1.0]])


@dataclass(eq=False)
class Transform:
    """Position, rotation (w, x, y, z) and scale, relative to an optional parent."""

    name: str = ""
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=quat_identity)
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    parent: Optional["Transform"] = None

    def __post_init__(self) -> None:
        self.position = np.array(self.position, dtype=float)
        self.rotation = np.array(self.rotation, dtype=float)
        self.scale = np.array(self.scale, dtype=float)

    def make_local_to_parent(self) -> np.ndarray:
        """Return the 3x4 matrix translate * rotate * scale."""
        rot = quat_to_mat3(self.rotation) * np.asarray(self.scale, dtype=float)
        return np.column_stack([rot, np.asarray(self.position, dtype=float)])

    def make_parent_to_local(self) -> np.ndarray:
        """Return the 3x4 inverse of :meth:`make_local_to_parent`.

        A zero scale component yields a degenerate matrix rather than NaNs.
        """
        inv_scale = np.array([0.0 if s == 0.0 else 1.0 / s for s in self.scale])
        inv_rot = quat_to_mat3(quat_inverse(self.rotation)) * inv_scale[:, None]
        return np.column_stack([inv_rot, inv_rot @ -np.asarray(self.position, dtype=float)])

    def make_local_to_world(self) -> np.ndarray:
        """Return the 3x4 matrix from this transform's space to world space."""
        if self.parent is None:
            return self.make_local_to_parent()
        return self.parent.make_local_to_world() @ _pad(self.make_local_to_parent())

    def make_world_to_local(self) -> np.ndarray:
        """Return the 3x4 matrix from world space to this transform's space."""
        if self.parent is None:
            return self.make_parent_to_local()
        return self.make_parent_to_local() @ _pad(self.parent.make_world_to_local())


@dataclass(eq=False)
class Drawable:
    """Attaches rendering data (an opaque pipeline description) to a transform."""

    transform: Transform
    pipeline: Any = None


@dataclass(eq=False)
class Camera:
    """A perspective camera looking along its transform's -z axis."""

    transform: Transform
    fovy: float = math.radians(60.0)
    aspect: float = 1.0
    near: float = 0.01

    def make_projection(self) -> np.ndarray:
        """Return the 4x4 infinite perspective projection matrix."""
        extent = math.tan(self.fovy / 2.0) * self.near
        proj = np.zeros((4, 4))
        proj[0, 0] = (2.0 * self.near) / (2.0 * extent * self.aspect)
        proj[1, 1] = (2.0 * self.near) / (2.0 * extent)
        proj[2, 2] = -1.0
        proj[3, 2] = -1.0
        proj[2, 3] = -2.0 * self.near
        return proj


class LightType(enum.Enum):
    POINT = "p"
    HEMISPHERE = "h"
    SPOT = "s"
    DIRECTIONAL = "d"


@dataclass(eq=False)
class Light:
    """A light; all but point lights shine along the transform's -z axis."""

    transform: Transform
    type: LightType = LightType.POINT
    energy: np.ndarray = field(default_factory=lambda: np.ones(3))
    spot_fov: float = math.radians(45.0)

    def __post_init__(self) -> None:
        self.energy = np.array(self.energy, dtype=float)


OnDrawable = Callable[["Scene", Transform, str], None]


class Scene:
    """Transforms plus the drawables, cameras and lights attached to them."""

    def __init__(self, filename: str | os.PathLike | None = None,
                 on_drawable: OnDrawable | None = None) -> None:
        self.transforms: list[Transform] = []
        self.drawables: list[Drawable] = []
        self.cameras: list[Camera] = []
        self.lights: list[Light] = []
        if filename is not None:
            self.load(filename, on_drawable)

    def load(self, filename: str | os.PathLike, on_drawable: OnDrawable | None = None) -> None:
        """Add the contents of a scene file to this scene.

        ``on_drawable(scene, transform, mesh_name)`` is called for every mesh
        entry so the caller can create drawables.
        """
        filename = os.fspath(filename)
        with open(filename, "rb") as stream:
            names = read_bytes_chunk(stream, "str0")
            hierarchy = read_chunk(stream, "xfh0", _HIERARCHY)
            meshes = read_chunk(stream, "msh0", _MESH)
            cameras = read_chunk(stream, "cam0", _CAMERA)
            lights = read_chunk(stream, "lmp0", _LIGHT)

            def name_at(begin: int, end: int, what: str) -> str:
                if not (begin <= end <= len(names)):
                    raise SceneError(
                        f"scene file '{filename}' contains {what} entry with invalid name indices"
                    )
                return names[begin:end].decode("utf-8", errors="replace")

            def transform_at(index: int, what: str) -> Transform:
                if index >= len(loaded):
                    raise SceneError(
                        f"scene file '{filename}' contains {what} entry with invalid "
                        f"transform index ({index})"
                    )
                return loaded[index]

            loaded: list[Transform] = []
            for parent, name_begin, name_end, *values in hierarchy:
                parent_transform = None
                if parent != _NO_PARENT:
                    if parent >= len(loaded):
                        raise SceneError(
                            f"scene file '{filename}' did not contain transforms in "
                            "topological-sort order."
                        )
                    parent_transform = loaded[parent]
                name = name_at(name_begin, name_end, "hierarchy")
                qx, qy, qz, qw = values[3:7]
                transform = Transform(
                    name=name,
                    position=values[0:3],
                    rotation=(qw, qx, qy, qz),
                    scale=values[7:10],
                    parent=parent_transform,
                )
                self.transforms.append(transform)
                loaded.append(transform)

            for index, name_begin, name_end in meshes:
                transform = transform_at(index, "mesh")
                name = name_at(name_begin, name_end, "mesh")
                if on_drawable is not None:
                    on_drawable(self, transform, name)

            for index, kind, fov, clip_near, _clip_far in cameras:
                transform = transform_at(index, "camera")
                kind_text = kind.decode("latin-1")
                if kind_text != "pers":
                    logger.info("Ignoring non-perspective camera (%s) stored in file.", kind_text)
                    continue
                # The far plane is unused: projections are infinite.
                self.cameras.append(
                    Camera(transform, fovy=fov / 180.0 * _PI, near=clip_near)
                )

            for index, kind, red, green, blue, energy, _distance, fov in lights:
                transform = transform_at(index, "lamp")
                kind_text = kind.decode("latin-1")
                try:
                    light_type = LightType(kind_text)
                except ValueError:
                    logger.info("Ignoring unrecognized lamp type (%s) stored in file.", kind_text)
                    continue
                self.lights.append(
                    Light(
                        transform,
                        type=light_type,
                        energy=np.array([red, green, blue], dtype=float) / 255.0 * energy,
                        spot_fov=fov / 180.0 * _PI,
                    )
                )

            self.load_extra(stream, names, loaded)

            if stream.peek(1):
                logger.warning("trailing data in scene file '%s'", filename)

    def load_extra(self, stream: BinaryIO, names: bytes, transforms: list[Transform]) -> None:
        """Hook for subclasses to read further chunks after the standard ones."""

    def set(self, other: "Scene") -> dict[Transform, Transform]:
        """Replace this scene's contents with a copy of ``other``.

        Returns the mapping from ``other``'s transforms to their copies.
        """
        source_transforms = list(other.transforms)
        source_drawables = list(other.drawables)
        source_cameras = list(other.cameras)
        source_lights = list(other.lights)

        mapping: dict[Transform, Transform] = {}
        copies = []
        for t in source_transforms:
            copy = Transform(
                name=t.name,
                position=np.array(t.position, dtype=float),
                rotation=np.array(t.rotation, dtype=float),
                scale=np.array(t.scale, dtype=float),
                parent=t.parent,
            )
            mapping[t] = copy
            copies.append(copy)

        def remap(t: Transform | None) -> Transform | None:
            if t is None:
                return None
            try:
                return mapping[t]
            except KeyError:
                raise SceneError("scene refers to a transform it does not contain") from None

        for copy in copies:
            copy.parent = remap(copy.parent)

        self.transforms = copies
        self.drawables = [
            Drawable(remap(d.transform), d.pipeline.copy() if hasattr(d.pipeline, "copy")
                     else d.pipeline)
            for d in source_drawables
        ]
        self.cameras = [replace(c, transform=remap(c.transform)) for c in source_cameras]
        self.lights = [
            replace(l, transform=remap(l.transform), energy=np.array(l.energy, dtype=float))
            for l in source_lights
        ]
        return mapping

    def copy(self) -> "Scene":
        """Return an independent copy with all references remapped."""
        result = type(self)()
        result.set(self)
        return result

    __copy__ = copy