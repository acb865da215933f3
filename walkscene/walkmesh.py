"""Walkable triangle meshes, with positions stored as barycentric points."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from typing import NamedTuple, Sequence

import numpy as np

from walkscene.chunk import read_bytes_chunk, read_chunk
from walkscene.quat import quat_identity, rotation_between

logger = logging.getLogger(__name__)

_NO_INDEX = 0xFFFFFFFF


def _nan_weights() -> np.ndarray:
    return np.full(3, np.nan)


@dataclass
class WalkPoint:
    """A point on a walk mesh: a triangle's vertex indices and barycentric weights.

    By convention a point on an edge has its indices arranged so that the
    third weight is zero.
    """

    indices: tuple[int, int, int] = (_NO_INDEX, _NO_INDEX, _NO_INDEX)
    weights: np.ndarray = field(default_factory=_nan_weights)

    def __post_init__(self) -> None:
        self.indices = tuple(int(i) for i in self.indices)
        self.weights = np.array(self.weights, dtype=float)


class EdgeCrossing(NamedTuple):
    """Result of :meth:`WalkMesh.cross_edge`."""

    end: WalkPoint
    rotation: np.ndarray
    crossed: bool


def _normalize(v: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        return v / np.linalg.norm(v)


def barycentric_weights(a, b, c, pt) -> np.ndarray:
    """Project ``pt`` onto the plane of triangle (a, b, c); return its barycentric weights."""
    a = np.asarray(a, dtype=float)
    v0 = np.asarray(b, dtype=float) - a
    v1 = np.asarray(c, dtype=float) - a
    v2 = np.asarray(pt, dtype=float) - a
    d00 = np.dot(v0, v0)
    d01 = np.dot(v0, v1)
    d11 = np.dot(v1, v1)
    d20 = np.dot(v2, v0)
    d21 = np.dot(v2, v1)
    denom = d00 * d11 - d01 * d01
    with np.errstate(divide="ignore", invalid="ignore"):
        v = (d11 * d20 - d01 * d21) / denom
        w = (d00 * d21 - d01 * d20) / denom
    return np.array([1.0 - v - w, v, w], dtype=float)


class WalkMesh:
    """Vertices, per-vertex normals and counter-clockwise triangles to walk on."""

    def __init__(self, vertices, normals, triangles) -> None:
        self.vertices = np.array(vertices, dtype=float).reshape(-1, 3)
        self.normals = np.array(normals, dtype=float).reshape(-1, 3)
        self.triangles: list[tuple[int, int, int]] = [
            tuple(int(i) for i in tri) for tri in triangles
        ]

        # Maps each directed edge (a, b) to the third vertex of its triangle.
        self.next_vertex: dict[tuple[int, int], int] = {}
        for x, y, z in self.triangles:
            for edge, opposite in (((x, y), z), ((y, z), x), ((z, x), y)):
                if edge in self.next_vertex:
                    raise ValueError(f"walk mesh edge {edge} appears in more than one triangle")
                self.next_vertex[edge] = opposite

        for tri in self.triangles:
            a, b, c = self.vertices[list(tri)]
            out = _normalize(np.cross(b - a, c - a))
            if not all(np.dot(out, self.normals[i]) > 0.0 for i in tri):
                raise ValueError(
                    f"vertex normals of triangle {tri} disagree with its geometric normal"
                )

    def _corners(self, indices: Sequence[int]) -> np.ndarray:
        return self.vertices[list(indices)]

    def nearest_walk_point(self, world_point) -> WalkPoint:
        """Return the point on the mesh closest to ``world_point``."""
        if not self.triangles:
            raise ValueError("Cannot start on an empty walkmesh")
        world_point = np.asarray(world_point, dtype=float)

        closest = WalkPoint()
        closest_dis2 = math.inf
        for indices, weights in self._nearest_candidates(world_point):
            offset = world_point - self.to_world_point(WalkPoint(indices, weights))
            dis2 = float(np.dot(offset, offset))
            if dis2 < closest_dis2:
                closest_dis2 = dis2
                closest = WalkPoint(indices, weights)
        return closest

    def _nearest_candidates(self, world_point: np.ndarray):
        """Yield, per triangle, the projected interior point or the nearest edge points."""
        for tri in self.triangles:
            a, b, c = self._corners(tri)
            coords = barycentric_weights(a, b, c, world_point)
            if np.all(coords >= 0.0):
                yield tri, coords
                continue
            x, y, z = tri
            for ai, bi, ci in ((x, y, z), (y, z, x), (z, x, y)):
                pa = self.vertices[ai]
                pb = self.vertices[bi]
                along = float(np.dot(world_point - pa, pb - pa))
                limit = float(np.dot(pb - pa, pb - pa))
                if along < 0.0:
                    weights = np.array([1.0, 0.0, 0.0])
                elif along > limit:
                    weights = np.array([0.0, 1.0, 0.0])
                else:
                    amt = along / limit
                    weights = np.array([1.0 - amt, amt, 0.0])
                yield (ai, bi, ci), weights

    def walk_in_triangle(self, start: WalkPoint, step) -> tuple[WalkPoint, float]:
        """Step from ``start`` within its triangle, stopping at the first edge reached.

        Returns the end point and the fraction of the step taken (1.0 if the
        whole step stays inside). An end point on an edge has weight z == 0.
        """
        a, b, c = self._corners(start.indices)
        dest = self.to_world_point(start) + np.asarray(step, dtype=float)
        dest_bary = barycentric_weights(a, b, c, dest)

        min_time = math.inf
        min_coord = None
        for coord, (dest_w, start_w) in enumerate(zip(dest_bary, start.weights)):
            if dest_w > 0.0:
                continue
            denom = dest_w - start_w
            if denom == 0.0:
                continue
            t = -start_w / denom
            if t < min_time:
                min_time = float(t)
                min_coord = coord

        time = min(1.0, min_time)
        if not time > 0.0:
            raise ValueError("step leaves the triangle immediately; cross the edge first")
        weights = start.weights + time * (dest_bary - start.weights)

        i0, i1, i2 = start.indices
        if min_coord == 0:
            end = WalkPoint((i1, i2, i0), (weights[1], weights[2], 0.0))
        elif min_coord == 1:
            end = WalkPoint((i2, i0, i1), (weights[2], weights[0], 0.0))
        elif min_coord == 2:
            end = WalkPoint(start.indices, (weights[0], weights[1], 0.0))
        else:
            end = WalkPoint(start.indices, weights)
        return end, time

    def cross_edge(self, start: WalkPoint) -> EdgeCrossing:
        """Move a point on edge (x, y) of its triangle onto the neighbouring triangle.

        Across an internal edge the result holds the same world point on the
        triangle (y, x, other), and the rotation taking the old triangle's
        normal to the new one's. On a boundary edge the point is unchanged,
        the rotation is the identity and ``crossed`` is false.
        """
        if start.weights[2] != 0.0:
            raise ValueError("walk point must lie on an edge (weights.z == 0)")

        x, y, _ = start.indices
        other = self.next_vertex.get((y, x))
        if other is None:
            return EdgeCrossing(
                WalkPoint(start.indices, start.weights), quat_identity(), False
            )

        twin = (y, x, other)
        a, b, c = self._corners(twin)
        end = WalkPoint(twin, barycentric_weights(a, b, c, self.to_world_point(start)))
        new_norm = _normalize(np.cross(b - a, c - a))
        a0, b0, c0 = self._corners(start.indices)
        old_norm = _normalize(np.cross(b0 - a0, c0 - a0))
        return EdgeCrossing(end, rotation_between(old_norm, new_norm), True)

    def to_world_point(self, wp: WalkPoint) -> np.ndarray:
        """Return the world position of ``wp``."""
        return np.asarray(wp.weights, dtype=float) @ self._corners(wp.indices)

    def to_world_smooth_normal(self, wp: WalkPoint) -> np.ndarray:
        """Return the normalized blend of vertex normals at ``wp``."""
        blended = np.asarray(wp.weights, dtype=float) @ self.normals[list(wp.indices)]
        return _normalize(blended)

    def to_world_triangle_normal(self, wp: WalkPoint) -> np.ndarray:
        """Return the geometric normal of the triangle ``wp`` lies on."""
        a, b, c = self._corners(wp.indices)
        return _normalize(np.cross(b - a, c - a))


class WalkMeshes:
    """A collection of named walk meshes loaded from one file."""

    def __init__(self, filename: str | os.PathLike) -> None:
        filename = os.fspath(filename)
        with open(filename, "rb") as stream:
            vertices = read_chunk(stream, "p...", "3f")
            normals = read_chunk(stream, "n...", "3f")
            triangles = read_chunk(stream, "tri0", "3I")
            names = read_bytes_chunk(stream, "str0")
            index = read_chunk(stream, "idxA", "6I")
            if stream.peek(1):
                logger.warning("trailing data in walkmesh file '%s'", filename)

        if len(vertices) != len(normals):
            raise ValueError(f"Mis-matched position and normal sizes in '{filename}'")

        self.meshes: dict[str, WalkMesh] = {}
        for name_begin, name_end, v_begin, v_end, t_begin, t_end in index:
            if not (name_begin <= name_end <= len(names)):
                raise ValueError(f"Invalid name indices in index of '{filename}'")
            if not (v_begin <= v_end <= len(vertices)):
                raise ValueError(f"Invalid vertex indices in index of '{filename}'")
            if not (t_begin <= t_end <= len(triangles)):
                raise ValueError(f"Invalid triangle indices in index of '{filename}'")

            remapped = []
            for tri in triangles[t_begin:t_end]:
                if not all(v_begin <= i < v_end for i in tri):
                    raise ValueError(f"Invalid triangle in '{filename}'")
                remapped.append(tuple(i - v_begin for i in tri))

            name = names[name_begin:name_end].decode("utf-8", errors="replace")
            if name in self.meshes:
                raise ValueError(f"WalkMesh with duplicated name '{name}' in '{filename}'")
            self.meshes[name] = WalkMesh(
                vertices[v_begin:v_end], normals[v_begin:v_end], remapped
            )

    def lookup(self, name: str) -> WalkMesh:
        """Return the walk mesh called ``name``."""
        try:
            return self.meshes[name]
        except KeyError:
            raise KeyError(f"WalkMesh with name '{name}' not found.") from None