"""Marching Cubes iso-surface extraction with flat-shaded, unwelded triangles."""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..config import ISO_LEVEL
from ..errors import ShapeMismatch
from .tables import CORNER_OFFSETS, EDGE_CORNERS, EDGE_TABLE, TRI_TABLE

logger = logging.getLogger(__name__)

DEGENERATE_EPS = 1e-6
NORMAL_EPS = 1e-8


@dataclass
class Mesh:
    """Triangle soup: every three consecutive indices form one triangle.

    Attributes:
        positions: (N, 3) float32 vertex positions, volume center at origin
        normals: (N, 3) float32 face normals repeated per vertex
        uvs: (N, 2) float32 texture coordinates, or None when untextured
        indices: (N,) uint32 flat triangle list
    """
    positions: np.ndarray
    normals: np.ndarray
    indices: np.ndarray
    uvs: Optional[np.ndarray] = None

    @classmethod
    def empty(cls, with_uvs: bool = False) -> "Mesh":
        return cls(
            positions=np.zeros((0, 3), dtype=np.float32),
            normals=np.zeros((0, 3), dtype=np.float32),
            indices=np.zeros(0, dtype=np.uint32),
            uvs=np.zeros((0, 2), dtype=np.float32) if with_uvs else None,
        )

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0 or len(self.indices) == 0

    @property
    def bbox_min(self) -> np.ndarray:
        if self.is_empty:
            return np.zeros(3, dtype=np.float32)
        return self.positions.min(axis=0)

    @property
    def bbox_max(self) -> np.ndarray:
        if self.is_empty:
            return np.zeros(3, dtype=np.float32)
        return self.positions.max(axis=0)


def _cube_codes(volume: np.ndarray, iso: float) -> np.ndarray:
    z_count, height, width = volume.shape
    codes = np.zeros((z_count - 1, height - 1, width - 1), dtype=np.uint8)
    for bit, (dx, dy, dz) in enumerate(CORNER_OFFSETS):
        corner = volume[dz:dz + z_count - 1, dy:dy + height - 1, dx:dx + width - 1]
        codes |= (corner > iso).astype(np.uint8) * np.uint8(1 << bit)
    return codes


def extract_isosurface(
    volume: np.ndarray,
    iso: float = ISO_LEVEL,
    with_uvs: bool = False,
) -> Mesh:
    """Extract the ``value > iso`` boundary of a (z, h, w) scalar volume.

    Triangles are emitted cube by cube in (z, y, x) order without vertex
    sharing. Positions are (x, y, z) in voxel units, shifted so the volume's
    geometric center is the origin.

    Args:
        volume: 3D scalar field indexed [z, y, x]
        iso: Iso-value; a corner is inside when its value is greater
        with_uvs: Also compute (x, y) texture coordinates with v flipped

    Returns:
        Mesh, empty when no cube straddles the iso-value
    """
    volume = np.asarray(volume, dtype=np.float32)
    if volume.ndim != 3:
        raise ShapeMismatch(f"Expected a (z, h, w) volume, got shape {volume.shape}")
    z_count, height, width = volume.shape
    if min(z_count, height, width) < 2:
        return Mesh.empty(with_uvs)

    codes = _cube_codes(volume, iso)
    cz, cy, cx = np.nonzero(EDGE_TABLE[codes] != 0)
    if cz.size == 0:
        return Mesh.empty(with_uvs)

    cube_codes = codes[cz, cy, cx]
    values = np.stack(
        [volume[cz + dz, cy + dy, cx + dx] for dx, dy, dz in CORNER_OFFSETS],
        axis=1,
    ).astype(np.float64)

    # interpolated crossing point on each of the 12 edges: (n, 12, 3)
    v0 = values[:, EDGE_CORNERS[:, 0]]
    v1 = values[:, EDGE_CORNERS[:, 1]]
    delta = v1 - v0
    t = np.full(delta.shape, 0.5)
    np.divide(iso - v0, delta, out=t, where=np.abs(delta) >= DEGENERATE_EPS)

    center = np.array([(width - 1) * 0.5, (height - 1) * 0.5, (z_count - 1) * 0.5])
    base = np.stack([cx, cy, cz], axis=1).astype(np.float64) - center
    p0 = base[:, None, :] + CORNER_OFFSETS[EDGE_CORNERS[:, 0]]
    p1 = base[:, None, :] + CORNER_OFFSETS[EDGE_CORNERS[:, 1]]
    edge_points = p0 + t[..., None] * (p1 - p0)

    tri_edges = TRI_TABLE[cube_codes]
    rows, cols = np.nonzero(tri_edges != -1)
    positions = edge_points[rows, tri_edges[rows, cols]]

    normals = _face_normals(positions)
    uvs = _texture_coords(positions, width, height) if with_uvs else None

    mesh = Mesh(
        positions=positions.astype(np.float32),
        normals=normals.astype(np.float32),
        indices=np.arange(len(positions), dtype=np.uint32),
        uvs=uvs,
    )
    logger.debug(f"Extracted {mesh.triangle_count} triangles from {cz.size} active cubes")
    return mesh


def _face_normals(positions: np.ndarray) -> np.ndarray:
    tris = positions.reshape(-1, 3, 3)
    normals = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    normals = np.divide(normals, lengths, out=normals.copy(), where=lengths > NORMAL_EPS)
    return np.repeat(normals, 3, axis=0)


def _texture_coords(positions: np.ndarray, width: int, height: int) -> np.ndarray:
    cx = (width - 1) * 0.5
    cy = (height - 1) * 0.5
    u = (positions[:, 0] + cx) / (width - 1) if width > 1 else np.zeros(len(positions))
    v = (positions[:, 1] + cy) / (height - 1) if height > 1 else np.zeros(len(positions))
    return np.stack([u, 1.0 - v], axis=1).astype(np.float32)


def build_class_masks(
    annotation: np.ndarray,
    threshold: float = 0.0,
) -> Tuple[np.ndarray, np.ndarray]:
    """Split an annotation volume into (yellow, red) float masks.

    yellow: value > 1.0, red: threshold < value <= 1.0
    """
    yellow = (annotation > 1.0).astype(np.float32)
    red = ((annotation > threshold) & (annotation <= 1.0)).astype(np.float32)
    return yellow, red


def build_raw_threshold_mask(raw: np.ndarray) -> np.ndarray:
    """Binary mask of voxels above the volume's own (min + max) / 2."""
    if raw.size == 0:
        return np.zeros_like(raw, dtype=np.float32)
    threshold = (float(raw.min()) + float(raw.max())) * 0.5
    logger.info(f"Raw threshold mask at {threshold:.4f}")
    return (raw > threshold).astype(np.float32)
