"""Binary glTF 2.0 (GLB) serializer for one mesh with several primitives."""

import json
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..config import MATERIAL_METALLIC, MATERIAL_ROUGHNESS
from ..errors import EmptyMesh, IOFailure, TextureRequiredButMissing
from .marching_cubes import Mesh

logger = logging.getLogger(__name__)

GLB_MAGIC = 0x46546C67
GLB_VERSION = 2
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942

ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963
FLOAT = 5126
UNSIGNED_INT = 5125

GENERATOR = "medconvert"


@dataclass
class Primitive:
    """One mesh primitive and its material.

    Attributes:
        mesh: Triangle soup; must carry UVs when ``use_texture`` is set
        use_texture: Sample the shared PNG instead of ``base_color``
        base_color: RGBA factor used when untextured
        name: Label for logging only
    """
    mesh: Mesh
    use_texture: bool = False
    base_color: Tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)
    name: str = ""


def _pad4(n: int) -> int:
    return (n + 3) & ~3


class _BinaryBuffer:
    """Accumulates 4-byte aligned buffer views into the single BIN chunk."""

    def __init__(self):
        self.data = bytearray()
        self.buffer_views: List[Dict[str, Any]] = []

    def add(self, blob: bytes, target: Optional[int] = None) -> int:
        self.data.extend(b"\x00" * (_pad4(len(self.data)) - len(self.data)))
        view = {"buffer": 0, "byteOffset": len(self.data), "byteLength": len(blob)}
        if target is not None:
            view["target"] = target
        self.data.extend(blob)
        self.buffer_views.append(view)
        return len(self.buffer_views) - 1

    def padded(self) -> bytes:
        return bytes(self.data) + b"\x00" * (_pad4(len(self.data)) - len(self.data))


def _material(primitive: Primitive) -> Dict[str, Any]:
    pbr: Dict[str, Any] = {
        "metallicFactor": MATERIAL_METALLIC,
        "roughnessFactor": MATERIAL_ROUGHNESS,
    }
    if primitive.use_texture:
        pbr["baseColorTexture"] = {"index": 0}
    else:
        pbr["baseColorFactor"] = [float(c) for c in primitive.base_color]
    return {"pbrMetallicRoughness": pbr, "doubleSided": True}


def build_glb(primitives: Sequence[Primitive], png: Optional[bytes] = None) -> bytes:
    """Serialize primitives (and an optional PNG texture) into GLB bytes.

    Args:
        primitives: Non-empty meshes; primitive ``i`` uses material ``i``
        png: PNG bytes shared by every textured primitive

    Returns:
        12-byte header, JSON chunk (space padded), BIN chunk (zero padded)
    """
    if not primitives:
        raise EmptyMesh("No primitives to serialize")
    needs_texture = any(p.use_texture for p in primitives)
    if needs_texture and not png:
        raise TextureRequiredButMissing("Textured primitive requires PNG bytes")

    binary = _BinaryBuffer()
    accessors: List[Dict[str, Any]] = []
    gltf_primitives: List[Dict[str, Any]] = []
    materials: List[Dict[str, Any]] = []

    def add_accessor(view: int, component_type: int, count: int, kind: str, **extra) -> int:
        accessor = {
            "bufferView": view,
            "componentType": component_type,
            "count": count,
            "type": kind,
        }
        accessor.update(extra)
        accessors.append(accessor)
        return len(accessors) - 1

    for i, primitive in enumerate(primitives):
        mesh = primitive.mesh
        if mesh.is_empty:
            raise EmptyMesh(f"Primitive {i} ({primitive.name or 'unnamed'}) has no triangles")
        if primitive.use_texture and mesh.uvs is None:
            raise TextureRequiredButMissing(f"Textured primitive {i} has no UVs")

        positions = np.ascontiguousarray(mesh.positions, dtype="<f4")
        normals = np.ascontiguousarray(mesh.normals, dtype="<f4")
        indices = np.ascontiguousarray(mesh.indices, dtype="<u4")
        count = len(positions)

        attributes = {
            "POSITION": add_accessor(
                binary.add(positions.tobytes(), ARRAY_BUFFER), FLOAT, count, "VEC3",
                min=[float(v) for v in positions.min(axis=0)],
                max=[float(v) for v in positions.max(axis=0)],
            ),
            "NORMAL": add_accessor(binary.add(normals.tobytes(), ARRAY_BUFFER), FLOAT, count, "VEC3"),
        }
        if primitive.use_texture:
            uvs = np.ascontiguousarray(mesh.uvs, dtype="<f4")
            attributes["TEXCOORD_0"] = add_accessor(
                binary.add(uvs.tobytes(), ARRAY_BUFFER), FLOAT, count, "VEC2"
            )
        index_accessor = add_accessor(
            binary.add(indices.tobytes(), ELEMENT_ARRAY_BUFFER), UNSIGNED_INT, len(indices), "SCALAR"
        )

        gltf_primitives.append({"attributes": attributes, "indices": index_accessor, "material": i})
        materials.append(_material(primitive))

    gltf: Dict[str, Any] = {
        "asset": {"version": "2.0", "generator": GENERATOR},
        "scene": 0,
        "scenes": [{"nodes": [0]}],
        "nodes": [{"mesh": 0}],
        "meshes": [{"primitives": gltf_primitives}],
        "materials": materials,
    }
    if needs_texture:
        image_view = binary.add(png)
        gltf["textures"] = [{"source": 0}]
        gltf["images"] = [{"bufferView": image_view, "mimeType": "image/png"}]

    bin_chunk = binary.padded()
    gltf["buffers"] = [{"byteLength": len(bin_chunk)}]
    gltf["bufferViews"] = binary.buffer_views
    gltf["accessors"] = accessors

    json_chunk = json.dumps(gltf, separators=(",", ":")).encode("utf-8")
    json_chunk += b" " * (_pad4(len(json_chunk)) - len(json_chunk))

    total_length = 12 + 8 + len(json_chunk) + 8 + len(bin_chunk)
    glb = b"".join([
        struct.pack("<III", GLB_MAGIC, GLB_VERSION, total_length),
        struct.pack("<II", len(json_chunk), CHUNK_JSON),
        json_chunk,
        struct.pack("<II", len(bin_chunk), CHUNK_BIN),
        bin_chunk,
    ])
    logger.info(
        f"Built GLB: {len(primitives)} primitives, "
        f"{sum(p.mesh.triangle_count for p in primitives)} triangles, {total_length} bytes"
    )
    return glb


def write_glb(
    path: Union[str, Path],
    primitives: Sequence[Primitive],
    png: Optional[bytes] = None,
) -> Path:
    """Serialize and write a GLB file, creating parent directories."""
    return save_glb(path, build_glb(primitives, png))


def save_glb(path: Union[str, Path], glb: bytes) -> Path:
    """Write already serialized GLB bytes."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(glb)
    except OSError as e:
        raise IOFailure(f"Failed to write {path}: {e}") from e
    logger.info(f"Saved GLB to {path}")
    return path
