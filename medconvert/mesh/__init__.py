from .marching_cubes import Mesh, build_class_masks, build_raw_threshold_mask, extract_isosurface
from .texture import build_texture, encode_png, project_volume
from .glb import Primitive, build_glb, save_glb, write_glb

__all__ = [
    "Mesh",
    "extract_isosurface",
    "build_class_masks",
    "build_raw_threshold_mask",
    "build_texture",
    "encode_png",
    "project_volume",
    "Primitive",
    "build_glb",
    "write_glb",
    "save_glb",
]
