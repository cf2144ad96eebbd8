"""슬라이스 스택 → GLB 재구성 파이프라인."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .config import CLASS_COLORS, DEFAULT_OPTIONS, ISO_LEVEL, ReconstructionOptions
from .errors import EmptyMesh, MissingRequiredField
from .mesh import (
    Primitive,
    build_class_masks,
    build_glb,
    build_raw_threshold_mask,
    build_texture,
    extract_isosurface,
    save_glb,
)
from .slices import Volume, load_slice_stack

logger = logging.getLogger(__name__)


@dataclass
class ReconstructionResult:
    """재구성 결과 요약."""
    output_path: Path
    mode: str  # "annotated" | "raw_threshold"
    primitives: List[str] = field(default_factory=list)
    triangle_counts: List[int] = field(default_factory=list)
    textured: bool = False
    byte_length: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output_path": str(self.output_path),
            "mode": self.mode,
            "primitives": [
                {"name": name, "triangles": count}
                for name, count in zip(self.primitives, self.triangle_counts)
            ],
            "textured": self.textured,
            "byte_length": self.byte_length,
        }


class ReconstructionPipeline:
    """NPZ 슬라이스 디렉토리에서 GLB 메쉬 생성."""

    def __init__(
        self,
        input_dir: Union[str, Path],
        options: Optional[ReconstructionOptions] = None,
    ):
        self.input_dir = Path(input_dir)
        self.options = options or DEFAULT_OPTIONS
        self._volume: Optional[Volume] = None

    def load(self) -> Volume:
        if self._volume is None:
            self._volume = load_slice_stack(self.input_dir, self.options)
        return self._volume

    def _annotated_primitives(self, volume: Volume) -> List[Primitive]:
        yellow, red = build_class_masks(volume.annotation, self.options.annotation_threshold)

        primitives = []
        for name, mask in (("yellow", yellow), ("red", red)):
            mesh = extract_isosurface(mask, ISO_LEVEL)
            if mesh.is_empty:
                logger.warning(f"Class '{name}' produced no triangles, skipping")
                continue
            primitives.append(Primitive(mesh=mesh, base_color=CLASS_COLORS[name], name=name))

        if not primitives:
            raise EmptyMesh("Annotation masks are empty, nothing to reconstruct")
        return primitives

    def _raw_threshold_primitives(self, volume: Volume) -> Tuple[List[Primitive], bytes]:
        mask = build_raw_threshold_mask(volume.raw)
        mesh = extract_isosurface(mask, ISO_LEVEL, with_uvs=True)
        if mesh.is_empty:
            raise EmptyMesh("Raw threshold mask produced no triangles")
        png = build_texture(volume.raw)
        return [Primitive(mesh=mesh, use_texture=True, name="raw")], png

    def build_primitives(self) -> Tuple[List[Primitive], Optional[bytes]]:
        """모드에 따라 primitive 목록과 (텍스처 모드일 때) PNG 반환."""
        volume = self.load()
        if volume.has_annotation:
            return self._annotated_primitives(volume), None

        if not self.options.use_raw_threshold:
            raise MissingRequiredField(
                f"No annotation in {self.input_dir} and raw threshold mode is disabled"
            )
        return self._raw_threshold_primitives(volume)

    def run(self, output_path: Union[str, Path]) -> ReconstructionResult:
        primitives, png = self.build_primitives()
        glb = build_glb(primitives, png)

        output_path = save_glb(output_path, glb)

        result = ReconstructionResult(
            output_path=output_path,
            mode="raw_threshold" if png is not None else "annotated",
            primitives=[p.name for p in primitives],
            triangle_counts=[p.mesh.triangle_count for p in primitives],
            textured=png is not None,
            byte_length=len(glb),
        )
        logger.info(f"Reconstruction done ({result.mode}): {output_path}")
        return result


def convert_directory_to_glb(
    input_dir: Union[str, Path],
    output_path: Union[str, Path],
    options: Optional[ReconstructionOptions] = None,
) -> ReconstructionResult:
    """디렉토리 단위 재구성 편의 함수."""
    return ReconstructionPipeline(input_dir, options).run(output_path)
