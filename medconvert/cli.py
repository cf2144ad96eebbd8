import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import LOG_LEVEL, NO_CROP, ReconstructionOptions
from .errors import MedConvertError
from .pipeline import convert_directory_to_glb
from .transcode import TARGETS, convert_directory

logger = logging.getLogger("medconvert")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="medconvert", description="Medical volume transcoding and GLB reconstruction")
    subparsers = parser.add_subparsers(dest="command", required=True)

    glb = subparsers.add_parser("glb", help="Reconstruct a GLB mesh from a directory of .npz slices")
    glb.add_argument("input_dir", type=Path, help="Directory of .npz slice archives.")
    glb.add_argument("output", type=Path, help="Output .glb path.")
    glb.add_argument("--raw-key", default=None, help="Archive key of the raw intensity array.")
    glb.add_argument("--ann-key", default=None, help="Archive key of the annotation array.")
    glb.add_argument("--ann-threshold", type=float, default=0.0, help="Lower bound of the red class.")
    glb.add_argument("--no-raw-threshold", action="store_true", help="Fail instead of thresholding raw data when no annotation exists.")

    convert = subparsers.add_parser("convert", help="Convert a directory between .npz and DICOM/NIfTI")
    convert.add_argument("src_dir", type=Path, help="Input directory.")
    convert.add_argument("dst_dir", type=Path, help="Output directory.")
    convert.add_argument("--to", dest="target", choices=TARGETS, required=True)
    convert.add_argument("--crop", type=int, nargs=4, metavar=("XL", "XR", "YL", "YR"), default=list(NO_CROP))

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        if args.command == "glb":
            options = ReconstructionOptions(
                raw_key=args.raw_key,
                annotation_key=args.ann_key,
                annotation_threshold=args.ann_threshold,
                use_raw_threshold=not args.no_raw_threshold,
            )
            result = convert_directory_to_glb(args.input_dir, args.output, options)
            for name, count in zip(result.primitives, result.triangle_counts):
                print(f"{name}: {count} triangles")
            print(f"Saved: {result.output_path} ({result.byte_length} bytes)")
        else:
            written = convert_directory(args.src_dir, args.dst_dir, args.target, args.crop)
            print(f"Converted {len(written)} files -> {args.dst_dir}")
    except MedConvertError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
