"""Command-line entry: validate enrollment photos and match faces against a JSON store."""

from __future__ import annotations

import argparse
import json
import sys
import time

from pathlib import Path
from typing import Any, List, Optional

import cv2

from src.config import DEFAULT_DET_SIZE, DEFAULT_RECOGNITION_MODEL
from src.face.detector import DetectorConfig
from src.face.errors import FaceServiceError
from src.face.service import POLICIES, POLICY_RANKED, FaceService, ServiceConfig
from src.utils.draw import draw_validation
from src.utils.image import read_image
from src.utils.log import get_logger
from src.utils.serializer import serialize_matches, serialize_validation

logger = get_logger(__name__)


def load_store(path: str) -> List[Any]:
    """Read a reference store: a JSON array, or an object with a `descriptors` array."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("descriptors")
    if not isinstance(data, list) or not data:
        raise ValueError(f"{path}: expected a non-empty array of descriptors")
    return data


def load_descriptor(value: str) -> Any:
    """A descriptor given inline as JSON, or a path to a JSON file holding one."""
    if value.lstrip().startswith("["):
        return value
    p = Path(value)
    if p.is_file():
        return p.read_text(encoding="utf-8")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Face enrollment validation and descriptor matching")
    parser.add_argument("--model", default=DEFAULT_RECOGNITION_MODEL, help="InsightFace model pack (default buffalo_l)")
    parser.add_argument("--det-size", type=int, default=DEFAULT_DET_SIZE, help="InsightFace det_size (default 640)")
    parser.add_argument(
        "--device",
        type=str,
        default="auto",
        choices=["auto", "cpu", "gpu"],
        help="compute device: auto/cpu/gpu (auto uses the GPU when CUDA is available)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_val = sub.add_parser("validate", help="check whether a photo is usable for enrollment")
    p_val.add_argument("image", help="input image path")
    p_val.add_argument("--output", "-o", default=None, help="write an annotated feedback image")
    p_val.add_argument("--frame-width", type=float, default=None, help="capture frame width (default: image width)")
    p_val.add_argument("--frame-height", type=float, default=None, help="capture frame height (default: image height)")

    for name, target, help_text in (
        ("recognize", "image", "input image path"),
        ("recognize-descriptor", "descriptor", "query descriptor: inline JSON array or JSON file"),
    ):
        p = sub.add_parser(name, help=f"match a {target} against a reference store")
        p.add_argument(target, help=help_text)
        p.add_argument("--store", "-s", required=True, help="JSON file with the reference descriptors")
        p.add_argument("--threshold", "-t", type=float, default=None, help="override the policy default threshold")
        p.add_argument("--policy", "-p", choices=list(POLICIES), default=POLICY_RANKED, help="matching policy")

    return parser


def main(argv: Optional[List[str]] = None, service: Optional[FaceService] = None) -> int:
    args = build_parser().parse_args(argv)

    if service is None and args.command != "recognize-descriptor":
        config = ServiceConfig(
            detector=DetectorConfig(recognition_model=args.model, det_size=int(args.det_size), device=args.device)
        )
        service = FaceService.create(config)

    try:
        if args.command == "validate":
            image = read_image(args.image)
            result = service.validate(image, args.frame_width, args.frame_height)
            payload = serialize_validation(result)
            if args.output:
                cv2.imwrite(args.output, draw_validation(image, result))
                logger.info(f"Annotated image saved to: {args.output}")
        elif args.command == "recognize":
            image = read_image(args.image)
            matches = service.recognize(image, load_store(args.store), args.threshold, args.policy)
            payload = serialize_matches(matches, args.threshold)
        else:
            # Descriptor matching needs no model
            matcher_service = service or FaceService()
            matches = matcher_service.recognize_descriptor(
                load_descriptor(args.descriptor), load_store(args.store), args.threshold, args.policy
            )
            payload = serialize_matches(matches, args.threshold)
    except (FaceServiceError, ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(json.dumps({"error": str(e)}, ensure_ascii=False))
        return 1

    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    st = time.time()
    code = main()
    logger.info(f"Elapsed: {time.time() - st:.2f} s")
    sys.exit(code)
