"""
Object Recognition Entry Point

Loads a segmented object point cloud and a grasp model library, runs
recognition, and prints the result as JSON.

Usage:
  python -m grasp_recognition.listener object.ply --library models/ [--frame-id camera]
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import open3d as o3d

from .logging_config import setup_logging
from .model_library import GraspModelLibrary
from .point_cloud_metrics import Open3DRegistration
from .recognizer import (
    DEFAULT_ALPHA,
    DEFAULT_COLOR_THRESHOLD,
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_OVERLAP_THRESHOLD,
    ObjectObservation,
    PointCloudRecognizer,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recognize a segmented object against a grasp model library"
    )
    parser.add_argument("object", help="Segmented object point cloud (PLY/PCD)")
    parser.add_argument("--library", "-l", required=True, help="Grasp model library directory")
    parser.add_argument("--centroid", type=float, nargs=3, metavar=("X", "Y", "Z"),
                        default=None, help="Object centroid (defaults to the point mean)")
    parser.add_argument("--frame-id", default="", help="Frame of the object point cloud")
    parser.add_argument("--alpha", type=float, default=DEFAULT_ALPHA)
    parser.add_argument("--color-threshold", type=float, default=DEFAULT_COLOR_THRESHOLD)
    parser.add_argument("--confidence-threshold", type=float, default=DEFAULT_CONFIDENCE_THRESHOLD)
    parser.add_argument("--overlap-threshold", type=float, default=DEFAULT_OVERLAP_THRESHOLD,
                        help="Minimum overlap fraction before a registration is scored")
    parser.add_argument("--overlap-distance", type=float, default=0.005,
                        help="Distance under which points coincide (m)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", default=None)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(getattr(logging, args.log_level), args.log_file)

    object_path = Path(args.object)
    if not object_path.exists():
        parser.error(f"object point cloud {object_path} not found")

    point_cloud = o3d.io.read_point_cloud(str(object_path))
    if args.centroid is not None:
        observation = ObjectObservation(point_cloud, args.centroid, args.frame_id)
    else:
        observation = ObjectObservation.from_point_cloud(point_cloud, args.frame_id)

    candidates = GraspModelLibrary(args.library).load_models()

    recognizer = PointCloudRecognizer(
        backend=Open3DRegistration(overlap_distance=args.overlap_distance),
        alpha=args.alpha,
        color_threshold=args.color_threshold,
        confidence_threshold=args.confidence_threshold,
        overlap_threshold=args.overlap_threshold
    )
    result = recognizer.recognize(observation, candidates)

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.recognized else 1


if __name__ == "__main__":
    sys.exit(main())
