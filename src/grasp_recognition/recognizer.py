"""
Point Cloud Recognizer Module

This module matches a segmented object's point cloud against a list of grasp
model candidates. The best registration decides the object's identity, and
the grasps stored with that model are transferred onto the object.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import open3d as o3d

from .graspdb import GraspModel, Pose
from .grasp_transfer import GraspTransfer
from .point_cloud_metrics import Open3DRegistration, RegistrationBackend

logger = logging.getLogger(__name__)


# Weight of the distance error against the color error
DEFAULT_ALPHA = 0.5
# Maximum per-channel average color difference (0-255 scale)
DEFAULT_COLOR_THRESHOLD = 50.0
# Maximum score for a match to be accepted
DEFAULT_CONFIDENCE_THRESHOLD = 0.4
# Minimum overlap fraction before a registration is scored
DEFAULT_OVERLAP_THRESHOLD = 0.75


@dataclass
class ObjectObservation:
    """A segmented object: its point cloud, centroid and cloud frame."""

    point_cloud: o3d.geometry.PointCloud
    centroid: np.ndarray = field(default_factory=lambda: np.zeros(3))
    frame_id: str = ""

    def __post_init__(self):
        self.centroid = np.asarray(self.centroid, dtype=np.float64).reshape(3)

    @classmethod
    def from_point_cloud(
        cls,
        point_cloud: o3d.geometry.PointCloud,
        frame_id: str = ""
    ) -> "ObjectObservation":
        """Build an observation whose centroid is the mean of its points."""
        if len(point_cloud.points) == 0:
            return cls(point_cloud, np.zeros(3), frame_id)
        return cls(point_cloud, np.asarray(point_cloud.points).mean(axis=0), frame_id)

    def is_empty(self) -> bool:
        return self.point_cloud is None or len(self.point_cloud.points) == 0


@dataclass
class RegistrationResult:
    """
    Outcome of registering one candidate onto the object.

    score is None when the overlap was too small for the registration to be
    scored.
    """

    transform: np.ndarray
    overlap: float
    distance_error: Optional[float] = None
    color_error: Optional[float] = None
    score: Optional[float] = None

    @property
    def valid(self) -> bool:
        return self.score is not None and self.score >= 0


@dataclass
class RecognitionResult:
    """Recognized identity and ranked grasps for an observed object."""

    recognized: bool = False
    name: str = ""
    model_id: Optional[int] = None
    confidence: Optional[float] = None
    orientation: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0])
    )
    grasps: List[Pose] = field(default_factory=list)
    success_rates: List[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'recognized': self.recognized,
            'name': self.name,
            'model_id': self.model_id,
            'confidence': self.confidence,
            'orientation': [float(v) for v in self.orientation],
            'grasps': [pose.to_dict() for pose in self.grasps],
            'success_rates': list(self.success_rates)
        }


class PointCloudRecognizer:
    """
    Recognizes segmented objects by registering them against grasp models.

    Candidates are first filtered by average color, then registered with the
    injected backend and scored; the lowest score wins if it is under the
    confidence threshold.
    """

    def __init__(
        self,
        backend: RegistrationBackend = None,
        alpha: float = DEFAULT_ALPHA,
        color_threshold: float = DEFAULT_COLOR_THRESHOLD,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD
    ):
        """
        Initialize the recognizer.

        Args:
            backend: Point cloud operations (uses Open3DRegistration if None)
            alpha: Weight of the distance error in the score, in (0, 1)
            color_threshold: Maximum per-channel average color difference
            confidence_threshold: Maximum accepted score
            overlap_threshold: Minimum overlap fraction for scoring
        """
        if not 0.0 < alpha < 1.0:
            raise ValueError(f"alpha must be in (0, 1), got {alpha}")

        self.backend = backend or Open3DRegistration()
        self.alpha = alpha
        self.color_threshold = color_threshold
        self.confidence_threshold = confidence_threshold
        self.overlap_threshold = overlap_threshold

    def color_matches(self, object_color: Sequence[float], candidate_color: Sequence[float]) -> bool:
        """Check that no channel differs by more than the color threshold."""
        return all(
            abs(o - c) <= self.color_threshold
            for o, c in zip(object_color, candidate_color)
        )

    def compute_score(self, distance_error: float, color_error: float) -> float:
        """Weighted registration score; lower is better."""
        return self.alpha * (3.0 * distance_error) + (1.0 - self.alpha) * (color_error / 100.0)

    def score_registration(
        self,
        candidate: o3d.geometry.PointCloud,
        object_cloud: o3d.geometry.PointCloud
    ) -> RegistrationResult:
        """
        Register a candidate cloud onto the object cloud and score it.

        Args:
            candidate: Candidate model point cloud
            object_cloud: Pre-processed object point cloud

        Returns:
            RegistrationResult; its score is None if the overlap gate failed
        """
        transform, aligned = self.backend.align(candidate, object_cloud)

        overlap = self.backend.overlap_metric(object_cloud, aligned)
        if overlap < self.overlap_threshold:
            return RegistrationResult(transform=transform, overlap=overlap)

        distance_error = self.backend.distance_error_metric(object_cloud, aligned)
        color_error = self.backend.overlap_metric(object_cloud, aligned, color=True)

        return RegistrationResult(
            transform=transform,
            overlap=overlap,
            distance_error=distance_error,
            color_error=color_error,
            score=self.compute_score(distance_error, color_error)
        )

    def recognize(
        self,
        observation: ObjectObservation,
        candidates: Sequence[GraspModel]
    ) -> RecognitionResult:
        """
        Recognize an observed object among the grasp model candidates.

        Args:
            observation: Segmented object to recognize (not modified)
            candidates: Grasp models to compare against

        Returns:
            RecognitionResult; recognized is False when there is no confident match
        """
        if not candidates:
            logger.warning("Candidate object list is empty. Nothing to compare segmented object to.")
            return RecognitionResult()
        if observation.is_empty():
            logger.warning("Segmented object point cloud is empty. Nothing to compare candidate objects to.")
            return RecognitionResult()

        # Pre-process the object cloud once
        object_cloud = self.backend.remove_outliers(observation.point_cloud)
        object_cloud = self.backend.translate_to_origin(object_cloud, observation.centroid)
        object_color = self.backend.average_color(object_cloud)

        best: Optional[RegistrationResult] = None
        best_candidate: Optional[GraspModel] = None

        for candidate in candidates:
            if not candidate.has_point_cloud():
                logger.debug("Skipping model %s: no point cloud", candidate.id)
                continue

            candidate_color = self.backend.average_color(candidate.point_cloud)
            if not self.color_matches(object_color, candidate_color):
                logger.debug(
                    "Skipping model %s: average color %s too far from %s",
                    candidate.id,
                    tuple(round(c, 1) for c in candidate_color),
                    tuple(round(c, 1) for c in object_color)
                )
                continue

            registration = self.score_registration(candidate.point_cloud, object_cloud)
            if not registration.valid:
                logger.debug(
                    "Model %s rejected: overlap %.3f below %.2f",
                    candidate.id, registration.overlap, self.overlap_threshold
                )
                continue

            logger.debug("Model %s scored %.4f", candidate.id, registration.score)
            if best is None or registration.score < best.score:
                best = registration
                best_candidate = candidate

        if best is None:
            logger.info("No candidate produced a valid registration")
            return RecognitionResult()

        if best.score > self.confidence_threshold:
            logger.info(
                "Best match %s (score %.4f) exceeds confidence threshold %.4f",
                best_candidate.object_name, best.score, self.confidence_threshold
            )
            return RecognitionResult()

        # Orientation is not inferred; it stays the identity
        result = RecognitionResult(
            recognized=True,
            name=best_candidate.object_name,
            model_id=best_candidate.id,
            confidence=best.score
        )

        transferred = GraspTransfer.transfer_grasps(
            best.transform, observation.centroid, best_candidate.grasps
        )
        result.grasps, result.success_rates = GraspTransfer.rank_grasps(
            transferred, observation.frame_id
        )

        logger.info(
            "Recognized %s (model %s, confidence %.4f) with %d grasps",
            result.name, result.model_id, result.confidence, len(result.grasps)
        )
        return result
