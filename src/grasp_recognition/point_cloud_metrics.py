"""
Point Cloud Metrics Module

This module provides the point cloud operations the recognizer depends on:
outlier filtering, centering, average color, ICP registration, and the
registration quality metrics (overlap, color error, distance error).
"""

from abc import ABC, abstractmethod
from typing import Tuple

import numpy as np
import open3d as o3d


# Largest possible RGB distance on a 0-255 scale
MAX_COLOR_ERROR = 255.0 * np.sqrt(3.0)


class RegistrationBackend(ABC):
    """
    Interface to the point cloud operations used for recognition.

    Implementations must not modify their input clouds. Colors are reported
    on a 0-255 scale.
    """

    @abstractmethod
    def remove_outliers(self, point_cloud: o3d.geometry.PointCloud) -> o3d.geometry.PointCloud:
        ...

    @abstractmethod
    def translate_to_origin(
        self,
        point_cloud: o3d.geometry.PointCloud,
        centroid: np.ndarray
    ) -> o3d.geometry.PointCloud:
        ...

    @abstractmethod
    def average_color(self, point_cloud: o3d.geometry.PointCloud) -> Tuple[float, float, float]:
        ...

    @abstractmethod
    def align(
        self,
        source: o3d.geometry.PointCloud,
        target: o3d.geometry.PointCloud
    ) -> Tuple[np.ndarray, o3d.geometry.PointCloud]:
        """Align source onto target, returning (4x4 transform, aligned source)."""
        ...

    @abstractmethod
    def overlap_metric(
        self,
        base: o3d.geometry.PointCloud,
        target: o3d.geometry.PointCloud,
        color: bool = False
    ) -> float:
        ...

    @abstractmethod
    def distance_error_metric(
        self,
        base: o3d.geometry.PointCloud,
        target: o3d.geometry.PointCloud
    ) -> float:
        ...


class Open3DRegistration(RegistrationBackend):
    """
    Registration backend built on Open3D.

    Uses statistical outlier removal, point-to-point ICP, and KD-tree
    nearest neighbour queries for the quality metrics.
    """

    def __init__(
        self,
        outlier_nb_neighbors: int = 20,
        outlier_std_ratio: float = 2.0,
        max_correspondence_distance: float = 0.05,
        max_iterations: int = 50,
        overlap_distance: float = 0.005
    ):
        """
        Initialize the backend with configurable parameters.

        Args:
            outlier_nb_neighbors: Number of neighbors for outlier removal
            outlier_std_ratio: Standard deviation ratio for outlier removal
            max_correspondence_distance: ICP correspondence distance (m)
            max_iterations: Maximum ICP iterations
            overlap_distance: Distance under which two points coincide (m)
        """
        self.outlier_nb_neighbors = outlier_nb_neighbors
        self.outlier_std_ratio = outlier_std_ratio
        self.max_correspondence_distance = max_correspondence_distance
        self.max_iterations = max_iterations
        self.overlap_distance = overlap_distance

    def remove_outliers(self, point_cloud: o3d.geometry.PointCloud) -> o3d.geometry.PointCloud:
        """
        Remove statistical outliers from point cloud.

        Args:
            point_cloud: Input point cloud

        Returns:
            Filtered copy of the point cloud
        """
        if len(point_cloud.points) <= self.outlier_nb_neighbors:
            return o3d.geometry.PointCloud(point_cloud)

        filtered, _ = point_cloud.remove_statistical_outlier(
            nb_neighbors=self.outlier_nb_neighbors,
            std_ratio=self.outlier_std_ratio
        )
        return filtered

    def translate_to_origin(
        self,
        point_cloud: o3d.geometry.PointCloud,
        centroid: np.ndarray
    ) -> o3d.geometry.PointCloud:
        """
        Shift a point cloud so that the given centroid lands on the origin.

        Args:
            point_cloud: Input point cloud
            centroid: [x, y, z] point to move to the origin

        Returns:
            Translated copy of the point cloud
        """
        translated = o3d.geometry.PointCloud(point_cloud)
        translated.translate(-np.asarray(centroid, dtype=np.float64), relative=True)
        return translated

    def average_color(self, point_cloud: o3d.geometry.PointCloud) -> Tuple[float, float, float]:
        """
        Compute the mean color of a point cloud.

        Args:
            point_cloud: Input point cloud

        Returns:
            Tuple of (r, g, b) on a 0-255 scale; black if the cloud has no colors
        """
        if not point_cloud.has_colors() or len(point_cloud.colors) == 0:
            return 0.0, 0.0, 0.0

        mean = np.asarray(point_cloud.colors).mean(axis=0) * 255.0
        return float(mean[0]), float(mean[1]), float(mean[2])

    def align(
        self,
        source: o3d.geometry.PointCloud,
        target: o3d.geometry.PointCloud
    ) -> Tuple[np.ndarray, o3d.geometry.PointCloud]:
        """
        Register source onto target with point-to-point ICP.

        Args:
            source: Cloud to move (candidate model)
            target: Fixed cloud (observed object)

        Returns:
            Tuple of (4x4 transform mapping source into target, aligned source)
        """
        result = o3d.pipelines.registration.registration_icp(
            source, target, self.max_correspondence_distance, np.identity(4),
            o3d.pipelines.registration.TransformationEstimationPointToPoint(),
            o3d.pipelines.registration.ICPConvergenceCriteria(
                max_iteration=self.max_iterations
            )
        )
        transform = np.array(result.transformation, dtype=np.float64)

        aligned = o3d.geometry.PointCloud(source)
        aligned.transform(transform)
        return transform, aligned

    def overlap_metric(
        self,
        base: o3d.geometry.PointCloud,
        target: o3d.geometry.PointCloud,
        color: bool = False
    ) -> float:
        """
        Measure how much of target coincides with base.

        Args:
            base: Reference cloud
            target: Cloud whose points are matched against base
            color: Report the mean color error of coincident points instead
                   of the overlap fraction

        Returns:
            Overlap fraction in [0, 1], or mean RGB distance (0-255 scale)
            when color is set
        """
        if len(target.points) == 0 or len(base.points) == 0:
            return MAX_COLOR_ERROR if color else 0.0

        if not color:
            distances = np.asarray(target.compute_point_cloud_distance(base))
            return float(np.count_nonzero(distances < self.overlap_distance) / len(distances))

        kdtree = o3d.geometry.KDTreeFlann(base)
        base_colors = self._colors(base)
        target_colors = self._colors(target)
        target_points = np.asarray(target.points)

        matched = 0
        error = 0.0
        for i, point in enumerate(target_points):
            k, idx, dist2 = kdtree.search_knn_vector_3d(point, 1)
            if k > 0 and np.sqrt(dist2[0]) < self.overlap_distance:
                matched += 1
                error += float(np.linalg.norm(target_colors[i] - base_colors[idx[0]]))

        if matched == 0:
            return MAX_COLOR_ERROR
        return error / matched

    def distance_error_metric(
        self,
        base: o3d.geometry.PointCloud,
        target: o3d.geometry.PointCloud
    ) -> float:
        """
        Mean distance from each target point to its nearest base point.

        Args:
            base: Reference cloud
            target: Cloud whose points are matched against base

        Returns:
            Mean nearest-neighbour distance; infinity if either cloud is empty
        """
        if len(target.points) == 0 or len(base.points) == 0:
            return float('inf')

        distances = np.asarray(target.compute_point_cloud_distance(base))
        return float(distances.mean())

    @staticmethod
    def _colors(point_cloud: o3d.geometry.PointCloud) -> np.ndarray:
        if point_cloud.has_colors():
            return np.asarray(point_cloud.colors) * 255.0
        return np.zeros((len(point_cloud.points), 3))
