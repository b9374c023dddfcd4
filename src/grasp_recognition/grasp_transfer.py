"""
Grasp Transfer Module

This module moves the stored grasps of a recognized grasp model into the
frame of the observed object and ranks them by their recorded success rate.
"""

from typing import List, Sequence, Tuple

import numpy as np

from .graspdb import Grasp, Pose, invert_transform


class GraspTransfer:
    """
    Transfers grasp poses from a model frame onto an observed object.

    The registration transform maps the model cloud onto the centered object
    cloud; grasps are re-expressed through its inverse and then shifted back
    to the object's observed centroid.
    """

    @staticmethod
    def transfer_pose(
        registration_transform: np.ndarray,
        object_centroid: np.ndarray,
        grasp_pose: Pose
    ) -> Pose:
        """
        Re-express a single model-frame pose in the object's frame.

        Args:
            registration_transform: 4x4 transform from registration
            object_centroid: [x, y, z] observed object centroid
            grasp_pose: Stored grasp pose

        Returns:
            New pose tagged with the grasp pose's frame id
        """
        result = invert_transform(registration_transform) @ grasp_pose.to_matrix()

        # Correct for the origin shift applied before registration
        result[:3, 3] += np.asarray(object_centroid, dtype=np.float64)

        return Pose.from_matrix(grasp_pose.frame_id, result)

    @staticmethod
    def transfer_grasps(
        registration_transform: np.ndarray,
        object_centroid: np.ndarray,
        candidate_grasps: Sequence[Grasp]
    ) -> List[Grasp]:
        """
        Transfer every candidate grasp into the object's frame.

        Args:
            registration_transform: 4x4 transform from registration
            object_centroid: [x, y, z] observed object centroid
            candidate_grasps: Grasps of the recognized model, in model frame

        Returns:
            New grasps in input order, with success statistics preserved
        """
        return [
            grasp.with_pose(
                GraspTransfer.transfer_pose(
                    registration_transform, object_centroid, grasp.grasp_pose
                )
            )
            for grasp in candidate_grasps
        ]

    @staticmethod
    def is_viable(grasp: Grasp) -> bool:
        """A grasp is kept if it has ever succeeded or was never attempted."""
        return grasp.success_rate > 0 or grasp.attempts == 0

    @staticmethod
    def rank_grasps(
        grasps: Sequence[Grasp],
        frame_id: str
    ) -> Tuple[List[Pose], List[float]]:
        """
        Order viable grasps by ascending success rate.

        Grasps that were attempted and never succeeded are dropped. Equal
        success rates keep their input order.

        Args:
            grasps: Transferred grasps
            frame_id: Frame of the observed point cloud, set on every output pose

        Returns:
            Tuple of (poses, success rates), parallel and in the same order
        """
        viable = [grasp for grasp in grasps if GraspTransfer.is_viable(grasp)]
        viable.sort(key=lambda grasp: grasp.success_rate)

        poses = [grasp.grasp_pose.with_frame(frame_id) for grasp in viable]
        success_rates = [float(grasp.success_rate) for grasp in viable]

        return poses, success_rates
