"""
Grasp Database Types Module

This module defines the grasp model records consumed by the recognizer:
poses, grasps, grasp models, and the serialized grasp demonstration record
used at the storage boundary.
"""

import base64
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np
import open3d as o3d


# x y z r g b, little-endian float32
POINT_RECORD_DTYPE = np.dtype('<f4')
POINT_RECORD_FIELDS = 6
POINT_RECORD_SIZE = POINT_RECORD_DTYPE.itemsize * POINT_RECORD_FIELDS


def quaternion_to_rotation_matrix(q: np.ndarray) -> np.ndarray:
    """
    Convert a quaternion (x, y, z, w) to a 3x3 rotation matrix.

    Args:
        q: Quaternion as [x, y, z, w]; normalized before conversion

    Returns:
        3x3 rotation matrix
    """
    q = np.asarray(q, dtype=np.float64)
    norm = np.linalg.norm(q)
    if norm < 1e-12:
        raise ValueError("Quaternion has zero length")
    x, y, z, w = q / norm

    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
        [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
        [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)]
    ], dtype=np.float64)


def rotation_matrix_to_quaternion(R: np.ndarray) -> np.ndarray:
    """
    Convert a 3x3 rotation matrix to a quaternion (x, y, z, w).

    Args:
        R: 3x3 rotation matrix

    Returns:
        Unit quaternion as [x, y, z, w] with w >= 0
    """
    trace = R[0, 0] + R[1, 1] + R[2, 2]

    if trace > 0:
        s = 2.0 * np.sqrt(trace + 1.0)
        w = 0.25 * s
        x = (R[2, 1] - R[1, 2]) / s
        y = (R[0, 2] - R[2, 0]) / s
        z = (R[1, 0] - R[0, 1]) / s
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        w = (R[2, 1] - R[1, 2]) / s
        x = 0.25 * s
        y = (R[0, 1] + R[1, 0]) / s
        z = (R[0, 2] + R[2, 0]) / s
    elif R[1, 1] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        w = (R[0, 2] - R[2, 0]) / s
        x = (R[0, 1] + R[1, 0]) / s
        y = 0.25 * s
        z = (R[1, 2] + R[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        w = (R[1, 0] - R[0, 1]) / s
        x = (R[0, 2] + R[2, 0]) / s
        y = (R[1, 2] + R[2, 1]) / s
        z = 0.25 * s

    q = np.array([x, y, z, w], dtype=np.float64)
    q /= np.linalg.norm(q)
    if q[3] < 0:
        q = -q
    return q


def invert_transform(T: np.ndarray) -> np.ndarray:
    """
    Invert a 4x4 rigid transform exactly (R^T, -R^T t).

    Args:
        T: 4x4 homogeneous rigid transform

    Returns:
        4x4 inverse transform
    """
    R = T[:3, :3]
    t = T[:3, 3]

    inverse = np.identity(4, dtype=np.float64)
    inverse[:3, :3] = R.T
    inverse[:3, 3] = -R.T @ t
    return inverse


@dataclass
class Pose:
    """A position and orientation tagged with the frame it is expressed in."""

    frame_id: str = ""
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0])
    )

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float64).reshape(3)
        self.orientation = np.asarray(self.orientation, dtype=np.float64).reshape(4)
        if np.linalg.norm(self.orientation) < 1e-12:
            raise ValueError("Pose orientation quaternion has zero length")

    def to_matrix(self) -> np.ndarray:
        """Return the pose as a 4x4 homogeneous transform."""
        T = np.identity(4, dtype=np.float64)
        T[:3, :3] = quaternion_to_rotation_matrix(self.orientation)
        T[:3, 3] = self.position
        return T

    @classmethod
    def from_matrix(cls, frame_id: str, T: np.ndarray) -> "Pose":
        return cls(
            frame_id=frame_id,
            position=T[:3, 3].copy(),
            orientation=rotation_matrix_to_quaternion(T[:3, :3])
        )

    def with_frame(self, frame_id: str) -> "Pose":
        return Pose(frame_id, self.position.copy(), self.orientation.copy())

    def to_dict(self) -> Dict:
        return {
            'frame_id': self.frame_id,
            'position': [float(v) for v in self.position],
            'orientation': [float(v) for v in self.orientation]
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Pose":
        try:
            return cls(
                frame_id=str(data.get('frame_id', '')),
                position=data['position'],
                orientation=data.get('orientation', [0.0, 0.0, 0.0, 1.0])
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid pose record: {e}") from e


@dataclass
class Grasp:
    """
    A stored grasp pose with its empirical success statistics.

    A success rate of zero with zero attempts means the grasp is untested;
    zero with attempts means it was tried and always failed.
    """

    grasp_pose: Pose
    success_rate: float = 0.0
    attempts: int = 0

    def __post_init__(self):
        if self.attempts < 0:
            raise ValueError(f"Grasp attempts must be non-negative, got {self.attempts}")
        if not 0.0 <= self.success_rate <= 1.0:
            raise ValueError(f"Grasp success rate must be in [0, 1], got {self.success_rate}")

    def with_pose(self, grasp_pose: Pose) -> "Grasp":
        return replace(self, grasp_pose=grasp_pose)

    def to_dict(self) -> Dict:
        return {
            'grasp_pose': self.grasp_pose.to_dict(),
            'success_rate': float(self.success_rate),
            'attempts': int(self.attempts)
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Grasp":
        try:
            return cls(
                grasp_pose=Pose.from_dict(data['grasp_pose']),
                success_rate=float(data.get('success_rate', 0.0)),
                attempts=int(data.get('attempts', 0))
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid grasp record: {e}") from e


@dataclass
class GraspModel:
    """A recognition candidate: a reference point cloud plus its grasps."""

    id: int
    object_name: str
    point_cloud: o3d.geometry.PointCloud = field(default_factory=o3d.geometry.PointCloud)
    grasps: List[Grasp] = field(default_factory=list)

    def has_point_cloud(self) -> bool:
        return self.point_cloud is not None and len(self.point_cloud.points) > 0


def encode_point_cloud(point_cloud: o3d.geometry.PointCloud) -> bytes:
    """
    Serialize a point cloud into a flat byte buffer.

    Each point is stored as six little-endian float32 values: x, y, z and
    r, g, b in [0, 1]. Clouds without colors are stored as black.

    Args:
        point_cloud: Input point cloud

    Returns:
        Serialized buffer (len is a multiple of POINT_RECORD_SIZE)
    """
    points = np.asarray(point_cloud.points, dtype=np.float64).reshape(-1, 3)
    if point_cloud.has_colors():
        colors = np.asarray(point_cloud.colors, dtype=np.float64).reshape(-1, 3)
    else:
        colors = np.zeros_like(points)

    records = np.hstack([points, colors]).astype(POINT_RECORD_DTYPE)
    return records.tobytes()


def decode_point_cloud(data: bytes) -> o3d.geometry.PointCloud:
    """
    Deserialize a buffer produced by encode_point_cloud.

    Args:
        data: Serialized point cloud buffer

    Returns:
        Open3D point cloud with colors
    """
    if len(data) % POINT_RECORD_SIZE != 0:
        raise ValueError(
            f"Point cloud buffer of {len(data)} bytes is not a multiple of "
            f"{POINT_RECORD_SIZE}"
        )

    records = np.frombuffer(data, dtype=POINT_RECORD_DTYPE).reshape(-1, POINT_RECORD_FIELDS)
    point_cloud = o3d.geometry.PointCloud()
    if records.shape[0] == 0:
        return point_cloud

    point_cloud.points = o3d.utility.Vector3dVector(records[:, :3].astype(np.float64))
    point_cloud.colors = o3d.utility.Vector3dVector(records[:, 3:].astype(np.float64))
    return point_cloud


class GraspDemonstration:
    """
    A single demonstrated grasp as stored in the grasp database.

    The serialized point cloud is held as an immutable bytes object copied on
    construction. An id or created timestamp of None means the demonstration
    has not been stored yet.
    """

    def __init__(
        self,
        object_name: str = "",
        grasp_pose: Optional[Pose] = None,
        point_cloud: bytes = b"",
        id: Optional[int] = None,
        created: Optional[datetime] = None
    ):
        self.id = id
        self.object_name = object_name
        self.grasp_pose = grasp_pose if grasp_pose is not None else Pose()
        self.created = created
        self.set_point_cloud(point_cloud)

    @classmethod
    def from_point_cloud(
        cls,
        object_name: str,
        grasp_pose: Pose,
        point_cloud: o3d.geometry.PointCloud
    ) -> "GraspDemonstration":
        return cls(object_name, grasp_pose, encode_point_cloud(point_cloud))

    @property
    def point_cloud(self) -> bytes:
        return self._point_cloud

    @property
    def point_cloud_size(self) -> int:
        return len(self._point_cloud)

    def set_point_cloud(self, point_cloud) -> None:
        if isinstance(point_cloud, o3d.geometry.PointCloud):
            self._point_cloud = encode_point_cloud(point_cloud)
        else:
            self._point_cloud = bytes(point_cloud)

    def create_point_cloud(self) -> o3d.geometry.PointCloud:
        return decode_point_cloud(self._point_cloud)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'object_name': self.object_name,
            'grasp_pose': self.grasp_pose.to_dict(),
            'point_cloud': base64.b64encode(self._point_cloud).decode('ascii'),
            'point_cloud_size': self.point_cloud_size,
            'created': self.created.isoformat() if self.created is not None else None
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "GraspDemonstration":
        try:
            buffer = base64.b64decode(data.get('point_cloud', ''), validate=True)
            created = data.get('created')
            demonstration = cls(
                object_name=str(data.get('object_name', '')),
                grasp_pose=Pose.from_dict(data['grasp_pose']),
                point_cloud=buffer,
                id=data.get('id'),
                created=datetime.fromisoformat(created) if created else None
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid grasp demonstration record: {e}") from e

        size = data.get('point_cloud_size')
        if size is not None and size != demonstration.point_cloud_size:
            raise ValueError(
                f"Point cloud size mismatch: record says {size}, "
                f"buffer has {demonstration.point_cloud_size}"
            )
        return demonstration

    def __repr__(self) -> str:
        return (
            f"GraspDemonstration(id={self.id}, object_name={self.object_name!r}, "
            f"point_cloud_size={self.point_cloud_size})"
        )

