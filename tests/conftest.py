import numpy as np
import open3d as o3d
import pytest

from grasp_recognition.graspdb import Grasp, GraspModel, Pose
from grasp_recognition.point_cloud_metrics import RegistrationBackend


def make_cloud(points, color=None):
    cloud = o3d.geometry.PointCloud()
    cloud.points = o3d.utility.Vector3dVector(np.asarray(points, dtype=np.float64))
    if color is not None:
        cloud.colors = o3d.utility.Vector3dVector(
            np.tile(np.asarray(color, dtype=np.float64), (len(cloud.points), 1))
        )
    return cloud


def random_cloud(n=200, seed=0, color=(0.5, 0.5, 0.5), scale=0.05):
    rng = np.random.default_rng(seed)
    return make_cloud(rng.uniform(-scale, scale, size=(n, 3)), color)


class ScriptedBackend(RegistrationBackend):
    """Backend returning pre-set colors and metrics per candidate cloud."""

    def __init__(self, object_color=(100.0, 100.0, 100.0)):
        self.object_color = object_color
        self.colors = {}
        self.metrics = {}
        self.transforms = {}
        self.aligned = []

    def script(self, cloud, color, overlap=0.9, distance_error=0.01,
               color_error=10.0, transform=None):
        self.colors[id(cloud)] = color
        self.metrics[id(cloud)] = (overlap, distance_error, color_error)
        self.transforms[id(cloud)] = np.identity(4) if transform is None else transform

    def remove_outliers(self, point_cloud):
        return point_cloud

    def translate_to_origin(self, point_cloud, centroid):
        return point_cloud

    def average_color(self, point_cloud):
        return self.colors.get(id(point_cloud), self.object_color)

    def align(self, source, target):
        self.aligned.append(id(source))
        return self.transforms[id(source)], source

    def overlap_metric(self, base, target, color=False):
        overlap, _, color_error = self.metrics[id(target)]
        return color_error if color else overlap

    def distance_error_metric(self, base, target):
        return self.metrics[id(target)][1]


@pytest.fixture
def backend():
    return ScriptedBackend()


def grasp(rate, attempts, x=0.0, frame_id="base_link"):
    return Grasp(Pose(frame_id, [x, 0.0, 0.0]), success_rate=rate, attempts=attempts)


def model(model_id, name, cloud=None, grasps=None):
    return GraspModel(
        id=model_id,
        object_name=name,
        point_cloud=cloud if cloud is not None else o3d.geometry.PointCloud(),
        grasps=grasps or []
    )
