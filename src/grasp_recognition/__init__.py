"""
Grasp Model Recognition

Recognizes segmented objects by registering their point clouds against a
library of grasp models, and transfers the matched model's ranked grasps
onto the observed object.
"""

from .graspdb import Pose, Grasp, GraspModel, GraspDemonstration
from .point_cloud_metrics import RegistrationBackend, Open3DRegistration
from .grasp_transfer import GraspTransfer
from .recognizer import (
    ObjectObservation,
    PointCloudRecognizer,
    RecognitionResult,
    RegistrationResult,
)
from .model_library import GraspModelLibrary

__version__ = "1.0.0"

__all__ = [
    "Pose",
    "Grasp",
    "GraspModel",
    "GraspDemonstration",
    "RegistrationBackend",
    "Open3DRegistration",
    "GraspTransfer",
    "ObjectObservation",
    "PointCloudRecognizer",
    "RecognitionResult",
    "RegistrationResult",
    "GraspModelLibrary"
]
