"""Tests for grasp transfer into the object frame and grasp ranking."""

import numpy as np
import pytest

from grasp_recognition.graspdb import Grasp, Pose, invert_transform
from grasp_recognition.grasp_transfer import GraspTransfer

from conftest import grasp


def rotation_z(angle):
    c, s = np.cos(angle), np.sin(angle)
    T = np.identity(4)
    T[:3, :3] = [[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]]
    return T


def test_identity_transfer_keeps_pose():
    pose = Pose("gripper_base", [0.3, -0.1, 0.25], [0.0, 0.0, np.sin(0.4), np.cos(0.4)])
    original = Grasp(pose, success_rate=0.4, attempts=5)

    transferred = GraspTransfer.transfer_grasps(np.identity(4), np.zeros(3), [original])

    assert len(transferred) == 1
    np.testing.assert_allclose(transferred[0].grasp_pose.position, pose.position, atol=1e-12)
    np.testing.assert_allclose(transferred[0].grasp_pose.orientation, pose.orientation, atol=1e-12)
    assert transferred[0].grasp_pose.frame_id == "gripper_base"
    assert transferred[0].success_rate == 0.4
    assert transferred[0].attempts == 5


def test_transfer_applies_inverse_then_centroid():
    T = rotation_z(np.pi / 2)
    T[:3, 3] = [0.1, 0.0, 0.0]
    pose = Pose("base_link", [1.0, 0.0, 0.0])
    centroid = np.array([0.5, 0.5, 0.5])

    moved = GraspTransfer.transfer_pose(T, centroid, pose)

    expected = invert_transform(T) @ pose.to_matrix()
    expected[:3, 3] += centroid
    np.testing.assert_allclose(moved.to_matrix(), expected, atol=1e-12)
    # inverse rotation of (0.9, 0, 0) by -90 degrees about z
    np.testing.assert_allclose(moved.position, [0.5, -0.4, 0.5], atol=1e-12)


def test_transfer_does_not_modify_inputs():
    T = rotation_z(0.3)
    original = grasp(0.5, 2, x=0.2)

    GraspTransfer.transfer_grasps(T, np.array([1.0, 2.0, 3.0]), [original])

    np.testing.assert_allclose(original.grasp_pose.position, [0.2, 0.0, 0.0])
    np.testing.assert_allclose(T[:3, 3], [0.0, 0.0, 0.0])


def test_transfer_preserves_input_order():
    grasps = [grasp(0.9, 1, x=1.0), grasp(0.1, 1, x=2.0), grasp(0.5, 1, x=3.0)]

    transferred = GraspTransfer.transfer_grasps(np.identity(4), np.zeros(3), grasps)

    assert [g.grasp_pose.position[0] for g in transferred] == pytest.approx([1.0, 2.0, 3.0])


def test_rank_drops_failed_grasps_and_keeps_untested():
    grasps = [grasp(0.0, 0, x=1.0), grasp(0.3, 4, x=2.0), grasp(0.0, 5, x=3.0)]

    poses, rates = GraspTransfer.rank_grasps(grasps, "camera")

    assert rates == [0.0, 0.3]
    assert [p.position[0] for p in poses] == pytest.approx([1.0, 2.0])


def test_rank_sorts_ascending():
    grasps = [grasp(rate, 10, x=i) for i, rate in enumerate([0.8, 0.2, 0.5, 1.0, 0.1])]

    poses, rates = GraspTransfer.rank_grasps(grasps, "camera")

    assert rates == sorted(rates)
    assert len(poses) == len(rates) == 5


def test_rank_is_stable_for_equal_rates():
    grasps = [grasp(0.5, 2, x=1.0), grasp(0.2, 2, x=2.0), grasp(0.5, 2, x=3.0)]

    poses, rates = GraspTransfer.rank_grasps(grasps, "camera")

    assert rates == [0.2, 0.5, 0.5]
    assert [p.position[0] for p in poses] == pytest.approx([2.0, 1.0, 3.0])


def test_rank_retags_frame():
    poses, _ = GraspTransfer.rank_grasps([grasp(0.5, 2, frame_id="base_link")], "camera_rgb_optical_frame")

    assert poses[0].frame_id == "camera_rgb_optical_frame"


def test_rank_empty():
    assert GraspTransfer.rank_grasps([], "camera") == ([], [])
