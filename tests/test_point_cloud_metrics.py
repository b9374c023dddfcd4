"""Tests for the Open3D registration backend."""

import numpy as np
import pytest

from grasp_recognition.point_cloud_metrics import MAX_COLOR_ERROR, Open3DRegistration

from conftest import make_cloud, random_cloud


@pytest.fixture
def registration():
    return Open3DRegistration(overlap_distance=0.005)


def grid_cloud(color=(0.5, 0.5, 0.5), offset=(0.0, 0.0, 0.0)):
    axis = np.linspace(-0.05, 0.05, 6)
    points = np.array([[x, y, z] for x in axis for y in axis for z in axis]) + np.asarray(offset)
    return make_cloud(points, color)


def test_remove_outliers_drops_far_point(registration):
    cloud = random_cloud(n=300, seed=1)
    points = np.vstack([np.asarray(cloud.points), [[5.0, 5.0, 5.0]]])
    noisy = make_cloud(points, (0.5, 0.5, 0.5))

    filtered = registration.remove_outliers(noisy)

    assert len(filtered.points) < len(noisy.points)
    assert np.abs(np.asarray(filtered.points)).max() < 1.0
    assert len(noisy.points) == 301


def test_remove_outliers_small_cloud_is_copied(registration):
    cloud = random_cloud(n=5)

    filtered = registration.remove_outliers(cloud)

    assert filtered is not cloud
    assert len(filtered.points) == 5


def test_translate_to_origin(registration):
    cloud = grid_cloud(offset=(1.0, 2.0, 3.0))

    centered = registration.translate_to_origin(cloud, [1.0, 2.0, 3.0])

    np.testing.assert_allclose(np.asarray(centered.points).mean(axis=0), np.zeros(3), atol=1e-9)
    np.testing.assert_allclose(np.asarray(cloud.points).mean(axis=0), [1.0, 2.0, 3.0], atol=1e-9)


def test_average_color(registration):
    r, g, b = registration.average_color(grid_cloud(color=(1.0, 0.5, 0.0)))

    assert r == pytest.approx(255.0)
    assert g == pytest.approx(127.5)
    assert b == pytest.approx(0.0)


def test_average_color_without_colors(registration):
    assert registration.average_color(make_cloud([[0.0, 0.0, 0.0]])) == (0.0, 0.0, 0.0)


def test_align_recovers_small_shift(registration):
    target = grid_cloud()
    source = grid_cloud(offset=(0.004, 0.0, 0.0))

    transform, aligned = registration.align(source, target)

    np.testing.assert_allclose(transform[:3, 3], [-0.004, 0.0, 0.0], atol=1e-6)
    np.testing.assert_allclose(np.asarray(aligned.points), np.asarray(target.points), atol=1e-6)
    # source is untouched
    np.testing.assert_allclose(np.asarray(source.points).mean(axis=0), [0.004, 0.0, 0.0], atol=1e-9)


def test_overlap_of_identical_clouds(registration):
    cloud = grid_cloud()

    assert registration.overlap_metric(cloud, grid_cloud()) == pytest.approx(1.0)
    assert registration.distance_error_metric(cloud, grid_cloud()) == pytest.approx(0.0)


def test_overlap_of_distant_clouds(registration):
    base = grid_cloud()
    target = grid_cloud(offset=(1.0, 0.0, 0.0))

    assert registration.overlap_metric(base, target) == 0.0
    assert registration.overlap_metric(base, target, color=True) == MAX_COLOR_ERROR
    assert registration.distance_error_metric(base, target) > 0.5


def test_color_error_of_coincident_points(registration):
    base = grid_cloud(color=(0.0, 0.0, 0.0))
    target = grid_cloud(color=(0.0, 0.0, 100.0 / 255.0))

    assert registration.overlap_metric(base, target, color=True) == pytest.approx(100.0)


def test_metrics_with_empty_cloud(registration):
    empty = make_cloud(np.zeros((0, 3)))

    assert registration.overlap_metric(grid_cloud(), empty) == 0.0
    assert registration.distance_error_metric(grid_cloud(), empty) == float('inf')


def test_recognizes_shifted_copy_end_to_end():
    from grasp_recognition.graspdb import GraspModel
    from grasp_recognition.recognizer import ObjectObservation, PointCloudRecognizer

    model_cloud = grid_cloud(color=(0.8, 0.2, 0.2))
    observed = grid_cloud(color=(0.8, 0.2, 0.2), offset=(0.5, 0.5, 0.5))
    other = grid_cloud(color=(0.1, 0.1, 0.9))
    recognizer = PointCloudRecognizer(Open3DRegistration(outlier_nb_neighbors=10))

    result = recognizer.recognize(
        ObjectObservation(observed, [0.5, 0.5, 0.5], "camera"),
        [GraspModel(1, "blue box", other), GraspModel(2, "red box", model_cloud)]
    )

    assert result.recognized
    assert result.model_id == 2
    assert result.confidence < 0.01
