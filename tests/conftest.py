"""
Pytest fixtures for the points index backend tests.

Markers:
    @pytest.mark.slow - Tests that take longer to run
"""

import json

import numpy as np
import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: Slow-running tests")


def column_major(matrix):
    """Flatten a row-major 4x4 matrix the way WebGL clients send it."""
    return np.asarray(matrix, dtype=np.float64).T.ravel().tolist()


def ortho(left, right, bottom, top, near, far):
    """OpenGL style orthographic projection (row-major)."""
    return np.array(
        [
            [2.0 / (right - left), 0.0, 0.0, -(right + left) / (right - left)],
            [0.0, 2.0 / (top - bottom), 0.0, -(top + bottom) / (top - bottom)],
            [0.0, 0.0, -2.0 / (far - near), -(far + near) / (far - near)],
            [0.0, 0.0, 0.0, 1.0],
        ]
    )


def perspective(fovy_deg, aspect, near, far):
    """OpenGL style perspective projection (row-major), camera looking down -z."""
    f = 1.0 / np.tan(np.radians(fovy_deg) / 2.0)
    return np.array(
        [
            [f / aspect, 0.0, 0.0, 0.0],
            [0.0, f, 0.0, 0.0],
            [0.0, 0.0, (far + near) / (near - far), 2.0 * far * near / (near - far)],
            [0.0, 0.0, -1.0, 0.0],
        ]
    )


@pytest.fixture
def meta_record():
    """A small version 3 quadtree over [-1, 1] x [-1, 1]."""
    nodes = [(0, 0), (1, 0), (1, 1), (1, 2), (1, 3), (2, 0), (2, 3), (2, 12)]
    return {
        "version": 3,
        "bounding_rect": {"min": [-1.0, -1.0], "edge_length": 2.0},
        "tile_size": 256,
        "deepest_level": 2,
        "nodes": [{"level": level, "index": index} for level, index in nodes],
    }


@pytest.fixture
def write_dataset(tmp_path):
    """Write a meta record as <tmp_path>/<name>/meta.json and return the dir."""

    def _write(name, record):
        dataset_dir = tmp_path / name
        dataset_dir.mkdir(parents=True, exist_ok=True)
        (dataset_dir / "meta.json").write_text(json.dumps(record))
        return dataset_dir

    return _write
