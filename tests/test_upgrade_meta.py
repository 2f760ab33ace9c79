"""
Tests for the meta.json upgrade tool.
"""

import json

from dataset_loader import CURRENT_VERSION, Meta, load_meta
from upgrade_meta import MetaUpgrader


def test_upgrades_previous_version(meta_record, write_dataset):
    old = dict(meta_record, version=2)
    old["bounding_rect"] = {"deprecated_min": {"x": -1.0, "y": -1.0}, "deprecated_edge_length": 2.0}
    dataset_dir = write_dataset("old", old)

    assert MetaUpgrader(dataset_dir).run() is True

    written = json.loads((dataset_dir / "meta.json").read_text())
    assert written["version"] == CURRENT_VERSION
    assert json.loads((dataset_dir / "meta.json.bak").read_text()) == old
    assert load_meta(str(dataset_dir)) == Meta.from_dict(meta_record)


def test_current_version_is_left_alone(meta_record, write_dataset):
    dataset_dir = write_dataset("new", meta_record)
    before = (dataset_dir / "meta.json").read_text()

    assert MetaUpgrader(dataset_dir).run() is False
    assert (dataset_dir / "meta.json").read_text() == before
    assert not (dataset_dir / "meta.json.bak").exists()
