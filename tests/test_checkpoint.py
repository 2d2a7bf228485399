"""Tests for snapshot persistence utilities."""

import json
import os

import pytest

from ddp_telemetry.utils.checkpoint import (
    FileBlobStore,
    clean_filepath,
    get_run_file,
    list_snapshots,
    load_config,
    load_snapshot,
    save_config,
    snapshot_bundle,
)


@pytest.mark.parametrize("tag, expected", [
    ("epoch_0001", "epoch_0001"),
    ("last", "last"),
    ("dev/clean", "dev#clean"),
    ("a\\b", "a#b"),
    ("bad:name?\x01", "badname"),
])
def test_clean_filepath(tag, expected):
    assert clean_filepath(tag) == expected


def test_get_run_file(tmp_path):
    assert get_run_file("perf", 7, str(tmp_path)) == os.path.join(str(tmp_path), "007_perf")


def test_file_blob_store_round_trip(tmp_path):
    store = FileBlobStore()
    path = os.path.join(str(tmp_path), "nested", "001_model_last.bin")
    bundle = snapshot_bundle({"epoch": "2"}, {"network": {"weights": [1.0, 2.0]}})

    store.put(path, bundle)

    assert store.exists(path)
    assert store.get(path) == {"config": {"epoch": "2"}, "models": {"network": {"weights": [1.0, 2.0]}}}


def test_file_blob_store_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        FileBlobStore().get(os.path.join(str(tmp_path), "missing.bin"))


def test_load_snapshot(tmp_path):
    store = FileBlobStore()
    store.put(get_run_file("model_dev#clean.bin", 1, str(tmp_path)), snapshot_bundle({"epoch": "1"}, {}))

    bundle = load_snapshot("dev/clean", 1, str(tmp_path))
    assert bundle["config"] == {"epoch": "1"}
    assert load_snapshot("last", 1, str(tmp_path)) is None


def test_list_snapshots_newest_first(tmp_path):
    store = FileBlobStore()
    for i, tag in enumerate(["last", "dev#clean", "dev#other"]):
        path = get_run_file(f"model_{tag}.bin", 1, str(tmp_path))
        store.put(path, {})
        os.utime(path, (1000 + i, 1000 + i))
    store.put(get_run_file("model_last.bin", 2, str(tmp_path)), {})

    assert list_snapshots(1, str(tmp_path)) == ["dev#other", "dev#clean", "last"]


def test_list_snapshots_missing_dir(tmp_path):
    assert list_snapshots(1, str(tmp_path / "missing")) == []


def test_config_round_trip(tmp_path):
    path = save_config({"epoch": 4, "arch": "conv"}, 3, str(tmp_path))
    assert path.endswith("003_config")
    with open(path) as f:
        assert json.load(f) == {"config": {"arch": "conv", "epoch": "4"}}
    assert load_config(3, str(tmp_path)) == {"arch": "conv", "epoch": "4"}
