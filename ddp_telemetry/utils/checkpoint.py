"""
Snapshot persistence utilities for distributed training runs.

All run artifacts live in one run directory and are named
``<run index:03d>_<name>``, e.g. ``001_log``, ``001_perf``, ``001_config`` and
``001_model_last.bin``. Snapshot contents are opaque to this module: a bundle
of the run config and whatever model/criterion/optimizer objects the caller
hands in, written through a ``BlobStore``.
"""

import json
import logging
import os
import re
from typing import Any, Dict, List, Mapping, Optional

import torch


logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[/\\]")
_UNSAFE = re.compile(r"[\x00-\x1f:*?\"<>|]")


def clean_filepath(tag: str) -> str:
    """
    Make a snapshot tag safe to use as a single filename component.

    Path separators are replaced by ``#`` and control or reserved characters
    are dropped, so ``"dev/clean"`` becomes ``"dev#clean"`` while
    ``"epoch_0001"`` is returned unchanged.
    """
    return _UNSAFE.sub("", _SEPARATORS.sub("#", tag))


def get_run_file(name: str, run_index: int, run_path: str) -> str:
    return os.path.join(run_path, "%03d_%s" % (run_index, name))


def snapshot_bundle(config: Mapping[str, Any], model_objects: Mapping[str, Any]) -> Dict[str, Any]:
    return {'config': dict(config), 'models': dict(model_objects)}


class BlobStore:
    """Key-value store for snapshot bundles, keyed by file path."""

    def put(self, path: str, bundle: Any) -> None:
        raise NotImplementedError

    def get(self, path: str) -> Any:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError


class FileBlobStore(BlobStore):
    """Stores bundles on the local filesystem with ``torch.save``."""

    def put(self, path: str, bundle: Any) -> None:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        torch.save(bundle, path)
        logger.debug(f"Snapshot saved to {path}")

    def get(self, path: str) -> Any:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Snapshot file not found: {path}")
        return torch.load(path, map_location='cpu', weights_only=False)

    def exists(self, path: str) -> bool:
        return os.path.exists(path)


def save_config(config: Mapping[str, Any], run_index: int, run_path: str) -> str:
    """
    Write the run configuration as a flat string-to-string JSON mapping.

    Args:
        config (Mapping[str, Any]): Run configuration; values are stringified.
        run_index (int): Index of the run inside ``run_path``.
        run_path (str): Run directory.

    Returns:
        str: Path of the written file.

    Raises:
        OSError: If the file cannot be written.
    """
    path = get_run_file("config", run_index, run_path)
    flat = {str(k): str(v) for k, v in config.items()}
    with open(path, "w", encoding="utf-8") as f:
        json.dump({'config': flat}, f, indent=2, sort_keys=True)
    return path


def load_config(run_index: int, run_path: str) -> Dict[str, str]:
    path = get_run_file("config", run_index, run_path)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)['config']


def load_snapshot(
    tag: str,
    run_index: int,
    run_path: str,
    blob_store: Optional[BlobStore] = None
) -> Optional[Dict[str, Any]]:
    """
    Load a snapshot bundle by tag.

    Args:
        tag (str): Snapshot tag, e.g. ``"last"`` or a validation subset name.
        run_index (int): Index of the run.
        run_path (str): Run directory.
        blob_store (Optional[BlobStore]): Store to read from; defaults to the filesystem.

    Returns:
        Optional[Dict[str, Any]]: The ``{'config', 'models'}`` bundle, or None if absent.
    """
    blob_store = blob_store or FileBlobStore()
    path = get_run_file(f"model_{clean_filepath(tag)}.bin", run_index, run_path)
    if not blob_store.exists(path):
        logger.warning(f"No snapshot tagged '{tag}' at {path}")
        return None
    bundle = blob_store.get(path)
    logger.info(f"Snapshot '{tag}' loaded from {path}")
    return bundle


def list_snapshots(run_index: int, run_path: str) -> List[str]:
    """
    List snapshot tags saved for a run, newest first.

    Tags are returned in their cleaned on-disk form.
    """
    if not os.path.isdir(run_path):
        logger.warning(f"Run directory {run_path} does not exist.")
        return []

    prefix = "%03d_model_" % run_index
    files = [f for f in os.listdir(run_path) if f.startswith(prefix) and f.endswith(".bin")]
    files.sort(key=lambda f: os.path.getmtime(os.path.join(run_path, f)), reverse=True)
    return [f[len(prefix):-len(".bin")] for f in files]
