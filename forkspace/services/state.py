import fcntl
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")


def _ensure_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _parse(path: Path, raw: str, model: type[M], default: M) -> M:
    try:
        return model.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError):
        logger.warning("Failed to parse state file, starting fresh", extra={"path": str(path)})
        return default


def _write(path: Path, data: BaseModel) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(data.model_dump_json(indent=2))
    tmp.rename(path)


def load_model(path: Path, model: type[M], default: M) -> M:
    """Read a JSON document under a shared lock.

    A missing file yields `default`. A corrupt file is logged and also yields
    `default` so a damaged ledger never blocks startup.
    """
    if not path.exists():
        return default
    _ensure_dir(path)
    lock_file = path.with_suffix(".lock")
    with open(lock_file, "a") as lf:
        fcntl.flock(lf, fcntl.LOCK_SH)
        try:
            raw = path.read_text()
        finally:
            fcntl.flock(lf, fcntl.LOCK_UN)

    return _parse(path, raw, model, default)


def save_model(path: Path, data: BaseModel) -> None:
    """Write a JSON document atomically (temp file + rename) under an exclusive lock."""
    _ensure_dir(path)
    lock_file = path.with_suffix(".lock")
    with open(lock_file, "a") as lf:
        fcntl.flock(lf, fcntl.LOCK_EX)
        try:
            _write(path, data)
        finally:
            fcntl.flock(lf, fcntl.LOCK_UN)


def update_model(path: Path, model: type[M], default: M, fn: Callable[[M], R]) -> R:
    """Read, modify and write a JSON document under one exclusive lock.

    `fn` mutates the loaded document in place and returns a result for the
    caller. The file is only rewritten when `fn` changed the document.
    """
    _ensure_dir(path)
    lock_file = path.with_suffix(".lock")
    with open(lock_file, "a") as lf:
        fcntl.flock(lf, fcntl.LOCK_EX)
        try:
            doc = _parse(path, path.read_text(), model, default) if path.exists() else default
            before = doc.model_copy(deep=True)
            result = fn(doc)
            if doc != before:
                _write(path, doc)
        finally:
            fcntl.flock(lf, fcntl.LOCK_UN)
    return result
