from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import shutil

import yaml

from .case import ResolvedCase
from .exceptions import CopyFailed, DirectoryCreateFailed, UnsupportedOption


PACKAGE_DIR = Path(__file__).resolve().parent
SOURCE_BACKUP_NAME = "taiscam_src"
CASE_RECORD_NAME = "case.yml"

STATUS_RUNNING = "running"
STATUS_DONE = "done"
STATUS_FAILED = "failed"
FINISHED_STATUSES = (STATUS_DONE, STATUS_FAILED)


def prepare_directories(
    resolved: ResolvedCase,
    log_func: Callable[[str], None] = print,
) -> None:
    """
    Create ``{experiment}/{case_id}/bld`` and ``.../run``.

    The case directory itself must not exist yet; the experiment directory
    and the bld/run directories are created if absent.

    Raises
    ------
    DirectoryCreateFailed
        If the case directory already exists or any directory can't be made.
    """
    try:
        resolved.case_dir.parent.mkdir(parents=True, exist_ok=True)
        resolved.case_dir.mkdir(exist_ok=False)
    except FileExistsError as exc:
        raise DirectoryCreateFailed(
            f"Case directory already exists: {resolved.case_dir}"
        ) from exc
    except OSError as exc:
        raise DirectoryCreateFailed(
            f"Could not create case directory {resolved.case_dir}: {exc}"
        ) from exc

    for path in (resolved.build_dir, resolved.run_dir):
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DirectoryCreateFailed(f"Could not create directory {path}: {exc}") from exc
        log_func(f"Created {path}")


def backup_sources(
    resolved: ResolvedCase,
    mods_dir: Path,
    source_dir: Path = PACKAGE_DIR,
    log_func: Callable[[str], None] = print,
) -> List[Path]:
    """
    Copy the orchestrator sources and the modifications directory into the
    build directory.

    Returns
    -------
    list[Path]
        The two backup directories.

    Raises
    ------
    CopyFailed
        If the modifications directory is missing or a copy fails.
    """
    if not mods_dir.is_dir():
        raise CopyFailed(f"Modifications directory not found: {mods_dir}")

    targets = [
        (source_dir, resolved.build_dir / SOURCE_BACKUP_NAME),
        (mods_dir, resolved.build_dir / mods_dir.name),
    ]
    copied = []
    for src, dst in targets:
        try:
            shutil.copytree(
                src,
                dst,
                dirs_exist_ok=True,
                ignore=shutil.ignore_patterns("__pycache__", "*.pyc"),
            )
        except (OSError, shutil.Error) as exc:
            raise CopyFailed(f"Could not copy {src} -> {dst}: {exc}") from exc
        log_func(f"Backed up {src} -> {dst}")
        copied.append(dst)
    return copied


def write_case_record(
    resolved: ResolvedCase,
    extra: Optional[Dict[str, Any]] = None,
) -> Path:
    """Write ``case.yml`` describing this run into the build directory."""
    record: Dict[str, Any] = {
        "case_id": resolved.case_id,
        "experiment": resolved.experiment,
        "iop": resolved.iop.name,
        "physics": resolved.physics.name,
        "surface_flux": resolved.surface_flux,
        "aerosol_mode": resolved.aerosol_mode,
        "build_dir": str(resolved.build_dir),
        "run_dir": str(resolved.run_dir),
        "created": datetime.now().isoformat(timespec="seconds"),
        "status": STATUS_RUNNING,
    }
    if extra:
        record.update(extra)
    return _dump_record(resolved.build_dir / CASE_RECORD_NAME, record)


def update_case_status(
    resolved: ResolvedCase,
    status: str,
    failed_stage: Optional[str] = None,
) -> Path:
    """Set ``status`` (and ``failed_stage``) in the case record."""
    path = resolved.build_dir / CASE_RECORD_NAME
    record = _read_record(resolved.case_dir) or {"case_id": resolved.case_id}
    record["status"] = status
    record["finished"] = datetime.now().isoformat(timespec="seconds")
    if failed_stage is not None:
        record["failed_stage"] = failed_stage
    return _dump_record(path, record)


def case_status(case_dir: Path) -> Optional[str]:
    """Return the status recorded in a case directory, or None without a record."""
    record = _read_record(case_dir)
    return record.get("status") if record else None


def _read_record(case_dir: Path) -> Optional[Dict[str, Any]]:
    path = case_dir / "bld" / CASE_RECORD_NAME
    if not path.exists():
        return None
    with path.open() as f:
        record = yaml.safe_load(f)
    return record if isinstance(record, dict) else None


def _dump_record(path: Path, record: Dict[str, Any]) -> Path:
    try:
        with path.open("w") as f:
            yaml.safe_dump(record, f, sort_keys=False)
    except OSError as exc:
        raise CopyFailed(f"Could not write case record {path}: {exc}") from exc
    return path


def check_keep_last(keep_last: Optional[int]) -> None:
    """
    Raises
    ------
    UnsupportedOption
        If ``keep_last`` is set and smaller than 1.
    """
    if keep_last is not None and keep_last < 1:
        raise UnsupportedOption(f"keep_last must be at least 1, got {keep_last}")


def prune_cases(
    experiment_dir: Path,
    keep_last: Optional[int],
    log_func: Callable[[str], None] = print,
) -> List[Path]:
    """
    Remove the oldest finished case directories of an experiment, keeping
    ``keep_last`` of them.

    ``keep_last=None`` keeps everything. Only cases whose record says
    ``done`` or ``failed`` are considered; cases still running (or without a
    record) belong to another invocation and are left alone. Case
    directories are ordered by the timestamp at the end of their name.

    Returns
    -------
    list[Path]
        Directories that were removed.
    """
    check_keep_last(keep_last)
    if keep_last is None or not experiment_dir.is_dir():
        return []

    cases = sorted(
        (
            p for p in experiment_dir.iterdir()
            if p.is_dir() and case_status(p) in FINISHED_STATUSES
        ),
        key=lambda p: p.name.rsplit(".", 1)[-1],
    )
    removed = []
    for path in cases[: max(len(cases) - keep_last, 0)]:
        log_func(f"Retention: removing old case {path}")
        shutil.rmtree(path)
        removed.append(path)
    return removed
