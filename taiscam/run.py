from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional

import shutil
import subprocess

from .build import EXECUTABLE_NAME
from .case import ResolvedCase
from .exceptions import RunFailed


RUN_LOG = "scam_output.txt"


def stage_namelists(
    resolved: ResolvedCase,
    log_func: Callable[[str], None] = print,
) -> List[Path]:
    """Copy every ``*_in`` namelist from the build directory to the run directory."""
    copied = []
    for src in sorted(resolved.build_dir.glob("*_in")):
        dst = resolved.run_dir / src.name
        try:
            shutil.copy2(src, dst)
        except OSError as exc:
            raise RunFailed(f"SCAM run failed: could not copy {src} -> {dst}: {exc}") from exc
        copied.append(dst)
    log_func(f"Copied {len(copied)} namelist file(s) to {resolved.run_dir}")
    return copied


def link_executable(resolved: ResolvedCase, executable_path: Path) -> Path:
    """Symlink the compiled binary into the run directory, replacing a stale link."""
    link = resolved.run_dir / EXECUTABLE_NAME
    try:
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(executable_path)
    except OSError as exc:
        raise RunFailed(f"SCAM run failed: could not link {executable_path} as {link}: {exc}") from exc
    return link


def launch(
    resolved: ResolvedCase,
    executable_path: Path,
    env: Optional[Dict[str, str]] = None,
    log_func: Callable[[str], None] = print,
) -> Path:
    """
    Run the SCAM binary in the run directory.

    stdout and stderr go to ``scam_output.txt`` in the run directory.

    Returns
    -------
    Path
        The run log.

    Raises
    ------
    RunFailed
        If the executable is missing, the run directory cannot be prepared,
        or the run exits non-zero.
    """
    if not executable_path.exists():
        raise RunFailed(f"SCAM run failed: executable not found: {executable_path}")

    stage_namelists(resolved, log_func=log_func)
    link = link_executable(resolved, executable_path)

    log_file = resolved.run_dir / RUN_LOG
    log_func(f"Running {link} in {resolved.run_dir}")
    log_func(f"Log file: {log_file}")

    try:
        log_f = log_file.open("w")
    except OSError as exc:
        raise RunFailed(f"SCAM run failed: could not open log file {log_file}: {exc}") from exc

    with log_f:
        try:
            process = subprocess.Popen(
                [f"./{EXECUTABLE_NAME}"],
                cwd=str(resolved.run_dir),
                stdout=log_f,
                stderr=subprocess.STDOUT,
                env=env,
                text=True,
            )
        except OSError as exc:
            raise RunFailed(f"SCAM run failed: could not start {link}: {exc}") from exc
        return_code = process.wait()

    if return_code != 0:
        raise RunFailed(
            f"SCAM run failed with exit code {return_code}. "
            f"See log file for details: {log_file}"
        )

    log_func("Model run completed.")
    return log_file
