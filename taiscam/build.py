from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Type

import shlex
import subprocess
import sys

from .case import ResolvedCase
from .config import BuildEnvironment, ConfigureOptions
from .exceptions import CompileFailed, ConfigureFailed, ScamError


CAM_BLD_SUBDIR = Path("models") / "atm" / "cam" / "bld"
CONFIGURE_LOG = "CONFIGURE.out"
MAKE_LOG = "MAKE.out"
EXECUTABLE_NAME = "cam"


def cam_tool(cam_root: Path, name: str) -> Path:
    """Path of a tool (``configure``, ``build-namelist``) in the CAM bld directory."""
    return Path(cam_root) / CAM_BLD_SUBDIR / name


def env_command(cmd: Sequence[object], build_env: BuildEnvironment) -> List[str]:
    """
    Wrap ``cmd`` so it runs with the build environment's modules loaded.

    Without modules the command is returned unchanged; otherwise it is run via
    ``bash -lc`` after ``module purge`` and one ``module load`` per module.
    """
    argv = [str(arg) for arg in cmd]
    if not build_env.modules:
        return argv

    lines = ["module purge"]
    lines += [f"module load {shlex.quote(m)}" for m in build_env.modules]
    lines.append(" ".join(shlex.quote(arg) for arg in argv))
    return ["bash", "-lc", "\n".join(lines)]


def _tail_to_stderr(logfile: Path, n: int = 50) -> None:
    try:
        with logfile.open() as f:
            lines = f.readlines()
    except OSError as e:
        print(f"(could not read logfile: {e})", file=sys.stderr)
        return
    print(f"---- Last {n} lines of {logfile} ----", file=sys.stderr)
    for line in lines[-n:]:
        sys.stderr.write(line)
    print("-------------------------------------", file=sys.stderr)


def run_command_logged(
    label: str,
    logfile: Path,
    cmd: List[str],
    cwd: Path,
    error_cls: Type[ScamError],
    env: Optional[Dict[str, str]] = None,
    log_func: Callable[[str], None] = print,
) -> None:
    """
    Run a command, log stdout/stderr to a file, and fail loudly with context.

    All subprocess output is written only to ``logfile``. High-level status
    messages go through ``log_func``.

    Raises
    ------
    error_cls
        If the command can't be started or exits non-zero. The message
        names the log file.
    """
    log_func(f"[{label}] starting...")
    log_func(f"[{label}] {' '.join(cmd)}")
    logfile.parent.mkdir(parents=True, exist_ok=True)

    with logfile.open("w") as f:
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(cwd),
                stdout=f,
                stderr=subprocess.STDOUT,
                env=env,
                text=True,
            )
        except OSError as exc:
            raise error_cls(f"{label} failed: could not start {cmd[0]}: {exc}") from exc
        ret = proc.wait()

    if ret != 0:
        log_func(f"{label} FAILED, see log: {logfile}")
        _tail_to_stderr(logfile)
        raise error_cls(f"{label} failed with exit code {ret}. See log: {logfile}")

    log_func(f"[{label}] OK")


def configure_command(
    resolved: ResolvedCase,
    cam_root: Path,
    mods_dir: Path,
    options: ConfigureOptions,
) -> List[str]:
    """
    Build the argv for CAM ``configure`` in single-column mode.

    Standard physics packages pass ``-chem <aerosol mode>``. Custom packages
    omit the chemistry flag and add ``-usr_src <mods_dir>`` instead.
    """
    cmd = [
        str(cam_tool(cam_root, "configure")),
        "-s",
        "-dyn", options.dyn,
        "-res", options.res,
        "-scam",
        "-ocn", options.ocn,
        "-comp_intf", options.comp_intf,
        "-nospmd",
        "-nosmp",
    ]
    if options.cppdefs:
        cmd += ["-cppdefs", " ".join(options.cppdefs)]

    cmd += ["-phys", resolved.physics.phys]
    if resolved.physics.custom:
        cmd += ["-usr_src", str(mods_dir)]
    else:
        cmd += ["-chem", resolved.aerosol_mode]
    return cmd


def configure(
    resolved: ResolvedCase,
    cam_root: Path,
    mods_dir: Path,
    options: ConfigureOptions,
    build_env: BuildEnvironment,
    log_func: Callable[[str], None] = print,
) -> Path:
    """
    Run CAM ``configure`` in the build directory.

    Returns the configure log path.

    Raises
    ------
    ConfigureFailed
        If configure exits non-zero.
    """
    logfile = resolved.build_dir / CONFIGURE_LOG
    run_command_logged(
        "Configure",
        logfile,
        env_command(configure_command(resolved, cam_root, mods_dir, options), build_env),
        cwd=resolved.build_dir,
        error_cls=ConfigureFailed,
        env=build_env.child_env(),
        log_func=log_func,
    )
    return logfile


def compile_model(
    resolved: ResolvedCase,
    build_env: BuildEnvironment,
    log_func: Callable[[str], None] = print,
) -> Path:
    """
    Run the parallel make in the build directory, logging to ``MAKE.out``.

    Returns
    -------
    Path
        The compiled SCAM executable.

    Raises
    ------
    CompileFailed
        If make exits non-zero or the executable is missing afterwards.
    """
    logfile = resolved.build_dir / MAKE_LOG
    run_command_logged(
        "Compile",
        logfile,
        env_command([build_env.make, "-j", str(build_env.make_jobs)], build_env),
        cwd=resolved.build_dir,
        error_cls=CompileFailed,
        env=build_env.child_env(),
        log_func=log_func,
    )

    exe_path = resolved.build_dir / EXECUTABLE_NAME
    if not exe_path.exists():
        raise CompileFailed(
            f"Compile failed: executable not found at {exe_path}. See log: {logfile}"
        )
    log_func(f"SCAM executable: {exe_path}")
    return exe_path
