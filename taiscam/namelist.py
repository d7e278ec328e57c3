from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .build import cam_tool, env_command, run_command_logged
from .case import ResolvedCase
from .config import BuildEnvironment
from .exceptions import NamelistBuildFailed


TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
NAMELIST_TEMPLATE = "camexp.nml.j2"
TMP_NAMELIST_NAME = "tmp_namelistfile"
BUILD_NAMELIST_LOG = "BUILD_NAMELIST.out"


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        keep_trailing_newline=True,
    )


def namelist_context(resolved: ResolvedCase, csmdata: Path) -> Dict[str, Any]:
    """Template variables for the IOP case of ``resolved``."""
    iop = resolved.iop
    return {
        "iopfile": iop.resolve_path(iop.iopfile, csmdata),
        "ncdata": iop.resolve_path(iop.ncdata, csmdata),
        "dtime": iop.dtime,
        "mfilt": iop.mfilt,
        "nhtfrq": iop.nhtfrq,
        "stop_n": iop.stop_n,
        "fincl1": ",".join(f"'{name}'" for name in iop.diagnostics),
        "surface_flux": iop.surface_flux,
        "surface_flux_fragment": resolved.surface_flux_fragment,
    }


def render_namelist(resolved: ResolvedCase, csmdata: Path) -> str:
    """Render the ``&camexp`` / ``&seq_timemgr_inparm`` input for build-namelist."""
    template = _environment().get_template(NAMELIST_TEMPLATE)
    return template.render(**namelist_context(resolved, csmdata))


def write_namelist(
    resolved: ResolvedCase,
    csmdata: Path,
    log_func: Callable[[str], None] = print,
) -> Path:
    """Write the rendered namelist to ``tmp_namelistfile`` in the build directory."""
    path = resolved.build_dir / TMP_NAMELIST_NAME
    try:
        path.write_text(render_namelist(resolved, csmdata))
    except OSError as exc:
        raise NamelistBuildFailed(f"Could not write namelist input {path}: {exc}") from exc
    kind = "generic" if resolved.iop.generic else resolved.iop.name
    log_func(f"Wrote namelist input ({kind} template) to {path}")
    return path


def build_namelist_command(
    resolved: ResolvedCase,
    cam_root: Path,
    csmdata: Path,
    infile: Path,
) -> List[str]:
    return [
        str(cam_tool(cam_root, "build-namelist")),
        "-s",
        "-case", resolved.case_id,
        "-runtype", "startup",
        "-infile", str(infile),
        "-csmdata", str(csmdata),
        "-use_case", resolved.iop.name,
    ]


def build_namelist(
    resolved: ResolvedCase,
    cam_root: Path,
    csmdata: Path,
    build_env: BuildEnvironment,
    log_func: Callable[[str], None] = print,
) -> List[Path]:
    """
    Generate the runtime namelists (``*_in``) in the build directory.

    Returns
    -------
    list[Path]
        The generated ``*_in`` files.

    Raises
    ------
    NamelistBuildFailed
        If build-namelist exits non-zero or writes no ``*_in`` files.
    """
    infile = write_namelist(resolved, csmdata, log_func=log_func)
    logfile = resolved.build_dir / BUILD_NAMELIST_LOG
    run_command_logged(
        "build-namelist",
        logfile,
        env_command(build_namelist_command(resolved, cam_root, csmdata, infile), build_env),
        cwd=resolved.build_dir,
        error_cls=NamelistBuildFailed,
        env=build_env.child_env(),
        log_func=log_func,
    )

    generated = sorted(resolved.build_dir.glob("*_in"))
    if not generated:
        raise NamelistBuildFailed(
            f"build-namelist failed: no *_in files written to {resolved.build_dir}. See log: {logfile}"
        )
    log_func(f"Namelists: {', '.join(p.name for p in generated)}")
    return generated
