"""
Machine and path configuration for taiscam.

Settings are read from ``machines.yml`` (shipped with the package) and keyed
by a system id. The system id is taken from ``TAISCAM_SYSTEM`` and defaults
to ``generic``. Individual paths can be overridden with environment
variables (``TAISCAM_CAM_ROOT``, ``TAISCAM_CSMDATA``, ``TAISCAM_WORK_ROOT``,
``TAISCAM_MODS_DIR``).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import os

import yaml


HERE = Path(__file__).resolve().parent

DEFAULT_SYSTEM = "generic"


@dataclass
class BuildEnvironment:
    """
    Process environment needed by the build and run steps.

    Parameters
    ----------
    modules : list[str]
        Environment modules loaded (after ``module purge``) before every
        external command. Empty means commands run without a module preamble.
    env : dict[str, str]
        Variables set in the child process environment (NetCDF paths etc.).
    ld_library_path : list[str]
        Directories prepended to ``LD_LIBRARY_PATH`` in the child environment.
    make : str
        Make command used for the compile step.
    make_jobs : int
        Number of parallel make jobs.
    """
    modules: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    ld_library_path: List[str] = field(default_factory=list)
    make: str = "make"
    make_jobs: int = 8

    def child_env(self, base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Return a copy of ``base`` (default: os.environ) with this environment applied."""
        env = dict(os.environ if base is None else base)
        env.update({k: str(v) for k, v in self.env.items()})
        if self.ld_library_path:
            prepend = os.pathsep.join(self.ld_library_path)
            current = env.get("LD_LIBRARY_PATH", "")
            env["LD_LIBRARY_PATH"] = prepend + (os.pathsep + current if current else "")
        return env


@dataclass
class ConfigureOptions:
    """Fixed flags passed to the CAM ``configure`` tool."""
    dyn: str = "eul"
    res: str = "64x128"
    ocn: str = "dom"
    comp_intf: str = "mct"
    cppdefs: List[str] = field(default_factory=lambda: ["-DDISABLE_TIMERS"])


@dataclass
class SlurmDefaults:
    """Scheduler directives used when generating batch scripts."""
    account: Optional[str] = None
    partition: Optional[str] = None
    nodes: int = 1
    ntasks_per_node: int = 1
    cpus_per_task: int = 1
    wallclock_time: str = "01:00:00"
    mail_user: Optional[str] = None


@dataclass
class DataPaths:
    here: Path
    cam_root: Path
    csmdata: Path
    work_root: Path
    mods_dir: Path
    cases_yaml: Path
    machines_yaml: Path


@dataclass
class MachineSpec:
    name: str
    build_env: BuildEnvironment
    configure: ConfigureOptions
    slurm: SlurmDefaults
    raw_paths: Dict[str, str] = field(default_factory=dict)
    keep_last: Optional[int] = None


def list_machines(path: Path) -> List[str]:
    """Return the sorted machine ids defined in ``path`` (empty if missing)."""
    if not path.exists():
        return []
    with path.open() as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return []
    return sorted(data.keys())


def load_machine(path: Path, system_id: str) -> MachineSpec:
    """
    Load the configuration block for ``system_id`` from a machines YAML file.

    Raises
    ------
    KeyError
        If the system is not defined in the file.
    """
    with path.open() as f:
        data = yaml.safe_load(f) or {}

    if system_id not in data:
        raise KeyError(f"System '{system_id}' not found in machines YAML file: {path}")

    block: Dict[str, Any] = data[system_id] or {}

    env_block = block.get("environment", {}) or {}
    build_env = BuildEnvironment(
        modules=list(env_block.get("modules", []) or []),
        env={k: str(v) for k, v in (env_block.get("env", {}) or {}).items()},
        ld_library_path=list(env_block.get("ld_library_path", []) or []),
        make=env_block.get("make", "make"),
        make_jobs=int(env_block.get("make_jobs", 8)),
    )

    cfg_block = block.get("configure", {}) or {}
    configure = ConfigureOptions(**cfg_block)

    slurm = SlurmDefaults(**(block.get("slurm", {}) or {}))

    keep_last = block.get("keep_last")

    return MachineSpec(
        name=system_id,
        build_env=build_env,
        configure=configure,
        slurm=slurm,
        raw_paths={k: str(v) for k, v in (block.get("paths", {}) or {}).items()},
        keep_last=int(keep_last) if keep_last is not None else None,
    )


def _resolve_paths(machine_spec: MachineSpec, machines_yaml: Path) -> DataPaths:
    raw = machine_spec.raw_paths

    def _pick(env_var: str, key: str, default: Path) -> Path:
        value = os.environ.get(env_var) or raw.get(key)
        return Path(os.path.expandvars(value)).expanduser().resolve() if value else default

    home = Path.home()
    return DataPaths(
        here=HERE,
        cam_root=_pick("TAISCAM_CAM_ROOT", "cam_root", home / "TaiESM1"),
        csmdata=_pick("TAISCAM_CSMDATA", "csmdata", home / "inputdata"),
        work_root=_pick("TAISCAM_WORK_ROOT", "work_root", home / "scam_work"),
        mods_dir=_pick("TAISCAM_MODS_DIR", "mods_dir", home / "scam_mods"),
        cases_yaml=_pick("TAISCAM_CASES_YAML", "cases_yaml", HERE / "scam_cases.yml"),
        machines_yaml=machines_yaml,
    )


def configure_system(system_id: Optional[str] = None, machines_yaml: Optional[Path] = None) -> None:
    """(Re)load the module-level ``system``, ``machine`` and ``paths``."""
    global system, machine, paths
    machines_yaml = machines_yaml or Path(
        os.environ.get("TAISCAM_MACHINES_YAML", HERE / "machines.yml")
    )
    system_id = system_id or os.environ.get("TAISCAM_SYSTEM", DEFAULT_SYSTEM)
    spec = load_machine(machines_yaml, system_id)
    system, machine, paths = system_id, spec, _resolve_paths(spec, machines_yaml)


system: str
machine: MachineSpec
paths: DataPaths

configure_system()
