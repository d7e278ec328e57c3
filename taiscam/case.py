from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from .catalog import CaseCatalog, IopCase, PhysicsPackage
from .exceptions import UnsupportedOption


# surface-flux mode -> short tag used in the case identifier
SURFACE_FLUX_TAGS = {
    "prescribed": "psflx",
    "interactive": "isflx",
}

SURFACE_FLUX_FRAGMENTS = {
    "prescribed": "scm_iop_srf_prop= .true.,",
    "interactive": "scm_iop_srf_prop= .false.,",
}

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


@dataclass(frozen=True)
class ResolvedCase:
    """Everything derived from the user's case choices."""
    experiment: str
    iop: IopCase
    physics: PhysicsPackage
    surface_flux: str
    case_id: str
    aerosol_mode: str
    surface_flux_fragment: str
    case_dir: Path
    build_dir: Path
    run_dir: Path

    @property
    def surface_flux_tag(self) -> str:
        return SURFACE_FLUX_TAGS[self.surface_flux]


def normalize_surface_flux(mode: str) -> str:
    """
    Map a surface-flux mode (or its short tag) to its canonical name.

    Raises
    ------
    UnsupportedOption
        If ``mode`` is neither "prescribed"/"interactive" nor "psflx"/"isflx".
    """
    if mode in SURFACE_FLUX_TAGS:
        return mode
    for name, tag in SURFACE_FLUX_TAGS.items():
        if mode == tag:
            return name
    raise UnsupportedOption(
        f"Unsupported surface-flux mode '{mode}'. "
        f"Choose one of: {', '.join(SURFACE_FLUX_TAGS)} (or {', '.join(SURFACE_FLUX_TAGS.values())})"
    )


def surface_flux_fragment(mode: str) -> str:
    """Return the ``scm_iop_srf_prop`` namelist line for a surface-flux mode."""
    return SURFACE_FLUX_FRAGMENTS[normalize_surface_flux(mode)]


def make_case_id(experiment: str, iop: str, surface_flux: str, now: Optional[datetime] = None) -> str:
    """Return ``{experiment}.{iop}.{psflx|isflx}.{YYYYmmddHHMMSS}``."""
    now = now or datetime.now()
    tag = SURFACE_FLUX_TAGS[normalize_surface_flux(surface_flux)]
    return f"{experiment}.{iop}.{tag}.{now.strftime(TIMESTAMP_FORMAT)}"


def resolve_case(
    catalog: CaseCatalog,
    work_root: Path,
    experiment: str,
    iop: str,
    physics: str,
    surface_flux: str,
    now: Optional[datetime] = None,
) -> ResolvedCase:
    """
    Validate the case choices and derive identifiers and directories.

    Nothing is created on disk.

    Parameters
    ----------
    catalog : CaseCatalog
        Known IOP cases and physics packages.
    work_root : Path
        Root under which ``{experiment}/{case_id}/{bld,run}`` live.
    experiment : str
        Experiment name (a single path component).
    iop : str
        IOP case name.
    physics : str
        Physics package name.
    surface_flux : str
        "prescribed" or "interactive" ("psflx"/"isflx" accepted).
    now : datetime, optional
        Timestamp used in the case identifier (defaults to now).

    Raises
    ------
    UnsupportedOption
        If any choice is outside its allowed set.
    """
    mode = normalize_surface_flux(surface_flux)

    if not experiment or "/" in experiment or experiment in (".", ".."):
        raise UnsupportedOption(f"Invalid experiment name: '{experiment}'")

    if iop not in catalog.iop_cases:
        raise UnsupportedOption(
            f"Unsupported IOP case '{iop}'. Known cases: {', '.join(sorted(catalog.iop_cases))}"
        )

    if physics not in catalog.physics:
        raise UnsupportedOption(
            f"Unsupported physics package '{physics}'. Known packages: {', '.join(sorted(catalog.physics))}"
        )

    case_id = make_case_id(experiment, iop, mode, now=now)
    case_dir = Path(work_root).resolve() / experiment / case_id

    return ResolvedCase(
        experiment=experiment,
        iop=catalog.iop_cases[iop],
        physics=catalog.physics[physics],
        surface_flux=mode,
        case_id=case_id,
        aerosol_mode=catalog.aerosol_mode(iop),
        surface_flux_fragment=surface_flux_fragment(mode),
        case_dir=case_dir,
        build_dir=case_dir / "bld",
        run_dir=case_dir / "run",
    )
