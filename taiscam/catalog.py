from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


@dataclass
class PhysicsPackage:
    """
    Physics package selectable for a SCAM build.

    Parameters
    ----------
    name : str
        Key used on the command line (e.g., "cam5", "taiesm1").
    phys : str
        Value passed to ``configure -phys``.
    custom : bool
        Custom packages are built from the modifications directory
        (``-usr_src``) and take no chemistry/aerosol flag.
    """
    name: str
    phys: str
    custom: bool = False


@dataclass
class IopCase:
    """
    Namelist settings for one IOP (Intensive Observation Period).

    Parameters
    ----------
    name : str
        IOP name, also the build-namelist ``-use_case``.
    iopfile : str
        Forcing dataset; may contain ``{CSMDATA}`` and ``{IOP}``.
    ncdata : str
        Initial-conditions dataset; may contain ``{CSMDATA}``.
    dtime : int
        Model time step in seconds.
    stop_n : int
        Number of steps to run (``stop_option = 'nsteps'``).
    nhtfrq : int
        History output frequency (negative values are hours).
    mfilt : int
        Time samples per history file.
    surface_flux : bool
        Whether the template carries the ``scm_iop_srf_prop`` setting.
    diagnostics : list[str]
        Extra history fields (``fincl1``); empty for minimal output.
    generic : bool
        True when the case has no dedicated settings and uses the generic
        template.
    """
    name: str
    iopfile: str
    ncdata: str
    dtime: int
    stop_n: int
    nhtfrq: int
    mfilt: int
    surface_flux: bool = True
    diagnostics: List[str] = field(default_factory=list)
    generic: bool = False

    def resolve_path(self, template: str, csmdata: Path) -> str:
        """Expand ``{CSMDATA}`` and ``{IOP}`` in a dataset path."""
        return template.replace("{CSMDATA}", str(csmdata)).replace("{IOP}", self.name)


@dataclass
class CaseCatalog:
    """IOP cases, physics packages and the aerosol lookup."""
    iop_cases: Dict[str, IopCase]
    physics: Dict[str, PhysicsPackage]
    aerosol_scheme: str
    aerosol_iops: List[str]

    def aerosol_mode(self, iop: str) -> str:
        """Return the aerosol scheme for ``iop``; "none" if it has none."""
        return self.aerosol_scheme if iop in self.aerosol_iops else "none"


def _parse_iop_case(
    name: str,
    block: Optional[Dict[str, Any]],
    defaults: Dict[str, Any],
    diagnostics: Dict[str, List[str]],
) -> IopCase:
    block = block or {}
    merged = {**defaults, **block}

    diag_key = block.get("diagnostics")
    if diag_key is None:
        fields: List[str] = []
    elif isinstance(diag_key, list):
        fields = [str(v) for v in diag_key]
    elif diag_key in diagnostics:
        fields = list(diagnostics[diag_key])
    else:
        raise ValueError(f"IOP case '{name}' refers to unknown diagnostics list '{diag_key}'")

    for key in ("iopfile", "ncdata", "dtime", "stop_n", "nhtfrq", "mfilt"):
        if key not in merged:
            raise ValueError(f"IOP case '{name}' must specify '{key}' (or set it under 'defaults')")

    return IopCase(
        name=name,
        iopfile=str(merged["iopfile"]),
        ncdata=str(merged["ncdata"]),
        dtime=int(merged["dtime"]),
        stop_n=int(merged["stop_n"]),
        nhtfrq=int(merged["nhtfrq"]),
        mfilt=int(merged["mfilt"]),
        surface_flux=bool(merged.get("surface_flux", True)),
        diagnostics=fields,
        generic=not block,
    )


def load_catalog(path: Path) -> CaseCatalog:
    """
    Load IOP cases, physics packages and the aerosol lookup from a YAML file.

    Raises
    ------
    FileNotFoundError
        If the catalog file does not exist.
    ValueError
        If required sections or fields are missing.
    """
    if not path.exists():
        raise FileNotFoundError(f"Case catalog not found: {path}")

    with path.open() as f:
        data = yaml.safe_load(f) or {}

    if not data.get("iop_cases"):
        raise ValueError(f"Case catalog {path} must define 'iop_cases'")
    if not data.get("physics"):
        raise ValueError(f"Case catalog {path} must define 'physics'")

    defaults = data.get("defaults", {}) or {}
    diagnostics = data.get("diagnostics", {}) or {}

    iop_cases = {
        name: _parse_iop_case(name, block, defaults, diagnostics)
        for name, block in data["iop_cases"].items()
    }

    physics: Dict[str, PhysicsPackage] = {}
    for name, block in data["physics"].items():
        block = block or {}
        physics[name] = PhysicsPackage(
            name=name,
            phys=block.get("phys", name),
            custom=bool(block.get("custom", False)),
        )

    aerosol = data.get("aerosol", {}) or {}

    return CaseCatalog(
        iop_cases=iop_cases,
        physics=physics,
        aerosol_scheme=aerosol.get("scheme", "none"),
        aerosol_iops=list(aerosol.get("iops", []) or []),
    )
