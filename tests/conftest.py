"""
Shared fixtures.

External tools (configure, make, build-namelist and the SCAM binary) are
replaced with small Python scripts written into tmp_path. Their exit status
is controlled with FAKE_CONFIGURE_RC, FAKE_MAKE_RC, FAKE_NAMELIST_RC and
FAKE_CAM_RC.
"""
from datetime import datetime
from pathlib import Path
import sys
import textwrap

import pytest

from taiscam import config
from taiscam.catalog import load_catalog
from taiscam.config import (
    BuildEnvironment,
    ConfigureOptions,
    DataPaths,
    MachineSpec,
    SlurmDefaults,
)


FAKE_CONFIGURE = """
import os
import sys
from pathlib import Path

Path("configure.args").write_text("\\n".join(sys.argv[1:]))
print("configure", " ".join(sys.argv[1:]))
Path("Makefile").write_text("all:\\n")
sys.exit(int(os.environ.get("FAKE_CONFIGURE_RC", "0")))
"""

FAKE_CAM = """
import os
import sys

print("SCAM starting")
print("namelists:", " ".join(sorted(f for f in os.listdir(".") if f.endswith("_in"))))
sys.exit(int(os.environ.get("FAKE_CAM_RC", "0")))
"""

FAKE_MAKE = """
import os
import sys
from pathlib import Path

print("compiling SCAM")
print("make error: something broke", file=sys.stderr)
rc = int(os.environ.get("FAKE_MAKE_RC", "0"))
if rc == 0 and not os.environ.get("FAKE_MAKE_NO_EXE"):
    exe = Path("cam")
    exe.write_text(Path(os.environ["FAKE_CAM_SOURCE"]).read_text())
    exe.chmod(0o755)
sys.exit(rc)
"""

FAKE_BUILD_NAMELIST = """
import os
import shutil
import sys

args = sys.argv[1:]
infile = args[args.index("-infile") + 1]
rc = int(os.environ.get("FAKE_NAMELIST_RC", "0"))
if rc == 0 and not os.environ.get("FAKE_NAMELIST_NO_OUTPUT"):
    shutil.copy(infile, "atm_in")
    with open("drv_in", "w") as f:
        f.write("&seq_timemgr_inparm\\n/\\n")
print("build-namelist", " ".join(args))
sys.exit(rc)
"""


def write_script(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body).lstrip())
    path.chmod(0o755)
    return path


@pytest.fixture
def fixed_now():
    return datetime(2024, 5, 1, 12, 30, 45)


@pytest.fixture
def catalog():
    return load_catalog(config.HERE / "scam_cases.yml")


@pytest.fixture
def test_paths(tmp_path, monkeypatch):
    """Point taiscam.config at a fake CAM tree under tmp_path."""
    cam_root = tmp_path / "TaiESM1"
    bld = cam_root / "models" / "atm" / "cam" / "bld"
    write_script(bld / "configure", FAKE_CONFIGURE)
    write_script(bld / "build-namelist", FAKE_BUILD_NAMELIST)
    make = write_script(tmp_path / "bin" / "fake-make", FAKE_MAKE)
    cam_source = write_script(tmp_path / "bin" / "fake-cam", FAKE_CAM)

    mods_dir = tmp_path / "scam_mods"
    mods_dir.mkdir()
    (mods_dir / "micro_mg_cam.F90").write_text("! modified microphysics\n")

    csmdata = tmp_path / "inputdata"
    csmdata.mkdir()

    paths = DataPaths(
        here=config.HERE,
        cam_root=cam_root,
        csmdata=csmdata,
        work_root=tmp_path / "work",
        mods_dir=mods_dir,
        cases_yaml=config.HERE / "scam_cases.yml",
        machines_yaml=config.HERE / "machines.yml",
    )
    machine = MachineSpec(
        name="test",
        build_env=BuildEnvironment(
            modules=[],
            env={"NETCDF": str(tmp_path / "netcdf")},
            ld_library_path=[str(tmp_path / "netcdf" / "lib")],
            make=str(make),
            make_jobs=2,
        ),
        configure=ConfigureOptions(),
        slurm=SlurmDefaults(account="MST000000", partition="ct56", mail_user="scam@example.org"),
    )

    monkeypatch.setattr(config, "paths", paths)
    monkeypatch.setattr(config, "machine", machine)
    monkeypatch.setattr(config, "system", "test")
    monkeypatch.setenv("FAKE_CAM_SOURCE", str(cam_source))
    for var in ("FAKE_CONFIGURE_RC", "FAKE_MAKE_RC", "FAKE_NAMELIST_RC", "FAKE_CAM_RC",
                "FAKE_MAKE_NO_EXE", "FAKE_NAMELIST_NO_OUTPUT"):
        monkeypatch.delenv(var, raising=False)
    return paths


@pytest.fixture
def resolved(catalog, test_paths, fixed_now):
    """dycomsrf01 / interactive case with directories created."""
    from taiscam.case import resolve_case
    from taiscam.workspace import prepare_directories

    r = resolve_case(
        catalog,
        work_root=test_paths.work_root,
        experiment="qq_scm_taiesm1",
        iop="dycomsrf01",
        physics="cam5",
        surface_flux="interactive",
        now=fixed_now,
    )
    prepare_directories(r, log_func=lambda msg: None)
    return r
