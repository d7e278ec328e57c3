from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from . import build
from . import config
from . import namelist
from . import run
from . import workspace
from .case import ResolvedCase, resolve_case
from .catalog import CaseCatalog, load_catalog
from .config import BuildEnvironment
from .exceptions import ScamError


class Stage:
    """Stages of the orchestration pipeline, in order."""
    START = "START"
    ENV_READY = "ENV_READY"
    CASE_RESOLVED = "CASE_RESOLVED"
    WORKSPACE_READY = "WORKSPACE_READY"
    CONFIGURED = "CONFIGURED"
    COMPILED = "COMPILED"
    NAMELIST_READY = "NAMELIST_READY"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"

    ORDER = [
        START,
        ENV_READY,
        CASE_RESOLVED,
        WORKSPACE_READY,
        CONFIGURED,
        COMPILED,
        NAMELIST_READY,
        RUNNING,
        DONE,
    ]


@dataclass
class ScamCase:
    """
    One SCAM invocation: environment, case resolution, build, namelists, run.

    Typical usage
    -------------
    scam = ScamCase(
        experiment="qq_scm_taiesm1",
        iop="dycomsrf01",
        physics="cam5",
        surface_flux="interactive",
    )
    scam.run_all()

    Each step may also be called individually, in pipeline order. When a step
    raises, ``stage`` becomes ``Stage.FAILED`` and ``failed_stage`` holds the
    stage that was being entered. Errors are never retried.
    """

    experiment: str
    iop: str
    physics: str = "cam5"
    surface_flux: str = "prescribed"
    keep_last: Optional[int] = None
    now: Optional[datetime] = None
    log_func: Callable[[str], None] = print
    stage: str = field(init=False, default=Stage.START)
    failed_stage: Optional[str] = field(init=False, default=None)
    build_env: Optional[BuildEnvironment] = field(init=False, default=None)
    catalog: Optional[CaseCatalog] = field(init=False, default=None)
    resolved: Optional[ResolvedCase] = field(init=False, default=None)
    executable: Optional[Path] = field(init=False, default=None)
    namelists: List[Path] = field(init=False, default_factory=list)
    run_log: Optional[Path] = field(init=False, default=None)
    _case_log: Optional[Path] = field(init=False, default=None, repr=False)

    def __post_init__(self):
        if self.keep_last is None:
            self.keep_last = config.machine.keep_last
        workspace.check_keep_last(self.keep_last)

    def log(self, msg: str = "") -> None:
        text = str(msg)
        self.log_func(text)
        if self._case_log is not None:
            with self._case_log.open("a") as f:
                f.write(text + "\n")

    def _advance(self, expected: str, target: str, step: Callable[[], Any]) -> Any:
        if self.stage != expected:
            raise RuntimeError(
                f"Cannot enter {target} from {self.stage}; expected stage {expected}."
            )
        try:
            result = step()
        except ScamError:
            self._fail(target)
            raise
        self.stage = target
        return result

    def _fail(self, stage: str) -> None:
        self.stage = Stage.FAILED
        self.failed_stage = stage
        # only the case directory this invocation created carries its status
        if self._case_log is not None:
            workspace.update_case_status(self.resolved, workspace.STATUS_FAILED, failed_stage=stage)

    # -----------------------------------------------------
    # Pipeline steps
    # -----------------------------------------------------

    def setup_environment(self) -> BuildEnvironment:
        def _step():
            self.build_env = config.machine.build_env
            self.log(f"System            : {config.system}")
            self.log(f"Modules           : {' '.join(self.build_env.modules) or '(none)'}")
            return self.build_env

        return self._advance(Stage.START, Stage.ENV_READY, _step)

    def resolve(self) -> ResolvedCase:
        def _step():
            self.catalog = load_catalog(config.paths.cases_yaml)
            self.resolved = resolve_case(
                self.catalog,
                work_root=config.paths.work_root,
                experiment=self.experiment,
                iop=self.iop,
                physics=self.physics,
                surface_flux=self.surface_flux,
                now=self.now,
            )
            return self.resolved

        return self._advance(Stage.ENV_READY, Stage.CASE_RESOLVED, _step)

    def prepare_workspace(self) -> None:
        def _step():
            r = self.resolved
            workspace.prepare_directories(r, log_func=self.log)
            self._case_log = r.build_dir / f"taiscam.{r.case_id}.log"
            self.log(f"Case              : {r.case_id}")
            self.log(f"IOP               : {r.iop.name}{' (generic template)' if r.iop.generic else ''}")
            self.log(f"Physics           : {r.physics.name}")
            self.log(f"Surface flux      : {r.surface_flux}")
            self.log(f"Aerosol mode      : {r.aerosol_mode}")
            self.log(f"Build dir         : {r.build_dir}")
            self.log(f"Run dir           : {r.run_dir}")
            workspace.backup_sources(r, config.paths.mods_dir, log_func=self.log)
            workspace.write_case_record(
                r,
                extra={
                    "system": config.system,
                    "modules": list(self.build_env.modules),
                    "configure": self.configure_command(),
                },
            )

        self._advance(Stage.CASE_RESOLVED, Stage.WORKSPACE_READY, _step)

    def configure_command(self) -> List[str]:
        if self.resolved is None:
            raise RuntimeError("You must call ScamCase.resolve() before building the configure command.")
        return build.configure_command(
            self.resolved,
            config.paths.cam_root,
            config.paths.mods_dir,
            config.machine.configure,
        )

    def configure(self) -> None:
        self._advance(
            Stage.WORKSPACE_READY,
            Stage.CONFIGURED,
            lambda: build.configure(
                self.resolved,
                config.paths.cam_root,
                config.paths.mods_dir,
                config.machine.configure,
                self.build_env,
                log_func=self.log,
            ),
        )

    def compile(self) -> Path:
        def _step():
            self.executable = build.compile_model(self.resolved, self.build_env, log_func=self.log)
            return self.executable

        return self._advance(Stage.CONFIGURED, Stage.COMPILED, _step)

    def generate_namelist(self) -> List[Path]:
        def _step():
            self.namelists = namelist.build_namelist(
                self.resolved,
                config.paths.cam_root,
                config.paths.csmdata,
                self.build_env,
                log_func=self.log,
            )
            return self.namelists

        return self._advance(Stage.COMPILED, Stage.NAMELIST_READY, _step)

    def run(self) -> Path:
        # RUNNING is entered before the binary starts; DONE only on success.
        self._advance(Stage.NAMELIST_READY, Stage.RUNNING, lambda: None)
        try:
            self.run_log = run.launch(
                self.resolved,
                self.executable,
                env=self.build_env.child_env(),
                log_func=self.log,
            )
        except ScamError:
            self._fail(Stage.RUNNING)
            raise
        self.stage = Stage.DONE
        workspace.update_case_status(self.resolved, workspace.STATUS_DONE)
        return self.run_log

    def run_all(self) -> Path:
        """Run the whole pipeline; returns the run log."""
        self.setup_environment()
        self.resolve()
        self.prepare_workspace()
        self.configure()
        self.compile()
        self.generate_namelist()
        log_file = self.run()

        workspace.prune_cases(
            self.resolved.case_dir.parent, self.keep_last, log_func=self.log
        )
        self.log(f"Done: {self.resolved.case_id}")
        return log_file

    def plan(self) -> Dict[str, Any]:
        """
        Resolve the case and return what would be done, without touching the
        filesystem or running anything.
        """
        if self.stage == Stage.START:
            self.setup_environment()
        if self.stage == Stage.ENV_READY:
            self.resolve()
        r = self.resolved
        return {
            "case_id": r.case_id,
            "build_dir": r.build_dir,
            "run_dir": r.run_dir,
            "aerosol_mode": r.aerosol_mode,
            "configure": self.configure_command(),
            "namelist": namelist.render_namelist(r, config.paths.csmdata),
        }
