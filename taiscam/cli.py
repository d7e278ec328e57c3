"""
Command line interface for taiscam.

    taiscam run    --experiment qq_scm_taiesm1 --iop dycomsrf01 --surface-flux interactive
    taiscam plan   --iop twp06
    taiscam submit --iop twp06 --account MST000000
    taiscam list

Exit status: 0 on success, 99 when the SCAM binary fails, 1 for every other
failure.
"""
from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import argparse
import shlex
import subprocess
import sys

from . import config
from . import slurm
from ._core import ScamCase
from .catalog import load_catalog
from .exceptions import ScamError


DEFAULT_EXPERIMENT = "qq_scm_taiesm1"
DEFAULT_IOP = "dycomsrf01"
DEFAULT_PHYSICS = "cam5"
DEFAULT_SURFACE_FLUX = "prescribed"


def _add_case_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-e", "--experiment", default=DEFAULT_EXPERIMENT,
                        help=f"experiment name (default: {DEFAULT_EXPERIMENT})")
    parser.add_argument("-i", "--iop", default=DEFAULT_IOP,
                        help=f"IOP case name (default: {DEFAULT_IOP})")
    parser.add_argument("-p", "--physics", default=DEFAULT_PHYSICS,
                        help=f"physics package (default: {DEFAULT_PHYSICS})")
    parser.add_argument("-s", "--surface-flux", default=DEFAULT_SURFACE_FLUX,
                        help="surface fluxes: prescribed (psflx) or interactive (isflx)")
    parser.add_argument("--keep-last", type=int, default=None,
                        help="after a successful run keep only the newest N cases of the experiment")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taiscam",
        description="Configure, build and run TaiESM1 SCAM cases.",
    )
    parser.add_argument("-m", "--machine", default=None,
                        help="machine id from machines.yml (default: $TAISCAM_SYSTEM or generic)")
    parser.add_argument("--cases-file", default=None,
                        help="case catalog YAML (default: packaged scam_cases.yml)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_run = sub.add_parser("run", help="build and run a case")
    _add_case_arguments(p_run)
    p_run.set_defaults(func=cmd_run)

    p_plan = sub.add_parser("plan", help="show the case id, configure command and namelist")
    _add_case_arguments(p_plan)
    p_plan.set_defaults(func=cmd_plan)

    p_submit = sub.add_parser("submit", help="write a Slurm batch script for a case and submit it")
    _add_case_arguments(p_submit)
    p_submit.add_argument("--account", default=None, help="Slurm account")
    p_submit.add_argument("--partition", default=None, help="Slurm partition")
    p_submit.add_argument("--time", dest="wallclock_time", default=None, help="wallclock limit HH:MM:SS")
    p_submit.add_argument("--mail-user", default=None, help="address notified when the job fails")
    p_submit.add_argument("--no-submit", action="store_true", help="only write the batch script")
    p_submit.set_defaults(func=cmd_submit)

    p_list = sub.add_parser("list", help="list IOP cases, physics packages and machines")
    p_list.set_defaults(func=cmd_list)

    return parser


def _scam_case(args: argparse.Namespace) -> ScamCase:
    return ScamCase(
        experiment=args.experiment,
        iop=args.iop,
        physics=args.physics,
        surface_flux=args.surface_flux,
        keep_last=args.keep_last,
    )


def cmd_run(args: argparse.Namespace) -> int:
    _scam_case(args).run_all()
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    plan = _scam_case(args).plan()
    print(f"Case      : {plan['case_id']}")
    print(f"Build dir : {plan['build_dir']}")
    print(f"Run dir   : {plan['run_dir']}")
    print(f"Aerosol   : {plan['aerosol_mode']}")
    print(f"Configure : {' '.join(shlex.quote(a) for a in plan['configure'])}")
    print("Namelist input:")
    print(plan["namelist"], end="")
    return 0


def cmd_submit(args: argparse.Namespace) -> int:
    # resolve first so bad options fail here rather than inside the job
    _scam_case(args).plan()

    overrides = {
        k: getattr(args, k)
        for k in ("account", "partition", "wallclock_time", "mail_user")
        if getattr(args, k) is not None
    }
    settings = replace(config.machine.slurm, **overrides)

    run_args = [
        "--machine", config.system,
        "--cases-file", str(config.paths.cases_yaml),
        "run",
        "--experiment", args.experiment,
        "--iop", args.iop,
        "--physics", args.physics,
        "--surface-flux", args.surface_flux,
    ]
    if args.keep_last is not None:
        run_args += ["--keep-last", str(args.keep_last)]

    script = slurm.generate_batch_script(
        run_args,
        name=slurm.job_name(args.experiment, args.iop),
        jobs_dir=config.paths.work_root / args.experiment / "jobs",
        slurm=settings,
    )
    if not args.no_submit:
        slurm.submit(script)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    catalog = load_catalog(config.paths.cases_yaml)
    print("IOP cases:")
    for name, case in sorted(catalog.iop_cases.items()):
        kind = "generic" if case.generic else f"stop_n={case.stop_n}, nhtfrq={case.nhtfrq}"
        print(f"  {name:<12} aerosol={catalog.aerosol_mode(name):<10} {kind}")
    print("Physics packages:")
    for name, pkg in sorted(catalog.physics.items()):
        print(f"  {name:<12} -phys {pkg.phys}{' (custom, -usr_src)' if pkg.custom else ''}")
    print("Machines:")
    for name in config.list_machines(config.paths.machines_yaml):
        print(f"  {name}{' (selected)' if name == config.system else ''}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.machine is not None:
            config.configure_system(args.machine)
    except KeyError as exc:
        known = config.list_machines(config.paths.machines_yaml)
        print(f"ERROR: {exc.args[0]}. Known machines: {', '.join(known) or '(none)'}", file=sys.stderr)
        return 1
    if args.cases_file is not None:
        config.paths.cases_yaml = Path(args.cases_file).expanduser().resolve()

    try:
        return args.func(args)
    except ScamError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return exc.exit_code
    except (ValueError, FileNotFoundError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except subprocess.CalledProcessError as exc:
        print(f"ERROR: sbatch failed: {(exc.stderr or '').strip()}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
