from __future__ import annotations

from pathlib import Path
from typing import Callable, List

import shlex
import subprocess
import textwrap

from .config import SlurmDefaults


def job_name(experiment: str, iop: str) -> str:
    return f"{experiment}.{iop}"


def generate_batch_script(
    run_args: List[str],
    name: str,
    jobs_dir: Path,
    slurm: SlurmDefaults,
    log_func: Callable[[str], None] = print,
) -> Path:
    """
    Write a Slurm batch script that runs ``taiscam`` with ``run_args``.

    Parameters
    ----------
    run_args : list[str]
        Arguments passed to ``taiscam`` inside the job (e.g. ["run", "--iop", "twp06"]).
    name : str
        Job name; the script is ``{jobs_dir}/{name}.sbatch``.
    jobs_dir : Path
        Directory for the script and the scheduler's stdout/stderr files.
    slurm : SlurmDefaults
        Account, partition, resources, wallclock and failure-mail settings.

    Returns
    -------
    Path
        Path to the generated batch script.

    Raises
    ------
    ValueError
        If account or partition are not set.
    """
    if not slurm.account:
        raise ValueError("'account' is required to generate a Slurm batch script")
    if not slurm.partition:
        raise ValueError("'partition' is required to generate a Slurm batch script")

    jobs_dir.mkdir(parents=True, exist_ok=True)
    script_path = jobs_dir / f"{name}.sbatch"
    stdout_path = jobs_dir / f"{name}.%j.out"
    stderr_path = jobs_dir / f"{name}.%j.err"

    directives = [
        f"#SBATCH --job-name={name}",
        f"#SBATCH --account={slurm.account}",
        f"#SBATCH --partition={slurm.partition}",
        f"#SBATCH --nodes={slurm.nodes}",
        f"#SBATCH --ntasks-per-node={slurm.ntasks_per_node}",
        f"#SBATCH --cpus-per-task={slurm.cpus_per_task}",
        f"#SBATCH --time={slurm.wallclock_time}",
        f"#SBATCH --output={stdout_path}",
        f"#SBATCH --error={stderr_path}",
    ]
    if slurm.mail_user:
        directives += [
            "#SBATCH --mail-type=FAIL",
            f"#SBATCH --mail-user={slurm.mail_user}",
        ]

    command = " ".join(shlex.quote(arg) for arg in ["taiscam", *run_args])

    script_content = "#!/bin/bash\n" + "\n".join(directives) + "\n" + textwrap.dedent(f"""
        cd {shlex.quote(str(jobs_dir))}

        {command}
    """)

    script_path.write_text(script_content)
    script_path.chmod(0o755)

    log_func(f"Generated Slurm batch script: {script_path}")
    log_func(f"  stdout: {stdout_path}")
    log_func(f"  stderr: {stderr_path}")
    return script_path


def submit(script_path: Path, log_func: Callable[[str], None] = print) -> str:
    """Submit a batch script with ``sbatch`` and return its stdout."""
    log_func(f"Submitting Slurm job: {script_path}")
    result = subprocess.run(
        ["sbatch", str(script_path)],
        capture_output=True,
        text=True,
        check=True,
    )
    output = result.stdout.strip()
    log_func(output)
    return output
