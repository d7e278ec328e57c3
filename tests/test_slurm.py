"""
Tests for the slurm.py module.
"""
from unittest.mock import MagicMock, patch
import os

import pytest

from taiscam.config import SlurmDefaults
from taiscam.slurm import generate_batch_script, job_name, submit


def _quiet(msg):
    pass


class TestGenerateBatchScript:
    """Tests for generate_batch_script."""

    def test_directives(self, tmp_path):
        settings = SlurmDefaults(
            account="MST000000",
            partition="ct56",
            nodes=1,
            ntasks_per_node=1,
            cpus_per_task=8,
            wallclock_time="04:00:00",
            mail_user="scam@example.org",
        )
        script = generate_batch_script(
            ["run", "--iop", "twp06"], "exp.twp06", tmp_path / "jobs", settings, log_func=_quiet
        )

        assert script == tmp_path / "jobs" / "exp.twp06.sbatch"
        assert os.access(script, os.X_OK)
        text = script.read_text()
        assert text.startswith("#!/bin/bash\n")
        for directive in (
            "--job-name=exp.twp06",
            "--account=MST000000",
            "--partition=ct56",
            "--nodes=1",
            "--ntasks-per-node=1",
            "--cpus-per-task=8",
            "--time=04:00:00",
            f"--output={tmp_path / 'jobs' / 'exp.twp06.%j.out'}",
            f"--error={tmp_path / 'jobs' / 'exp.twp06.%j.err'}",
            "--mail-type=FAIL",
            "--mail-user=scam@example.org",
        ):
            assert f"#SBATCH {directive}\n" in text
        assert "taiscam run --iop twp06" in text

    def test_no_mail_without_user(self, tmp_path):
        settings = SlurmDefaults(account="A", partition="P")
        script = generate_batch_script(["run"], "job", tmp_path, settings, log_func=_quiet)
        assert "--mail-type" not in script.read_text()

    @pytest.mark.parametrize("settings", [SlurmDefaults(partition="P"), SlurmDefaults(account="A")])
    def test_requires_account_and_partition(self, tmp_path, settings):
        with pytest.raises(ValueError):
            generate_batch_script(["run"], "job", tmp_path, settings, log_func=_quiet)

    def test_job_name(self):
        assert job_name("qq_scm_taiesm1", "twp06") == "qq_scm_taiesm1.twp06"


class TestSubmit:
    """Tests for submit."""

    def test_submit(self, tmp_path):
        script = tmp_path / "job.sbatch"
        result = MagicMock(stdout="Submitted batch job 1234\n")
        with patch("taiscam.slurm.subprocess.run", return_value=result) as mock_run:
            out = submit(script, log_func=_quiet)
        assert out == "Submitted batch job 1234"
        mock_run.assert_called_once_with(
            ["sbatch", str(script)], capture_output=True, text=True, check=True
        )
