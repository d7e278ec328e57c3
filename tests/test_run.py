"""
Tests for the run.py module (execution launcher).
"""
import pytest

from taiscam import config
from taiscam.build import compile_model
from taiscam.exceptions import RunFailed
from taiscam.run import RUN_LOG, launch, link_executable, stage_namelists


def _quiet(msg):
    pass


@pytest.fixture
def built(resolved):
    """Resolved case with a compiled binary and namelists in the build directory."""
    exe = compile_model(resolved, config.machine.build_env, log_func=_quiet)
    (resolved.build_dir / "atm_in").write_text("&camexp\n/\n")
    (resolved.build_dir / "drv_in").write_text("&seq_timemgr_inparm\n/\n")
    (resolved.build_dir / "tmp_namelistfile").write_text("not copied\n")
    return resolved, exe


class TestStaging:
    """Tests for namelist staging and executable linking."""

    def test_stage_namelists(self, built):
        resolved, _ = built
        copied = stage_namelists(resolved, log_func=_quiet)
        assert [p.name for p in copied] == ["atm_in", "drv_in"]
        assert not (resolved.run_dir / "tmp_namelistfile").exists()

    def test_link_executable(self, built):
        resolved, exe = built
        link = link_executable(resolved, exe)
        assert link.is_symlink()
        assert link.resolve() == exe.resolve()

    def test_link_replaces_stale_link(self, built, tmp_path):
        resolved, exe = built
        (resolved.run_dir / "cam").symlink_to(tmp_path / "old-cam")
        link = link_executable(resolved, exe)
        assert link.resolve() == exe.resolve()


class TestLaunch:
    """Tests for launch."""

    def test_successful_run(self, built):
        resolved, exe = built
        log_file = launch(resolved, exe, log_func=_quiet)
        assert log_file == resolved.run_dir / RUN_LOG
        text = log_file.read_text()
        assert "SCAM starting" in text
        assert "atm_in drv_in" in text

    def test_failed_run(self, built, monkeypatch):
        resolved, exe = built
        monkeypatch.setenv("FAKE_CAM_RC", "7")
        with pytest.raises(RunFailed) as excinfo:
            launch(resolved, exe, log_func=_quiet)
        assert "exit code 7" in str(excinfo.value)
        assert RUN_LOG in str(excinfo.value)
        assert excinfo.value.exit_code == 99

    def test_missing_executable(self, resolved):
        with pytest.raises(RunFailed, match="executable not found"):
            launch(resolved, resolved.build_dir / "cam", log_func=_quiet)

    def test_missing_run_directory(self, built):
        """Test that filesystem errors while staging surface as RunFailed."""
        resolved, exe = built
        resolved.run_dir.rmdir()
        with pytest.raises(RunFailed, match="could not copy") as excinfo:
            launch(resolved, exe, log_func=_quiet)
        assert excinfo.value.exit_code == 99

    def test_link_error(self, built):
        resolved, exe = built
        resolved.run_dir.rmdir()
        with pytest.raises(RunFailed, match="could not link"):
            link_executable(resolved, exe)
