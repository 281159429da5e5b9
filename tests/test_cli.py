"""
Tests for the CLI.

Uses Python's unittest module.
Tests argument parsing, exit codes, menu dispatch and output.
"""

from __future__ import annotations

import io
import shutil
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from doubles import FakeRclone, ScriptedPrompter

from claw_backup.backup.bundle import Bundle
from claw_backup.backup.errors import ListError
from claw_backup.backup.manager import BackupResult
from claw_backup.backup.restore import RestoreResult, RestoreSource
from claw_backup.backup.upload import UploadResult
from claw_backup.cli import (
    MENU_CHOICES,
    AppContext,
    action_clean_local,
    action_restore,
    action_setup_cron,
    build_context,
    create_parser,
    interactive_menu,
    main,
    report_backup,
    run_action,
    set_output_mode,
)
from claw_backup.config.settings import BackupPaths, ConfigStore, ConfigurationError, Settings
from claw_backup.prompts import NonInteractivePrompter
from claw_backup.scheduler import CronNotAvailableError, ScheduleStatus


def make_context(home: Path, answers=()) -> AppContext:
    paths = BackupPaths.from_home(home)
    store = ConfigStore(home / "config.yaml")
    return AppContext(
        paths=paths,
        config_store=store,
        settings=Settings(),
        prompter=ScriptedPrompter(answers),
        rclone=FakeRclone(),
    )


class TestArgumentParser(unittest.TestCase):
    """Tests for CLI argument parsing."""

    def setUp(self) -> None:
        """Set up parser for tests."""
        self.parser = create_parser()

    def test_version_argument(self) -> None:
        """Test --version argument."""
        with patch("sys.stdout", new_callable=io.StringIO):
            with self.assertRaises(SystemExit) as cm:
                self.parser.parse_args(["--version"])

        self.assertEqual(cm.exception.code, 0)

    def test_defaults(self) -> None:
        """Test parsing with no arguments opens the menu."""
        args = self.parser.parse_args([])

        self.assertFalse(args.backup)
        self.assertFalse(args.silent)
        self.assertEqual(args.verbose, 0)
        self.assertFalse(args.quiet)
        self.assertIsNone(args.config)

    def test_backup_flags(self) -> None:
        """Test long and short backup flags."""
        args = self.parser.parse_args(["--backup", "--silent"])
        self.assertTrue(args.backup)
        self.assertTrue(args.silent)

        args = self.parser.parse_args(["-b", "-s"])
        self.assertTrue(args.backup and args.silent)

    def test_verbose_flag(self) -> None:
        """Test -v can be repeated."""
        self.assertEqual(self.parser.parse_args(["-vv"]).verbose, 2)

    def test_config_path_argument(self) -> None:
        """Test --config argument."""
        args = self.parser.parse_args(["--config", "/custom/path/config.yaml"])

        self.assertEqual(args.config, "/custom/path/config.yaml")


class CliTestCase(unittest.TestCase):
    """Captures stdout/stderr and provides a temporary home."""

    def setUp(self) -> None:
        """Set up a temporary home and capture output."""
        self.temp_dir = tempfile.mkdtemp()
        self.home = Path(self.temp_dir)
        set_output_mode()
        self.stdout = io.StringIO()
        self.stderr = io.StringIO()
        stdout_patch = patch("sys.stdout", self.stdout)
        stderr_patch = patch("sys.stderr", self.stderr)
        stdout_patch.start()
        stderr_patch.start()
        self.addCleanup(stdout_patch.stop)
        self.addCleanup(stderr_patch.stop)

    def tearDown(self) -> None:
        """Clean up."""
        set_output_mode()
        shutil.rmtree(self.temp_dir, ignore_errors=True)


class TestReportBackup(CliTestCase):
    """Tests for report_backup() exit codes."""

    def setUp(self) -> None:
        """Set up a bundle."""
        super().setUp()
        self.bundle = Bundle(
            path=self.home / "openclaw-backup-20240115-103045.tar.gz",
            created_at=datetime(2024, 1, 15, 10, 30, 45),
        )

    def test_success(self) -> None:
        """Test a clean backup maps to 0."""
        self.assertEqual(report_backup(BackupResult(success=True, bundle=self.bundle)), 0)
        self.assertEqual(self.stderr.getvalue(), "")

    def test_aborted(self) -> None:
        """Test an aborted custom backup is not an error."""
        self.assertEqual(report_backup(BackupResult(success=False, aborted=True)), 0)

    def test_failure(self) -> None:
        """Test a failed backup maps to 1 and names a kept bundle."""
        result = BackupResult(success=False, bundle=self.bundle, error="bad password")

        self.assertEqual(report_backup(result), 1)
        self.assertIn("Backup failed: bad password", self.stderr.getvalue())
        self.assertIn(str(self.bundle.path), self.stderr.getvalue())

    def test_upload_failure(self) -> None:
        """Test a failed upload maps to 1 and names the local bundle."""
        result = BackupResult(success=True, bundle=self.bundle, upload_error="timeout")

        self.assertEqual(report_backup(result), 1)
        self.assertIn("Upload failed: timeout", self.stderr.getvalue())

    def test_verbose_details(self) -> None:
        """Test removed bundles and the upload destination are shown only when verbose."""
        result = BackupResult(
            success=True,
            bundle=self.bundle,
            deleted_old=[self.home / "openclaw-backup-20240101-000000.tar.gz"],
            upload=UploadResult(uploaded=True, destination="nas:/Backups"),
        )

        report_backup(result)
        self.assertEqual(self.stdout.getvalue(), "")

        set_output_mode(verbose=1)
        report_backup(result)
        self.assertIn("Removed old backup: openclaw-backup-20240101-000000.tar.gz", self.stdout.getvalue())
        self.assertIn("Uploaded to: nas:/Backups", self.stdout.getvalue())


class TestActions(CliTestCase):
    """Tests for menu actions."""

    def test_unknown_action(self) -> None:
        """Test an unknown action is rejected."""
        with self.assertRaises(ValueError):
            run_action("format_disk", make_context(self.home))

    def test_every_menu_entry_dispatches(self) -> None:
        """Test each menu value except exit is a known action."""
        ctx = make_context(self.home)
        handled = {c.value for c in MENU_CHOICES} - {"exit"}
        with patch.object(AppContext, "backup_manager") as manager, \
                patch("claw_backup.cli.action_restore", return_value=0), \
                patch("claw_backup.cli.action_setup_cron", return_value=0), \
                patch("claw_backup.cli.action_clean_local", return_value=0), \
                patch("claw_backup.cli.TargetConfigurator"):
            manager.return_value.full_backup.return_value = BackupResult(success=True)
            manager.return_value.custom_backup.return_value = BackupResult(success=True)
            for action in handled:
                self.assertEqual(run_action(action, ctx), 0)

    def test_restore_report(self) -> None:
        """Test a completed restore lists the components and follow-up hints."""
        ctx = make_context(self.home)
        result = RestoreResult(success=True, restored=["claw", ".openclaw"])
        with patch.object(AppContext, "restore_pipeline") as pipeline:
            pipeline.return_value.run.return_value = result
            self.assertEqual(action_restore(ctx, RestoreSource.LOCAL), 0)

        out = self.stdout.getvalue()
        self.assertIn("Restore Complete!", out)
        self.assertIn("Restored: claw, .openclaw", out)
        self.assertIn("pm2 resurrect", out)

    def test_clean_local_declined(self) -> None:
        """Test declining leaves the backup directory alone."""
        ctx = make_context(self.home, [False])
        ctx.paths.backup_dir.mkdir()
        (ctx.paths.backup_dir / "a.tar.gz").write_bytes(b"x")

        action_clean_local(ctx)

        self.assertEqual(len(list(ctx.paths.backup_dir.iterdir())), 1)

    def test_clean_local_confirmed(self) -> None:
        """Test confirming empties the backup directory."""
        ctx = make_context(self.home, [True])
        ctx.paths.backup_dir.mkdir()
        (ctx.paths.backup_dir / "a.tar.gz").write_bytes(b"x")

        action_clean_local(ctx)

        self.assertEqual(list(ctx.paths.backup_dir.iterdir()), [])
        self.assertIn("Cleaned 1 item(s)", self.stdout.getvalue())

    @patch("claw_backup.cli.CronScheduler")
    def test_setup_cron_fresh(self, mock_scheduler) -> None:
        """Test a fresh install asks nothing and shows the job."""
        scheduler = mock_scheduler.return_value
        scheduler.status.return_value = ScheduleStatus(installed=False)
        scheduler.install.return_value = "0 3 * * * claw-backup --backup --silent"

        action_setup_cron(make_context(self.home))

        scheduler.install.assert_called_once_with()
        self.assertIn("Crontab updated successfully!", self.stdout.getvalue())

    @patch("claw_backup.cli.CronScheduler")
    def test_setup_cron_existing(self, mock_scheduler) -> None:
        """Test an existing job can be removed or kept."""
        scheduler = mock_scheduler.return_value
        scheduler.status.return_value = ScheduleStatus(installed=True, entry="old")

        action_setup_cron(make_context(self.home, ["remove"]))
        scheduler.uninstall.assert_called_once_with()

        action_setup_cron(make_context(self.home, ["cancel"]))
        scheduler.install.assert_not_called()


class TestInteractiveMenu(CliTestCase):
    """Tests for the menu loop."""

    def test_exit(self) -> None:
        """Test Exit returns 0."""
        self.assertEqual(interactive_menu(make_context(self.home, ["exit"])), 0)
        self.assertIn("Goodbye!", self.stdout.getvalue())

    def test_menu_shown_again_after_action(self) -> None:
        """Test the menu re-displays after each action."""
        ctx = make_context(self.home, ["clean_local", False, "exit"])

        interactive_menu(ctx)

        self.assertEqual(ctx.prompter.questions.count("Main Menu:"), 2)

    def test_error_reported_and_loop_continues(self) -> None:
        """Test a pipeline error is printed and the menu continues."""
        ctx = make_context(self.home, ["restore_cloud", "exit"])
        with patch("claw_backup.cli.run_action", side_effect=ListError("no network")):
            self.assertEqual(interactive_menu(ctx), 0)

        self.assertIn("Error: no network", self.stderr.getvalue())

    def test_configuration_and_os_errors_keep_menu_running(self) -> None:
        """Test configuration and filesystem errors are reported without leaving the menu."""
        for error in (ConfigurationError("bad record"), PermissionError("backup dir locked")):
            ctx = make_context(self.home, ["cloud_config", "exit"])
            with patch("claw_backup.cli.run_action", side_effect=error):
                self.assertEqual(interactive_menu(ctx), 0)

            self.assertEqual(ctx.prompter.questions.count("Main Menu:"), 2)

        self.assertIn("Error: bad record", self.stderr.getvalue())
        self.assertIn("Error: backup dir locked", self.stderr.getvalue())

    def test_scheduler_error_shows_help(self) -> None:
        """Test a missing crontab shows the manual setup help."""
        ctx = make_context(self.home, ["setup_cron", "exit"])
        with patch("claw_backup.cli.run_action", side_effect=CronNotAvailableError("no crontab")):
            interactive_menu(ctx)

        self.assertIn("Scheduler error: no crontab", self.stderr.getvalue())
        self.assertIn("Manual Cron Setup", self.stdout.getvalue())


class TestMain(CliTestCase):
    """Tests for main() exit codes."""

    def _run(self, argv: list[str]) -> int:
        with patch("sys.argv", ["claw-backup", *argv]), \
                patch("claw_backup.cli.setup_logging"):
            with self.assertRaises(SystemExit) as cm:
                main()
        return cm.exception.code

    def test_silent_requires_backup(self) -> None:
        """Test --silent alone is a usage error."""
        self.assertEqual(self._run(["--silent"]), 2)

    @patch("claw_backup.cli.cmd_backup", return_value=0)
    @patch("claw_backup.cli.build_context")
    def test_backup_success(self, mock_context, mock_backup) -> None:
        """Test --backup exits with the backup's code."""
        mock_context.return_value = make_context(self.home)

        self.assertEqual(self._run(["--backup", "--silent"]), 0)
        mock_backup.assert_called_once()

    @patch("claw_backup.cli.interactive_menu", return_value=0)
    @patch("claw_backup.cli.build_context")
    def test_menu_by_default(self, mock_context, mock_menu) -> None:
        """Test no options opens the menu."""
        mock_context.return_value = make_context(self.home)

        self.assertEqual(self._run(["-q"]), 0)
        mock_menu.assert_called_once()

    @patch("claw_backup.cli.build_context", side_effect=ConfigurationError("bad yaml"))
    def test_configuration_error(self, mock_context) -> None:
        """Test a configuration error exits with 2."""
        self.assertEqual(self._run(["--backup"]), 2)
        self.assertIn("Configuration error: bad yaml", self.stderr.getvalue())

    @patch("claw_backup.cli.build_context", side_effect=KeyboardInterrupt)
    def test_keyboard_interrupt(self, mock_context) -> None:
        """Test Ctrl+C exits with 130."""
        self.assertEqual(self._run([]), 130)

    @patch("claw_backup.cli.interactive_menu", side_effect=RuntimeError("boom"))
    @patch("claw_backup.cli.build_context")
    def test_unexpected_error(self, mock_context, mock_menu) -> None:
        """Test an unexpected error exits with 1 unless verbose."""
        mock_context.return_value = make_context(self.home)

        self.assertEqual(self._run(["-q"]), 1)
        self.assertIn("Error: boom", self.stderr.getvalue())

        with self.assertRaises(RuntimeError):
            with patch("sys.argv", ["claw-backup", "-v"]), patch("claw_backup.cli.setup_logging"):
                main()

    @patch("claw_backup.cli.cmd_backup", return_value=1)
    @patch("claw_backup.cli.build_context")
    def test_config_log_level_applied(self, mock_context, mock_backup) -> None:
        """Test the configured log level is applied without -v or -q."""
        ctx = make_context(self.home)
        ctx.settings.log_level = "WARNING"
        mock_context.return_value = ctx

        with patch("claw_backup.cli.logging.getLogger") as mock_get_logger:
            self.assertEqual(self._run(["--backup"]), 1)

        mock_get_logger.return_value.setLevel.assert_called_once_with("WARNING")


class TestBuildContext(unittest.TestCase):
    """Tests for build_context()."""

    def test_silent_uses_non_interactive_prompter(self) -> None:
        """Test unattended runs never get a console prompter."""
        temp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, temp_dir, True)
        args = create_parser().parse_args(["--backup", "--silent", "--config", f"{temp_dir}/c.yaml"])

        with patch.dict("os.environ", {"HOME": temp_dir}):
            ctx = build_context(args)

        self.assertIsInstance(ctx.prompter, NonInteractivePrompter)
        self.assertEqual(ctx.config_store.config_path, Path(temp_dir) / "c.yaml")
        self.assertIsInstance(ctx.settings, Settings)


if __name__ == "__main__":
    unittest.main()
