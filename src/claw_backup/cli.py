"""
Command-line interface for claw-backup.

Runs either the unattended backup (``--backup``, optionally ``--silent``
for scheduled runs) or the interactive menu, which re-displays after each
action until the user chooses Exit.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from claw_backup import __version__
from claw_backup.backup import (
    BackupManager,
    BackupResult,
    ClawBackupError,
    RestorePipeline,
    RestoreSource,
    UploadDispatcher,
    clean_local_backups,
)
from claw_backup.cloud import TargetConfigurator
from claw_backup.config.settings import (
    BackupPaths,
    ConfigStore,
    ConfigurationError,
    Settings,
    get_config_path,
)
from claw_backup.external import RcloneClient
from claw_backup.prompts import (
    Choice,
    ConsolePrompter,
    NonInteractivePrompter,
    PromptUnavailableError,
    Prompter,
)
from claw_backup.scheduler import CronScheduler, SchedulerError, get_cron_help

# Set up logging
logger = logging.getLogger(__name__)

# Global verbosity settings (set during main() based on args)
_quiet_mode = False
_verbose_level = 0

MENU_CHOICES = [
    Choice(label="Quick Full Backup (Everything)", value="full_backup"),
    Choice(label="Custom Backup (Select Components)", value="custom_backup"),
    Choice(label="Restore from Local File", value="restore_local"),
    Choice(label="Restore from Cloud (GDrive/NAS)", value="restore_cloud"),
    Choice(label="Configure Cloud Sync", value="cloud_config"),
    Choice(label="Setup Auto-Backup (Cron)", value="setup_cron"),
    Choice(label="Clean Local Backups", value="clean_local"),
    Choice(label="Exit", value="exit"),
]


def set_output_mode(quiet: bool = False, verbose: int = 0) -> None:
    """
    Set the output mode for the CLI.

    Args:
        quiet: If True, suppress non-essential output.
        verbose: Verbosity level (0=normal, 1+=verbose).
    """
    global _quiet_mode, _verbose_level
    _quiet_mode = quiet
    _verbose_level = verbose


def output(message: str = "", force: bool = False) -> None:
    """
    Print a message to stdout, respecting quiet mode.

    Args:
        message: The message to print.
        force: If True, print even in quiet mode.
    """
    if force or not _quiet_mode:
        print(message)


def output_verbose(message: str, level: int = 1) -> None:
    """
    Print a verbose message only if verbosity is high enough.

    Args:
        message: The message to print.
        level: Required verbosity level to show this message.
    """
    if _verbose_level >= level and not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """
    Print an error message (always shown, even in quiet mode).

    Args:
        message: The error message to print.
    """
    print(message, file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the claw-backup CLI."""
    parser = argparse.ArgumentParser(
        prog="claw-backup",
        description="OpenClaw system backup & recovery utility",
        epilog="Run without options to open the interactive menu.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"claw-backup {__version__}",
    )

    parser.add_argument(
        "-b", "--backup",
        action="store_true",
        help="Run a backup of the default components without the menu",
    )

    parser.add_argument(
        "-s", "--silent",
        action="store_true",
        help="With --backup: no prompts, delays or progress output (for cron)",
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Override config file location (default: ~/.claw-backup/config.yaml)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    return parser


def setup_logging(verbose: int, quiet: bool) -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.WARNING
    elif verbose == 0:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@dataclass
class AppContext:
    """Collaborators shared by every action of one invocation."""

    paths: BackupPaths
    config_store: ConfigStore
    settings: Settings
    prompter: Prompter
    rclone: RcloneClient

    @property
    def configurator(self) -> TargetConfigurator:
        return TargetConfigurator(self.paths, self.config_store, self.prompter, self.rclone)

    def backup_manager(self) -> BackupManager:
        uploader = UploadDispatcher(
            self.config_store,
            rclone=self.rclone,
            prompter=self.prompter,
            configure_target=self.configurator.set_default_target,
        )
        return BackupManager(self.paths, self.config_store, self.prompter, uploader=uploader)

    def restore_pipeline(self) -> RestorePipeline:
        return RestorePipeline(self.paths, self.config_store, self.prompter, rclone=self.rclone)


def build_context(args: argparse.Namespace, prompter: Prompter | None = None) -> AppContext:
    """Resolve paths and configuration for this invocation."""
    paths = BackupPaths.from_home()
    config_path = Path(args.config) if args.config else get_config_path(paths)
    config_store = ConfigStore(config_path)

    # Fail early on an unreadable config record
    settings = config_store.load()

    if prompter is None:
        if args.silent:
            prompter = NonInteractivePrompter()
        else:
            prompter = ConsolePrompter()

    return AppContext(
        paths=paths,
        config_store=config_store,
        settings=settings,
        prompter=prompter,
        rclone=RcloneClient(),
    )


def report_backup(result: BackupResult) -> int:
    """Print the outcome of a backup and return the exit code it maps to."""
    if result.aborted:
        return 0

    if not result.success:
        output_error(f"Backup failed: {result.error}")
        if result.bundle is not None:
            output_error(f"Unencrypted backup kept at: {result.bundle.path}")
        return 1

    if result.upload_error:
        output_error(f"Upload failed: {result.upload_error}")
        output_error(f"Backup kept at: {result.bundle.path}")
        return 1

    for old in result.deleted_old:
        output_verbose(f"Removed old backup: {old.name}")
    if result.upload is not None and result.upload.uploaded:
        output_verbose(f"Uploaded to: {result.upload.destination}")
    return 0


def cmd_backup(args: argparse.Namespace, ctx: AppContext) -> int:
    """Run the unattended backup entry point."""
    if not args.silent:
        output("Starting backup...")

    try:
        result = ctx.backup_manager().unattended_backup(silent=args.silent)
    except PromptUnavailableError as e:
        output_error(f"Error: {e}")
        return 1

    if result.success and not args.silent:
        output(f"Backup complete: {result.bundle.path}")
    return report_backup(result)


def action_restore(ctx: AppContext, source: RestoreSource) -> int:
    result = ctx.restore_pipeline().run(source)
    if not result.success:
        return 0

    output()
    output("Restore Complete!")
    output(f"  Restored: {', '.join(result.restored)}")
    output()
    output("Note:")
    output("  - Restart your services to apply changes.")
    output("  - You may need to run npm install or pm2 resurrect")
    return 0


def action_setup_cron(ctx: AppContext) -> int:
    """Install, replace or remove the daily backup crontab entry."""
    scheduler = CronScheduler(ctx.paths)
    prompter = ctx.prompter

    output("Setup Automatic Backup (Cron)")
    output('This will add a cron job to run "claw-backup" daily at 03:00 AM.')
    output('Requires the "crond" service or standard crontab to be active.')
    output()

    status = scheduler.status()
    if status.installed:
        output("Backup job already exists in crontab:")
        output(f"  {status.entry}")
        action = prompter.choose(
            "What would you like to do?",
            [
                Choice(label="Overwrite existing job", value="replace"),
                Choice(label="Remove job", value="remove"),
                Choice(label="Cancel", value="cancel"),
            ],
        )
        if action == "cancel":
            return 0
        if action == "remove":
            scheduler.uninstall()
            output("Backup job removed from crontab.")
            return 0

    entry = scheduler.install()
    output("Crontab updated successfully!")
    output(f"Job: {entry}")
    return 0


def action_clean_local(ctx: AppContext) -> int:
    backup_dir = ctx.paths.backup_dir
    if not ctx.prompter.confirm(f"Delete ALL files in {backup_dir}?", default=False):
        return 0
    removed = clean_local_backups(backup_dir)
    output(f"Cleaned {removed} item(s) from {backup_dir}")
    return 0


def run_action(action: str, ctx: AppContext) -> int:
    """Dispatch one menu action."""
    if action == "full_backup":
        return report_backup(ctx.backup_manager().full_backup())
    if action == "custom_backup":
        return report_backup(ctx.backup_manager().custom_backup())
    if action == "restore_local":
        return action_restore(ctx, RestoreSource.LOCAL)
    if action == "restore_cloud":
        return action_restore(ctx, RestoreSource.CLOUD)
    if action == "cloud_config":
        ctx.configurator.run_menu()
        return 0
    if action == "setup_cron":
        return action_setup_cron(ctx)
    if action == "clean_local":
        return action_clean_local(ctx)
    raise ValueError(f"Unknown action: {action}")


def interactive_menu(ctx: AppContext) -> int:
    """
    Run the main menu until the user exits.

    Pipeline errors are reported and the menu is shown again.
    """
    while True:
        output()
        output("OpenClaw Backup")
        output("=" * 50)
        output("System Backup & Recovery Utility")
        output()

        action = ctx.prompter.choose("Main Menu:", MENU_CHOICES)
        if action == "exit":
            output("Goodbye!")
            return 0

        try:
            run_action(action, ctx)
        except SchedulerError as e:
            output_error(f"Scheduler error: {e}")
            output(get_cron_help())
        except (ClawBackupError, ConfigurationError, OSError) as e:
            logger.debug("Action %s failed", action, exc_info=True)
            output_error(f"Error: {e}")


def main() -> NoReturn:
    """Main entry point for the claw-backup CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if args.silent and not args.backup:
        parser.error("--silent requires --backup")

    # Set up logging and output mode
    quiet = args.quiet or args.silent
    setup_logging(args.verbose, quiet)
    set_output_mode(quiet, args.verbose)

    try:
        ctx = build_context(args)
        if args.verbose == 0 and not quiet:
            logging.getLogger().setLevel(ctx.settings.log_level)
        if args.backup:
            exit_code = cmd_backup(args, ctx)
        else:
            exit_code = interactive_menu(ctx)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output("\nOperation cancelled.")
        sys.exit(130)
    except ConfigurationError as e:
        output_error(f"Configuration error: {e}")
        sys.exit(2)
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
