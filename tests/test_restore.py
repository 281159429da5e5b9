"""
Tests for the restore pipeline.

Tests cover:
- Component inventory
- Selective restore and the overwrite confirmation
- Encrypted bundles and temporary file cleanup
- Local and remote bundle selection
- Remote listing and download failures
"""

import shutil
import tarfile
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from doubles import FakeRclone, ScriptedPrompter, by_label, failed

from claw_backup.backup.archive import archive_name
from claw_backup.backup.bundle import Bundle
from claw_backup.backup.encryption import EncryptionGate
from claw_backup.backup.errors import DecryptionError, DownloadError, ListError, RestoreError
from claw_backup.backup.restore import (
    RestorePipeline,
    RestoreSource,
    inventory_components,
)
from claw_backup.config.settings import BackupPaths, ConfigStore, RemoteTarget

BUNDLE_NAME = "openclaw-backup-20240115-103045.tar.gz"


class TestInventory(unittest.TestCase):
    """Tests for inventory_components()."""

    def test_groups_by_top_level_segment(self) -> None:
        """Test members are counted per first segment below home."""
        names = [
            "home/alice/claw",
            "home/alice/claw/a.json",
            "home/alice/claw/b.json",
            "home/alice/.openclaw/key",
            "etc/hosts",
            "home/bob/file",
        ]

        components = inventory_components(names, Path("/home/alice"))

        self.assertEqual([c.name for c in components], ["claw", ".openclaw"])
        self.assertEqual(components[0].file_count, 3)
        self.assertEqual(components[0].target_path, Path("/home/alice/claw"))
        self.assertEqual(components[0].member_prefix, "home/alice/claw")

    def test_home_itself_is_not_a_component(self) -> None:
        """Test the home directory entry does not produce an empty component."""
        components = inventory_components(["home/alice", "home/alice/x"], Path("/home/alice"))
        self.assertEqual([c.name for c in components], ["x"])

    def test_leading_separator_tolerated(self) -> None:
        """Test member names with a leading separator are handled."""
        components = inventory_components(["/home/alice/claw/x"], Path("/home/alice"))
        self.assertEqual([c.name for c in components], ["claw"])


class RestoreTestCase(unittest.TestCase):
    """Shared fixtures: a fake home with a bundle holding components A, B and C."""

    def setUp(self) -> None:
        """Build the bundle and an empty extraction root."""
        self.temp_dir = tempfile.mkdtemp()
        self.home = Path(self.temp_dir) / "home"
        self.home.mkdir()
        self.paths = BackupPaths.from_home(self.home)
        self.paths.backup_dir.mkdir()
        self.store = ConfigStore(self.paths.config_file)
        self.rclone = FakeRclone()
        self.extract_root = Path(self.temp_dir) / "root"
        self.extract_root.mkdir()
        self.bundle_path = self._make_bundle(self.paths.backup_dir / BUNDLE_NAME)

    def tearDown(self) -> None:
        """Clean up."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _make_bundle(self, dest: Path) -> Path:
        src = Path(self.temp_dir) / "src"
        for top in ("A", "B", "C"):
            (src / top).mkdir(parents=True, exist_ok=True)
            (src / top / "data.txt").write_text(f"{top} from backup")
        with tarfile.open(dest, "w:gz") as tar:
            for top in ("A", "B", "C"):
                tar.add(src / top, arcname=archive_name(self.home / top))
        return dest

    def _restored(self, top: str) -> Path:
        return self.extract_root / archive_name(self.home / top) / "data.txt"

    def _pipeline(self, prompter) -> RestorePipeline:
        return RestorePipeline(
            self.paths,
            self.store,
            prompter,
            rclone=self.rclone,
            extract_root=self.extract_root,
        )


class TestSelectiveRestore(RestoreTestCase):
    """Tests for component selection, confirmation and extraction."""

    def test_only_selected_component_restored(self) -> None:
        """Test selecting A restores A and leaves B and C alone."""
        existing_b = self._restored("B")
        existing_b.parent.mkdir(parents=True)
        existing_b.write_text("B local edit")
        prompter = ScriptedPrompter([["A"], True])

        result = self._pipeline(prompter).restore_file(self.bundle_path)

        self.assertTrue(result.success)
        self.assertEqual(result.restored, ["A"])
        self.assertEqual(result.members_extracted, 2)
        self.assertEqual(self._restored("A").read_text(), "A from backup")
        self.assertEqual(existing_b.read_text(), "B local edit")
        self.assertFalse(self._restored("C").parent.exists())

    def test_components_offered_checked(self) -> None:
        """Test every component is offered with its file count."""
        offered = []

        def _capture(choices):
            offered.extend(choices)
            return []

        self._pipeline(ScriptedPrompter([_capture])).restore_file(self.bundle_path)

        self.assertEqual([c.value for c in offered], ["A", "B", "C"])
        self.assertTrue(all(c.checked for c in offered))
        self.assertEqual(offered[0].label, "A (2 files)")

    def test_empty_selection_aborts(self) -> None:
        """Test selecting nothing aborts without asking for confirmation."""
        prompter = ScriptedPrompter([[]])

        result = self._pipeline(prompter).restore_file(self.bundle_path)

        self.assertTrue(result.aborted)
        self.assertEqual(len(prompter.questions), 1)
        self.assertEqual(list(self.extract_root.iterdir()), [])

    def test_declined_confirmation_aborts(self) -> None:
        """Test declining the overwrite warning extracts nothing."""
        prompter = ScriptedPrompter([["A", "B"], False])

        result = self._pipeline(prompter).restore_file(self.bundle_path)

        self.assertTrue(result.aborted)
        self.assertIn("WARNING: Files will be overwritten!", prompter.messages)
        self.assertEqual(list(self.extract_root.iterdir()), [])


class TestEncryptedRestore(RestoreTestCase):
    """Tests for restoring encrypted bundles."""

    def setUp(self) -> None:
        """Encrypt the fixture bundle."""
        super().setUp()
        gate = EncryptionGate(ScriptedPrompter())
        bundle = Bundle(path=self.bundle_path, created_at=datetime(2024, 1, 15, 10, 30, 45))
        self.encrypted = gate.encrypt(bundle, "pw").path

    def _backup_dir_names(self) -> list[str]:
        return sorted(p.name for p in self.paths.backup_dir.iterdir())

    def test_decrypts_and_cleans_up(self) -> None:
        """Test the decrypted temporary file is removed after extraction."""
        prompter = ScriptedPrompter(["pw", ["C"], True])

        result = self._pipeline(prompter).restore_file(self.encrypted)

        self.assertTrue(result.success)
        self.assertEqual(self._restored("C").read_text(), "C from backup")
        self.assertEqual(self._backup_dir_names(), [self.encrypted.name])

    def test_decrypted_file_removed_when_declined(self) -> None:
        """Test declining the confirmation also removes the decrypted file."""
        prompter = ScriptedPrompter(["pw", ["A"], False])

        result = self._pipeline(prompter).restore_file(self.encrypted)

        self.assertTrue(result.aborted)
        self.assertEqual(self._backup_dir_names(), [self.encrypted.name])

    def test_existing_plaintext_untouched(self) -> None:
        """Test a plaintext bundle of the same name survives the restore."""
        plain = self.paths.backup_dir / BUNDLE_NAME
        plain.write_bytes(b"keep")
        prompter = ScriptedPrompter(["pw", ["A"], True])

        self._pipeline(prompter).restore_file(self.encrypted)

        self.assertEqual(plain.read_bytes(), b"keep")

    def test_wrong_password(self) -> None:
        """Test a wrong password aborts with no output retained."""
        prompter = ScriptedPrompter(["wrong"])

        with self.assertRaises(DecryptionError):
            self._pipeline(prompter).restore_file(self.encrypted)

        self.assertEqual(self._backup_dir_names(), [self.encrypted.name])
        self.assertEqual(list(self.extract_root.iterdir()), [])


class TestLocalSource(RestoreTestCase):
    """Tests for restoring from the local backup directory."""

    def test_newest_first(self) -> None:
        """Test local bundles are offered in descending name order."""
        older = self.paths.backup_dir / "openclaw-backup-20230101-000000.tar.gz"
        shutil.copy2(self.bundle_path, older)
        (self.paths.backup_dir / "notes.txt").write_text("x")
        offered = []

        def _pick(choices):
            offered.extend(c.label for c in choices)
            return choices[-1].value

        prompter = ScriptedPrompter([_pick, ["A"], True])
        result = self._pipeline(prompter).run(RestoreSource.LOCAL)

        self.assertEqual(offered, [BUNDLE_NAME, older.name])
        self.assertEqual(result.bundle, older)
        self.assertTrue(result.success)

    def test_no_local_bundles(self) -> None:
        """Test an empty backup directory aborts with a hint."""
        self.bundle_path.unlink()
        prompter = ScriptedPrompter()

        result = self._pipeline(prompter).run("local")

        self.assertTrue(result.aborted)
        self.assertTrue(any("Restore from Cloud" in m for m in prompter.messages))

    def test_unknown_source(self) -> None:
        """Test an unknown source raises RestoreError."""
        with self.assertRaises(RestoreError):
            self._pipeline(ScriptedPrompter()).run("ftp")


class TestCloudSource(RestoreTestCase):
    """Tests for restoring from a remote."""

    def setUp(self) -> None:
        """Move the fixture bundle to a 'remote' location."""
        super().setUp()
        self.remote_copy = Path(self.temp_dir) / BUNDLE_NAME
        shutil.move(self.bundle_path, self.remote_copy)
        self.rclone.blobs = {BUNDLE_NAME: self.remote_copy}

    def test_download_and_restore_from_default_target(self) -> None:
        """Test the bundle is listed, downloaded and restored."""
        self.store.set_default_target(RemoteTarget(remote="nas", path="/Backups"))
        older = "openclaw-backup-20230101-000000.tar.gz"
        self.rclone.files = {("nas", "/Backups"): [older, "readme.txt", BUNDLE_NAME]}
        offered = []

        def _pick(choices):
            offered.extend(c.value for c in choices)
            return BUNDLE_NAME

        prompter = ScriptedPrompter([_pick, ["A"], True])
        result = self._pipeline(prompter).run(RestoreSource.CLOUD)

        self.assertEqual(offered, [BUNDLE_NAME, older])
        self.assertIn(("copyto", f"nas:/Backups/{BUNDLE_NAME}", str(self.paths.backup_dir / BUNDLE_NAME)), self.rclone.calls)
        self.assertTrue(result.success)
        self.assertEqual(self._restored("A").read_text(), "A from backup")

    def test_without_default_target_asks_for_remote(self) -> None:
        """Test a remote and path are asked for when no target is set."""
        self.rclone.remotes = ["gdrive", "nas"]
        self.rclone.files = {("gdrive", "/OpenClaw_Backups/Termux"): [BUNDLE_NAME]}

        prompter = ScriptedPrompter(["gdrive", None, BUNDLE_NAME, ["B"], True])
        result = self._pipeline(prompter).run(RestoreSource.CLOUD)

        self.assertTrue(result.success)
        self.assertIn(("lsf", "gdrive", "/OpenClaw_Backups/Termux"), self.rclone.calls)

    def test_no_remotes_configured(self) -> None:
        """Test restore aborts when there is nothing to restore from."""
        prompter = ScriptedPrompter()

        result = self._pipeline(prompter).run(RestoreSource.CLOUD)

        self.assertTrue(result.aborted)
        self.assertIn("No remotes configured.", prompter.messages)

    def test_listing_failure(self) -> None:
        """Test a failed listing raises ListError with the diagnostic."""
        self.store.set_default_target(RemoteTarget(remote="nas", path="/Backups"))
        self.rclone.results["lsf"] = failed("directory not found")

        with self.assertRaises(ListError) as ctx:
            self._pipeline(ScriptedPrompter()).run(RestoreSource.CLOUD)

        self.assertIn("directory not found", str(ctx.exception))

    def test_download_failure(self) -> None:
        """Test a failed download raises DownloadError and leaves no file."""
        self.store.set_default_target(RemoteTarget(remote="nas", path="/Backups"))
        self.rclone.files = {("nas", "/Backups"): [BUNDLE_NAME]}
        self.rclone.results["copyto"] = failed("permission denied")

        with self.assertRaises(DownloadError) as ctx:
            self._pipeline(ScriptedPrompter([BUNDLE_NAME])).run(RestoreSource.CLOUD)

        self.assertIn("permission denied", str(ctx.exception))
        self.assertFalse((self.paths.backup_dir / BUNDLE_NAME).exists())

    def test_empty_remote(self) -> None:
        """Test a remote without bundles aborts."""
        self.store.set_default_target(RemoteTarget(remote="nas", path="/Backups"))
        prompter = ScriptedPrompter()

        result = self._pipeline(prompter).run(RestoreSource.CLOUD)

        self.assertTrue(result.aborted)

    def test_local_default_target(self) -> None:
        """Test a local default target is listed directly."""
        target_dir = Path(self.temp_dir) / "nas"
        target_dir.mkdir()
        shutil.copy2(self.remote_copy, target_dir / BUNDLE_NAME)
        self.store.set_default_target(RemoteTarget(remote="local", path=str(target_dir)))

        prompter = ScriptedPrompter([by_label(BUNDLE_NAME), ["A"], True])
        result = self._pipeline(prompter).run(RestoreSource.CLOUD)

        self.assertTrue(result.success)
        self.assertEqual(self.rclone.calls, [])
        self.assertTrue((self.paths.backup_dir / BUNDLE_NAME).exists())


if __name__ == "__main__":
    unittest.main()
