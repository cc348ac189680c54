import os
import tempfile
import unittest
from pathlib import Path

from shimdeploy.core.errors import BackupConflict, FilesystemError
from tools.fs.backup import ConfigBackupStore


class TestConfigBackupStore(unittest.TestCase):
    def setUp(self) -> None:
        self.store = ConfigBackupStore()

    def test_backup_once_keeps_first_content(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "crio.conf"
            p.write_text("pristine\n", encoding="utf-8")

            self.assertTrue(self.store.backup_once(p))
            p.write_text("modified by agent\n", encoding="utf-8")
            for _ in range(3):
                self.assertFalse(self.store.backup_once(p))

            backups = sorted(x.name for x in Path(td).iterdir() if x.name != "crio.conf")
            self.assertEqual(backups, ["crio.conf.bak"])
            self.assertEqual((Path(td) / "crio.conf.bak").read_text(encoding="utf-8"), "pristine\n")

    def test_restore_moves_backup_back_and_is_idempotent(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "crio.conf"
            p.write_text("pristine\n", encoding="utf-8")
            self.store.backup_once(p)
            p.write_text("modified\n", encoding="utf-8")

            self.store.restore(p)
            self.assertEqual(p.read_text(encoding="utf-8"), "pristine\n")
            self.assertFalse((Path(td) / "crio.conf.bak").exists())

            self.store.restore(p)
            self.assertEqual(p.read_text(encoding="utf-8"), "pristine\n")

    def test_missing_file_is_recorded_and_removed_on_restore(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "config.toml"

            self.assertFalse(self.store.backup_once(p))
            self.assertFalse(self.store.describe(p).existed_before_mutation)

            p.write_text("written by agent\n", encoding="utf-8")
            # The agent's own file must never become the "pristine" backup.
            self.assertFalse(self.store.backup_once(p))
            self.assertFalse((Path(td) / "config.toml.bak").exists())

            self.store.restore(p)
            self.assertFalse(p.exists())
            self.assertEqual(list(Path(td).iterdir()), [])

    def test_existing_backup_is_not_overwritten(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "crio.conf"
            p.write_text("current\n", encoding="utf-8")
            (Path(td) / "crio.conf.bak").write_text("older\n", encoding="utf-8")

            self.assertFalse(self.store.backup_once(p))
            self.assertEqual((Path(td) / "crio.conf.bak").read_text(encoding="utf-8"), "older\n")

    def test_ambiguous_state_raises_conflict(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "crio.conf"
            p.write_text("x\n", encoding="utf-8")
            (Path(td) / "crio.conf.bak").write_text("a\n", encoding="utf-8")
            (Path(td) / "crio.conf.bak.absent").write_text("", encoding="utf-8")

            with self.assertRaises(BackupConflict):
                self.store.backup_once(p)
            with self.assertRaises(BackupConflict):
                self.store.restore(p)

    def test_backup_location_occupied_by_directory_raises_conflict(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "crio.conf"
            p.write_text("x\n", encoding="utf-8")
            (Path(td) / "crio.conf.bak").mkdir()

            with self.assertRaises(BackupConflict):
                self.store.backup_once(p)

    def test_custom_suffix(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            store = ConfigBackupStore(suffix=".orig")
            p = Path(td) / "crio.conf"
            p.write_text("x\n", encoding="utf-8")
            self.assertTrue(store.backup_once(p))
            self.assertTrue((Path(td) / "crio.conf.orig").exists())

    def test_symlinked_file_is_refused(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            real = Path(td) / "real.conf"
            real.write_text("x\n", encoding="utf-8")
            p = Path(td) / "crio.conf"
            os.symlink(real, p)

            with self.assertRaises(FilesystemError) as cm:
                self.store.backup_once(p)
            self.assertEqual(cm.exception.code, "fs.symlinked_config")
            self.assertFalse(os.path.lexists(Path(td) / "crio.conf.bak"))
            self.assertFalse(os.path.lexists(Path(td) / "crio.conf.bak.absent"))
