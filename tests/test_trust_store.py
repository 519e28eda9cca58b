"""Tests for the trust store: authorized folders and standing permissions."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from opencowork.security.paths import is_filesystem_root, is_within, normalize_path
from opencowork.security.trust_store import (
    WILDCARD,
    GrantedPermission,
    InvalidPath,
    TrustLevel,
    TrustStore,
)


class TestPathHelpers:
    """Test normalization and containment helpers."""

    def test_normalize_resolves_dot_segments(self, tmp_path: Path) -> None:
        result = normalize_path(str(tmp_path / "a" / ".." / "b" / "." / "c.txt"))
        assert result == (tmp_path / "b" / "c.txt").resolve()

    def test_normalize_relative_against_base(self, tmp_path: Path) -> None:
        assert normalize_path("notes.md", base=str(tmp_path)) == (tmp_path / "notes.md").resolve()

    def test_normalize_expands_home(self) -> None:
        assert normalize_path("~") == Path.home().resolve()

    @pytest.mark.parametrize("root", ["/", "C:\\", "C:/", "c:", "/.."])
    def test_filesystem_roots(self, root: str) -> None:
        assert is_filesystem_root(root)

    def test_regular_folder_is_not_root(self, tmp_path: Path) -> None:
        assert not is_filesystem_root(str(tmp_path))
        assert not is_filesystem_root("")

    def test_is_within_is_segment_wise(self) -> None:
        assert is_within(Path("/home/ab/file"), Path("/home/ab"))
        assert is_within(Path("/home/ab"), Path("/home/ab"))
        assert not is_within(Path("/home/abc"), Path("/home/ab"))
        assert not is_within(Path("/home/ab"), Path("/home/abc"))


class TestFolders:
    """Test folder authorization."""

    def test_add_folder_defaults_to_strict(self, trust_store: TrustStore, workspace: Path) -> None:
        folder = trust_store.add_folder(str(workspace))

        assert folder.path == str(workspace.resolve())
        assert folder.trust_level is TrustLevel.STRICT
        assert [f.path for f in trust_store.get_folders()] == [folder.path]

    def test_add_folder_is_idempotent(self, trust_store: TrustStore, workspace: Path) -> None:
        first = trust_store.add_folder(str(workspace), TrustLevel.TRUST)
        again = trust_store.add_folder(str(workspace / "."), TrustLevel.STRICT)

        assert again.trust_level is TrustLevel.TRUST
        assert again.path == first.path
        assert len(trust_store.get_folders()) == 1

    def test_root_is_rejected(self, trust_store: TrustStore) -> None:
        with pytest.raises(InvalidPath) as exc_info:
            trust_store.add_folder("/")

        assert "filesystem roots" in str(exc_info.value)
        assert trust_store.get_folders() == []

    def test_remove_folder(self, authorized: TrustStore, workspace: Path) -> None:
        assert authorized.remove_folder(str(workspace))
        assert authorized.get_folders() == []
        assert not authorized.remove_folder(str(workspace))

    def test_set_folder_trust(self, authorized: TrustStore, workspace: Path) -> None:
        authorized.set_folder_trust(str(workspace), TrustLevel.STANDARD)

        assert authorized.trust_level_for_folder(str(workspace)) is TrustLevel.STANDARD

    def test_set_trust_on_unknown_folder_raises(self, trust_store: TrustStore, tmp_path: Path) -> None:
        with pytest.raises(InvalidPath):
            trust_store.set_folder_trust(str(tmp_path / "nowhere"), TrustLevel.TRUST)

    def test_unknown_folder_is_strict(self, trust_store: TrustStore, tmp_path: Path) -> None:
        assert trust_store.trust_level_for_folder(str(tmp_path)) is TrustLevel.STRICT

    def test_first_folder_is_primary(self, trust_store: TrustStore, tmp_path: Path) -> None:
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.mkdir()
        b.mkdir()
        trust_store.add_folder(str(a))
        trust_store.add_folder(str(b))

        assert trust_store.primary_folder().path == str(a.resolve())

        trust_store.set_primary_folder(str(b))

        assert [f.path for f in trust_store.get_folders()] == [str(b.resolve()), str(a.resolve())]

    def test_set_primary_unknown_raises(self, trust_store: TrustStore, tmp_path: Path) -> None:
        with pytest.raises(InvalidPath):
            trust_store.set_primary_folder(str(tmp_path))


class TestPermissions:
    """Test standing permissions."""

    def test_wildcard_grant_matches_any_path(self, trust_store: TrustStore, tmp_path: Path) -> None:
        trust_store.grant_permission("run_command")

        assert trust_store.has_standing_permission("run_command", None)
        assert trust_store.has_standing_permission("run_command", str(tmp_path))
        assert not trust_store.has_standing_permission("write_file", str(tmp_path))

    def test_path_grant_covers_descendants(self, trust_store: TrustStore, workspace: Path) -> None:
        trust_store.grant_permission("write_file", str(workspace))

        assert trust_store.has_standing_permission("write_file", str(workspace / "sub" / "f.txt"))
        assert trust_store.has_standing_permission("write_file", str(workspace))
        assert not trust_store.has_standing_permission("write_file", str(workspace.parent))
        assert not trust_store.has_standing_permission("write_file", str(workspace) + "-other")

    def test_path_grant_needs_a_path(self, trust_store: TrustStore, workspace: Path) -> None:
        trust_store.grant_permission("run_command", str(workspace))

        assert not trust_store.has_standing_permission("run_command", None)

    def test_duplicate_grants_are_stored_once(self, trust_store: TrustStore, workspace: Path) -> None:
        trust_store.grant_permission("write_file", str(workspace))
        trust_store.grant_permission("write_file", str(workspace / "."))

        assert len(trust_store.get_permissions()) == 1

    def test_revoke_permission(self, trust_store: TrustStore, workspace: Path) -> None:
        trust_store.grant_permission("write_file", str(workspace))

        assert trust_store.revoke_permission("write_file", str(workspace))
        assert not trust_store.revoke_permission("write_file", str(workspace))
        assert not trust_store.has_standing_permission("write_file", str(workspace))

    def test_clear_all_permissions(self, trust_store: TrustStore) -> None:
        trust_store.grant_permission("write_file")
        trust_store.grant_permission("run_command")

        trust_store.clear_all_permissions()

        assert trust_store.get_permissions() == []

    def test_grant_matching(self) -> None:
        grant = GrantedPermission(tool="write_file")

        assert grant.path_pattern == WILDCARD
        assert grant.matches("write_file", None)
        assert not grant.matches("read_file", None)


class TestPersistence:
    """Test the YAML file backing the store."""

    def test_changes_are_visible_to_other_instances(
        self, trust_store: TrustStore, workspace: Path
    ) -> None:
        other = TrustStore(trust_store.path)

        trust_store.add_folder(str(workspace), TrustLevel.STANDARD)
        trust_store.grant_permission("run_command")

        assert other.trust_level_for_folder(str(workspace)) is TrustLevel.STANDARD
        assert other.has_standing_permission("run_command")

    def test_file_layout(self, trust_store: TrustStore, workspace: Path) -> None:
        trust_store.add_folder(str(workspace), TrustLevel.TRUST)
        trust_store.grant_permission("write_file", str(workspace))

        data = yaml.safe_load(trust_store.path.read_text(encoding="utf-8"))

        assert data["folders"][0]["path"] == str(workspace.resolve())
        assert data["folders"][0]["trust_level"] == "trust"
        assert data["permissions"][0]["tool"] == "write_file"
        assert data["permissions"][0]["path_pattern"] == str(workspace.resolve())

    def test_corrupt_file_reads_as_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "trust.yaml"
        path.write_text("folders: [unclosed", encoding="utf-8")

        store = TrustStore(path)

        assert store.get_folders() == []
        assert store.get_permissions() == []

    def test_unknown_trust_level_falls_back_to_strict(self, tmp_path: Path) -> None:
        path = tmp_path / "trust.yaml"
        path.write_text(
            yaml.safe_dump({"folders": [{"path": str(tmp_path), "trust_level": "reckless"}]}),
            encoding="utf-8",
        )

        store = TrustStore(path)

        assert store.get_folders()[0].trust_level is TrustLevel.STRICT

    def test_in_memory_store(self, workspace: Path) -> None:
        store = TrustStore(None)
        store.add_folder(str(workspace))

        assert store.path is None
        assert len(store.get_folders()) == 1

    def test_in_memory_results_are_copies(self, workspace: Path) -> None:
        store = TrustStore(None)
        store.add_folder(str(workspace)).trust_level = TrustLevel.TRUST
        store.grant_permission("run_command").tool = "list_dir"

        store.get_folders()[0].trust_level = TrustLevel.TRUST
        primary = store.primary_folder()
        assert primary is not None
        primary.path = "/elsewhere"
        store.get_permissions()[0].tool = "write_file"

        assert store.trust_level_for_folder(str(workspace)) is TrustLevel.STRICT
        assert store.primary_folder().path == str(normalize_path(str(workspace)))
        assert store.has_standing_permission("run_command")
        assert not store.has_standing_permission("write_file")
