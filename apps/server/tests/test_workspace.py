import pytest

from fileconv_server.errors import WorkspaceError
from fileconv_server.workspace import DocumentWorkspace, safe_filename


def test_workspace_removed_after_success(tmp_path) -> None:
    """The directory and its files are gone after the block."""
    with DocumentWorkspace(prefix="test-", root=tmp_path) as workspace:
        path = workspace.directory
        workspace.save("input.pdf", b"data")
        assert path.is_dir()
        assert path.name.startswith("test-")
    assert not path.exists()
    assert list(tmp_path.iterdir()) == []


def test_workspace_removed_after_error(tmp_path) -> None:
    """An exception inside the block still removes the directory."""
    with pytest.raises(RuntimeError):
        with DocumentWorkspace(root=tmp_path) as workspace:
            path = workspace.directory
            workspace.save("input.pdf", b"data")
            raise RuntimeError("boom")
    assert not path.exists()


def test_workspace_cleanup_runs_once(tmp_path) -> None:
    """Cleaning up twice is harmless."""
    workspace = DocumentWorkspace(root=tmp_path)
    with workspace:
        pass
    workspace.cleanup()
    assert list(tmp_path.iterdir()) == []


def test_workspaces_are_unique(tmp_path) -> None:
    """Concurrent workspaces never share a directory."""
    with DocumentWorkspace(root=tmp_path) as first, DocumentWorkspace(root=tmp_path) as second:
        assert first.directory != second.directory


def test_workspace_save_keeps_base_name_only(tmp_path) -> None:
    """Directory components of an upload name are dropped."""
    with DocumentWorkspace(root=tmp_path) as workspace:
        saved = workspace.save("../../etc/passwd.pdf", b"x")
        indexed = workspace.save("a.pdf", b"y", index=3)
        assert saved.parent == workspace.directory
        assert saved.name == "passwd.pdf"
        assert indexed.name == "03_a.pdf"


def test_workspace_outputs_exclude_sources(tmp_path) -> None:
    """Outputs list written files sorted by name, without saved sources."""
    with DocumentWorkspace(root=tmp_path) as workspace:
        workspace.save("source.pdf", b"src")
        workspace.file("b.pdf").write_bytes(b"b")
        workspace.file("a.pdf").write_bytes(b"a")
        (workspace.directory / "nested").mkdir()
        assert [path.name for path in workspace.outputs()] == ["a.pdf", "b.pdf"]
        assert workspace.read(workspace.file("a.pdf")) == b"a"


def test_workspace_requires_open_directory() -> None:
    """Using a workspace outside its block fails."""
    workspace = DocumentWorkspace()
    with pytest.raises(WorkspaceError):
        workspace.save("a.pdf", b"data")


def test_workspace_creation_failure(tmp_path) -> None:
    """An unusable root is reported as a workspace error."""
    blocker = tmp_path / "file"
    blocker.write_bytes(b"")
    with pytest.raises(WorkspaceError):
        with DocumentWorkspace(root=blocker):
            pass


def test_safe_filename() -> None:
    """Names are reduced to safe ASCII base names."""
    assert safe_filename("dir/My Report (1).pdf") == "My_Report__1_.pdf"
    assert safe_filename("") == "document.pdf"
    assert safe_filename(None) == "document.pdf"
    assert safe_filename("..") == "document.pdf"
    assert safe_filename("résumé.pdf") == "r_sum_.pdf"
