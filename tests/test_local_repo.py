from __future__ import annotations

from pathlib import Path

import pytest
from dulwich import porcelain
from dulwich.repo import Repo

from slider import local_repo
from slider.local_repo import LocalRepository
from slider.models import FileChange, FileRename, RepositoryRef

AUTHOR = b"Seed <seed@example.com>"


@pytest.fixture
def seed(tmp_path: Path) -> tuple[Path, str]:
    """A non-bare upstream repository with one commit on its default branch."""
    upstream = tmp_path / "upstream"
    upstream.mkdir()
    porcelain.init(str(upstream))
    (upstream / "README.md").write_text("hello\nworld\n")
    (upstream / "OWNERS").write_text("alice\n")
    porcelain.add(str(upstream), paths=[str(upstream / "README.md"), str(upstream / "OWNERS")])
    porcelain.commit(str(upstream), message=b"init", author=AUTHOR, committer=AUTHOR)
    with Repo(str(upstream)) as repo:
        head_ref = repo.refs.get_symrefs()[b"HEAD"]
    return upstream, head_ref.decode().removeprefix("refs/heads/")


def _local(tmp_path: Path, seed: tuple[Path, str]) -> LocalRepository:
    upstream, branch = seed
    ref = RepositoryRef(
        url=str(upstream),
        name="upstream",
        owner="acme",
        default_branch=branch,
        path=tmp_path / "work" / "acme__upstream",
    )
    return LocalRepository(ref, clone_depth=None, author="slider <slider@localhost>")


def test_fresh_clone_has_no_diff(tmp_path: Path, seed) -> None:
    local = _local(tmp_path, seed)
    local.sync()
    local.ensure_clean_branch("slider/x")

    assert (local.path / "README.md").read_text() == "hello\nworld\n"
    assert local.compute_diff() == ()
    assert local.commit_if_dirty("slider/x", "nothing") is False
    local.close()


def test_sync_replaces_a_non_repository_directory(tmp_path: Path, seed) -> None:
    local = _local(tmp_path, seed)
    local.path.mkdir(parents=True)
    (local.path / "stray.txt").write_text("junk")

    local.sync()

    assert not (local.path / "stray.txt").exists()
    assert (local.path / "README.md").exists()
    local.close()


def test_modification_is_committed_and_pushed(tmp_path: Path, seed) -> None:
    upstream, _ = seed
    local = _local(tmp_path, seed)
    local.sync()
    local.ensure_clean_branch("slider/x")
    (local.path / "README.md").write_text("hello\nthere\n")
    (local.path / "NEW.md").write_text("new file\n")

    diff = local.compute_diff()
    assert sorted(entry.path for entry in diff) == ["NEW.md", "README.md"]
    readme = next(entry for entry in diff if entry.path == "README.md")
    assert isinstance(readme, FileChange)
    assert "+there" in readme.diff
    assert "-world" in readme.diff

    assert local.commit_if_dirty("slider/x", "bulk change") is True
    local.push("slider/x")
    pushed = local.repo.refs[b"refs/heads/slider/x"]
    local.close()

    with Repo(str(upstream)) as repo:
        assert repo.refs[b"refs/heads/slider/x"] == pushed
        assert repo[pushed].message == b"bulk change"


def test_rename_is_reported_as_rename(tmp_path: Path, seed) -> None:
    local = _local(tmp_path, seed)
    local.sync()
    local.ensure_clean_branch("slider/rename")
    (local.path / "OWNERS").rename(local.path / "CODEOWNERS")

    assert local.compute_diff() == (FileRename(old_path="OWNERS", new_path="CODEOWNERS"),)
    local.close()


def test_whitespace_only_changes_are_ignored(tmp_path: Path, seed) -> None:
    local = _local(tmp_path, seed)
    local.sync()
    local.ensure_clean_branch("slider/ws")
    (local.path / "README.md").write_text("hello  \nworld\n\n")

    assert local.compute_diff() == ()
    local.close()


def test_resync_discards_local_edits_and_untracked_files(tmp_path: Path, seed) -> None:
    local = _local(tmp_path, seed)
    local.sync()
    local.ensure_clean_branch("slider/x")
    (local.path / "README.md").write_text("edited\n")
    (local.path / "scratch.txt").write_text("untracked\n")
    local.close()

    again = _local(tmp_path, seed)
    again.sync()
    again.ensure_clean_branch("slider/x")

    assert (again.path / "README.md").read_text() == "hello\nworld\n"
    assert not (again.path / "scratch.txt").exists()
    assert again.compute_diff() == ()
    again.close()


def test_deleted_file_is_reported(tmp_path: Path, seed) -> None:
    local = _local(tmp_path, seed)
    local.sync()
    local.ensure_clean_branch("slider/delete")
    (local.path / "README.md").unlink()

    diff = local.compute_diff()

    assert [entry.path for entry in diff] == ["README.md"]
    assert "-hello" in diff[0].diff
    assert local.commit_if_dirty("slider/delete", "drop readme") is True
    local.close()


def test_rerun_after_pushed_change_starts_from_upstream_head(tmp_path: Path, seed) -> None:
    upstream, branch = seed
    with Repo(str(upstream)) as repo:
        upstream_head = repo.refs[f"refs/heads/{branch}".encode()]

    def apply(local: LocalRepository) -> None:
        (local.path / "OWNERS").rename(local.path / "CODEOWNERS")
        (local.path / "ADDED.md").write_text("added\n")

    first = _local(tmp_path, seed)
    first.sync()
    first.ensure_clean_branch("slider/x")
    apply(first)
    assert first.commit_if_dirty("slider/x", "first run") is True
    first.push("slider/x")
    first.close()

    second = _local(tmp_path, seed)
    second.sync()
    second.ensure_clean_branch("slider/x")

    assert (second.path / "OWNERS").exists()
    assert not (second.path / "CODEOWNERS").exists()
    assert not (second.path / "ADDED.md").exists()
    assert second.compute_diff() == ()

    apply(second)
    assert second.commit_if_dirty("slider/x", "second run") is True
    second.push("slider/x")
    second.close()

    with Repo(str(upstream)) as repo:
        tip = repo[repo.refs[b"refs/heads/slider/x"]]
        assert tip.message == b"second run"
        assert tip.parents == [upstream_head]


def test_clone_does_not_keep_the_transport_url(tmp_path: Path, seed, monkeypatch) -> None:
    monkeypatch.setattr(local_repo, "transport_url", lambda url, token: Path(url).as_uri())
    local = _local(tmp_path, seed)
    local.sync()

    config = local.repo.get_config()
    assert config.get((b"remote", b"origin"), b"url") == local.ref.url.encode()
    local.close()
