from __future__ import annotations

import io
import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Optional, Protocol

from dulwich import porcelain
from dulwich.diff_tree import CHANGE_MODIFY, CHANGE_RENAME, RenameDetector, tree_changes
from dulwich.patch import write_object_diff
from dulwich.repo import Repo

from slider.config import SliderConfig
from slider.git_urls import transport_url
from slider.models import DiffStatus, FileChange, FileRename, RepositoryRef

logger = logging.getLogger(__name__)


class RepositoryManager(Protocol):
    """On-disk lifecycle of one repository, as used by the pipeline."""

    @property
    def path(self) -> Path: ...

    def sync(self) -> None: ...

    def ensure_clean_branch(self, name: str) -> None: ...

    def compute_diff(self) -> DiffStatus: ...

    def commit_if_dirty(self, branch: str, message: str) -> bool: ...

    def push(self, branch: str) -> None: ...

    def close(self) -> None: ...


def _heads_ref(branch: str) -> bytes:
    return f"refs/heads/{branch}".encode()


def _remote_tracking_ref(branch: str) -> bytes:
    return f"refs/remotes/origin/{branch}".encode()


def _diff_side(entry) -> tuple:
    # The absent side of an add or delete is None on newer dulwich and a null
    # TreeEntry on older releases.
    if entry is None or entry.path is None:
        return (None, None, None)
    return (entry.path, entry.mode, entry.sha)


def _whitespace_only(store, old_sha: bytes, new_sha: bytes) -> bool:
    old = store[old_sha].data
    new = store[new_sha].data
    return b"".join(old.split()) == b"".join(new.split())


class LocalRepository:
    """
    A local clone kept in lock-step with the remote default branch.

    Every run starts from `sync()`, which leaves the default branch checked out at
    the remote tip with no local modifications or untracked files.
    """

    def __init__(
        self,
        ref: RepositoryRef,
        *,
        token: Optional[str] = None,
        clone_depth: Optional[int] = 5,
        author: str = "slider <slider@localhost>",
    ) -> None:
        self.ref = ref
        self.token = token
        self.clone_depth = clone_depth
        self.author = author
        self._repo: Optional[Repo] = None

    @property
    def path(self) -> Path:
        return self.ref.path

    @property
    def repo(self) -> Repo:
        if self._repo is None:
            raise RuntimeError(f"{self.ref.url} has not been synced yet")
        return self._repo

    def _transport_url(self) -> str:
        return transport_url(self.ref.url, self.token)

    def sync(self) -> None:
        if (self.path / ".git").exists():
            logger.info("[sync] reusing clone %s", self.path)
            self._repo = Repo(str(self.path))
            self._fetch()
        else:
            if self.path.exists():
                logger.info(
                    "[sync] %s exists but is not a git repo; removing before clone",
                    self.path,
                )
                shutil.rmtree(self.path)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            logger.info("[sync] cloning %s -> %s", self.ref.url, self.path)
            self._repo = porcelain.clone(
                self._transport_url(),
                str(self.path),
                checkout=True,
                depth=self.clone_depth,
                errstream=io.BytesIO(),
            )
            self._forget_transport_url()
        self._reset_to_remote_default()

    def _forget_transport_url(self) -> None:
        # Clone records the token URL as origin; fetch and push pass it explicitly.
        config = self.repo.get_config()
        config.set((b"remote", b"origin"), b"url", self.ref.url.encode())
        config.write_to_path()

    def _fetch(self) -> None:
        # Silence noisy fetch output; failures propagate to the pipeline.
        result = porcelain.fetch(
            self.repo,
            self._transport_url(),
            depth=self.clone_depth,
            outstream=io.StringIO(),
            errstream=io.BytesIO(),
        )
        # Fetching by URL does not populate refs/remotes/origin/*; write them ourselves.
        written = 0
        for ref_name, sha in result.refs.items():
            if not ref_name.startswith(b"refs/heads/") or not sha:
                continue
            branch = ref_name[len(b"refs/heads/") :]
            self.repo.refs[b"refs/remotes/origin/" + branch] = sha
            written += 1
        logger.info("[sync] fetch updated %d origin/* tracking refs for %s", written, self.ref.url)

    def _remote_default_sha(self) -> bytes:
        default_branch = self.ref.default_branch
        for ref in (_remote_tracking_ref(default_branch), _heads_ref(default_branch)):
            if ref in self.repo.refs:
                return self.repo.refs[ref]
        raise RuntimeError(
            f"Default branch {default_branch} not found for {self.ref.url}"
        )

    def _reset_to_remote_default(self) -> None:
        sha = self._remote_default_sha()
        branch_ref = _heads_ref(self.ref.default_branch)
        self.repo.refs[branch_ref] = sha
        self.repo.refs.set_symbolic_ref(b"HEAD", branch_ref)
        porcelain.reset(self.repo, "hard", sha)
        porcelain.clean(self.repo, str(self.path))
        logger.info(
            "[sync] %s at origin/%s@%s",
            self.ref.url,
            self.ref.default_branch,
            sha.decode()[:8],
        )

    def ensure_clean_branch(self, name: str) -> None:
        """Recreate `name` from the current head, discarding any previous copy."""
        branch_ref = _heads_ref(name)
        if branch_ref in self.repo.refs:
            logger.info("[branch] deleting existing local branch %s", name)
            porcelain.branch_delete(self.repo, name)
        tracking = _remote_tracking_ref(name)
        if tracking in self.repo.refs:
            del self.repo.refs[tracking]
        head = self.repo.head()
        porcelain.branch_create(self.repo.path, name, head.decode("ascii"))
        self.repo.refs.set_symbolic_ref(b"HEAD", branch_ref)
        logger.info("[branch] created %s at %s", name, head.decode()[:8])

    def _stage_all(self) -> None:
        status = porcelain.status(self.repo, untracked_files="all")
        changed = [os.fsdecode(p) for p in status.unstaged]
        changed.extend(os.fsdecode(p) for p in status.untracked)

        to_add: list[str] = []
        removed: list[bytes] = []
        for rel in changed:
            full = os.path.join(self.repo.path, rel)
            if os.path.lexists(full):
                to_add.append(full)
            else:
                removed.append(os.fsencode(rel))

        if to_add:
            porcelain.add(self.repo, paths=to_add)
        if removed:
            index = self.repo.open_index()
            for tree_path in removed:
                if tree_path in index:
                    del index[tree_path]
            index.write()

    def compute_diff(self) -> DiffStatus:
        """Stage everything and diff the index against the remote default branch."""
        self._stage_all()
        store = self.repo.object_store
        index_tree = self.repo.open_index().commit(store)
        base_tree = self.repo[self._remote_default_sha()].tree

        entries: list[FileChange | FileRename] = []
        for change in tree_changes(
            store, base_tree, index_tree, rename_detector=RenameDetector(store)
        ):
            if change.type == CHANGE_RENAME:
                entries.append(
                    FileRename(
                        old_path=os.fsdecode(change.old.path),
                        new_path=os.fsdecode(change.new.path),
                    )
                )
                continue
            if change.type == CHANGE_MODIFY and _whitespace_only(
                store, change.old.sha, change.new.sha
            ):
                continue
            old, new = _diff_side(change.old), _diff_side(change.new)
            out = io.BytesIO()
            write_object_diff(out, store, old, new)
            path = new[0] or old[0]
            entries.append(
                FileChange(
                    path=os.fsdecode(path),
                    diff=out.getvalue().decode("utf-8", errors="replace"),
                )
            )
        return tuple(entries)

    def commit_if_dirty(self, branch: str, message: str) -> bool:
        if not self.compute_diff():
            logger.info("[commit] no changes relative to origin/%s", self.ref.default_branch)
            return False

        branch_ref = _heads_ref(branch)
        if self.repo.refs.get_symrefs().get(b"HEAD") != branch_ref:
            logger.warning("[commit] HEAD is not on %s; switching before commit", branch)
            if branch_ref not in self.repo.refs:
                self.repo.refs[branch_ref] = self.repo.head()
            self.repo.refs.set_symbolic_ref(b"HEAD", branch_ref)

        logger.info("[commit] committing changes on %s", branch)
        porcelain.commit(
            self.repo,
            message=message,
            author=self.author.encode(),
            committer=self.author.encode(),
        )
        return True

    def push(self, branch: str) -> None:
        # The branch is recreated every run, so the remote copy may have diverged.
        refspec = f"refs/heads/{branch}:refs/heads/{branch}"
        logger.info("[push] force-pushing %s to %s", branch, self.ref.url)
        null_stream = io.BytesIO()
        porcelain.push(
            self.repo,
            self._transport_url(),
            refspecs=[refspec],
            outstream=null_stream,
            errstream=null_stream,
            force=True,
        )

    def close(self) -> None:
        if self._repo is not None:
            self._repo.close()
            self._repo = None


def repository_factory(
    *, token: Optional[str], config: SliderConfig
) -> Callable[[RepositoryRef], LocalRepository]:
    def build(ref: RepositoryRef) -> LocalRepository:
        return LocalRepository(
            ref,
            token=token,
            clone_depth=config.clone_depth,
            author=config.author,
        )

    return build
