# repo.py -- For dealing with git repositories.
# Copyright (C) 2026 The ancestry authors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# ancestry is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""Repository access.

This module contains the base class for git repositories
(BaseRepo) and an implementation which uses a repository on
local disk (Repo).
"""

__all__ = [
    "COMMONDIR",
    "CONTROLDIR",
    "OBJECTDIR",
    "REFSDIR",
    "SHALLOW",
    "BaseRepo",
    "MemoryRepo",
    "Repo",
    "UnsupportedVersion",
    "read_gitfile",
]

import os
import types
from io import BytesIO
from typing import IO

from .config import ConfigFile
from .errors import NotGitRepository
from .log_utils import getLogger
from .object_store import BaseObjectStore, DiskObjectStore, MemoryObjectStore, peel_sha
from .objects import ObjectID, ShaFile
from .refs import (
    HEADREF,
    SYMREF,
    DictRefsContainer,
    DiskRefsContainer,
    RefsContainer,
    list_branches,
    resolve_ref,
)

logger = getLogger(__name__)

CONTROLDIR = ".git"
OBJECTDIR = "objects"
REFSDIR = "refs"
REFSDIR_TAGS = "tags"
REFSDIR_HEADS = "heads"
COMMONDIR = "commondir"
SHALLOW = "shallow"

DEFAULT_BRANCH = b"master"


class UnsupportedVersion(Exception):
    """Unsupported repository version."""

    def __init__(self, version: int) -> None:
        """Initialize UnsupportedVersion exception.

        Args:
            version: The unsupported repository version
        """
        self.version = version
        super().__init__(f"Unsupported repository format version {version}")


def read_gitfile(f: IO[bytes]) -> str:
    """Read a ``.git`` file.

    The first line of the file should start with "gitdir: "

    Args:
      f: File-like object to read from
    Returns: A path
    """
    cs = f.read()
    if not cs.startswith(b"gitdir: "):
        raise ValueError("Expected file to start with 'gitdir: '")
    return cs[len(b"gitdir: ") :].rstrip(b"\r\n").decode("utf-8")


class BaseRepo:
    """Base class for a git repository.

    This base class is meant to be used for Repository implementations that e.g.
    work on top of a different transport than a standard filesystem path.

    Attributes:
      object_store: Dictionary-like object for accessing
        the objects
      refs: Dictionary-like object with the refs in this
        repository
    """

    def __init__(self, object_store: BaseObjectStore, refs: RefsContainer) -> None:
        """Open a repository.

        This shouldn't be called directly, but rather through one of the
        subclasses, such as MemoryRepo or Repo.

        Args:
          object_store: Object store to use
          refs: Refs container to use
        """
        self.object_store = object_store
        self.refs = refs

    def get_named_file(self, path: str) -> IO[bytes] | None:
        """Get a file from the control dir with a specific name.

        Although the filename should be interpreted as a filename relative to
        the control dir in a disk-based Repo, the object returned need not be
        pointing to a file in that location.

        Args:
          path: The path to the file, relative to the control dir.
        Returns: An open file object, or None if the file does not exist.
        """
        raise NotImplementedError(self.get_named_file)

    def get_config(self) -> ConfigFile:
        """Retrieve the config object.

        Returns: `ConfigFile` object for the ``.git/config`` file.
        """
        raise NotImplementedError(self.get_config)

    def get_shallow(self) -> set[ObjectID]:
        """Get the set of shallow commits.

        Returns: Set of shallow commits.
        """
        f = self.get_named_file(SHALLOW)
        if f is None:
            return set()
        with f:
            return {ObjectID(line.strip()) for line in f if line.strip()}

    def get_peeled(self, ref: bytes) -> ObjectID:
        """Get the peeled value of a ref.

        Args:
          ref: The refname to peel.
        Returns: The fully-peeled SHA1 of a tag object, after peeling all
            intermediate tags; if the original ref does not point to a tag,
            this will equal the original SHA1.
        """
        cached = self.refs.get_peeled(ref)
        if cached is not None:
            return cached
        return peel_sha(self.object_store, self.refs[ref])[1].id

    def resolve_ref(self, name: str | bytes) -> ObjectID:
        """Resolve a ref name or hex sha to an object id.

        Raises:
          RefResolutionError: if the name can not be resolved
        """
        return resolve_ref(self.refs, name)

    def list_branches(self, remote: str | bytes | None = None) -> list[bytes]:
        """List local branches, or the branches of a remote."""
        return list_branches(self.refs, remote)

    def list_remotes(self) -> list[bytes]:
        """List the names of the remotes configured for this repository."""
        config = self.get_config()
        return [
            section[1]
            for section in config.sections()
            if len(section) == 2 and section[0] == b"remote"
        ]

    def head(self) -> ObjectID:
        """Return the SHA1 pointed at by HEAD."""
        return self.refs[HEADREF]

    def __getitem__(self, name: ObjectID | bytes) -> ShaFile:
        """Retrieve an object by SHA1."""
        return self.object_store[name]

    def close(self) -> None:
        """Close any files opened by this repository."""
        self.object_store.close()

    def __enter__(self) -> "BaseRepo":
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Exit context manager and close repository."""
        self.close()


class Repo(BaseRepo):
    """A git repository backed by local disk.

    To open an existing repository, call the constructor with
    the path of the repository.

    Note that a repository object may hold on to resources such
    as file handles for performance reasons; call .close() to free
    up those resources.

    Attributes:
      path: Path to the working copy (if it exists) or repository control
        directory (if the repository is bare)
      bare: Whether this is a bare repository
    """

    path: str
    bare: bool
    object_store: DiskObjectStore

    def __init__(
        self,
        root: str | bytes | os.PathLike[str],
        bare: bool | None = None,
    ) -> None:
        """Open a repository on disk.

        Args:
          root: Path to the repository's root.
          bare: True if this is a bare repository.
        """
        root = os.fspath(root)
        if isinstance(root, bytes):
            root = os.fsdecode(root)
        hidden_path = os.path.join(root, CONTROLDIR)
        if bare is None:
            if os.path.isfile(hidden_path) or os.path.isdir(
                os.path.join(hidden_path, OBJECTDIR)
            ):
                bare = False
            elif os.path.isdir(os.path.join(root, OBJECTDIR)) and os.path.isdir(
                os.path.join(root, REFSDIR)
            ):
                bare = True
            else:
                raise NotGitRepository(f"No git repository was found at {root}")

        self.bare = bare
        if bare is False:
            if os.path.isfile(hidden_path):
                with open(hidden_path, "rb") as f:
                    path = read_gitfile(f)
                self._controldir = os.path.join(root, path)
            else:
                self._controldir = hidden_path
        else:
            self._controldir = root
        commondir = self.get_named_file(COMMONDIR)
        if commondir is not None:
            with commondir:
                self._commondir = os.path.join(
                    self.controldir(),
                    os.fsdecode(commondir.read().rstrip(b"\r\n")),
                )
        else:
            self._commondir = self._controldir
        self.path = root

        config = self.get_config()
        try:
            format_version = int(config.get("core", "repositoryformatversion"))
        except KeyError:
            format_version = 0
        if format_version not in (0, 1):
            raise UnsupportedVersion(format_version)

        refs = DiskRefsContainer(self.commondir(), self._controldir)
        object_store = DiskObjectStore(os.path.join(self.commondir(), OBJECTDIR))
        BaseRepo.__init__(self, object_store, refs)
        logger.debug("Opened repository at %s", self._controldir)

    def __repr__(self) -> str:
        """Return string representation of this repository."""
        return f"<Repo at {self.path!r}>"

    @classmethod
    def discover(cls, start: str | bytes | os.PathLike[str] = ".") -> "Repo":
        """Iterate parent directories to discover a repository.

        Return a Repo object for the first parent directory that looks like a
        Git repository.

        Args:
          start: The directory to start discovery from (defaults to '.')
        """
        path = os.path.abspath(start)
        while True:
            try:
                return cls(path)
            except NotGitRepository:
                new_path, _tail = os.path.split(path)
                if new_path == path:  # Root reached
                    break
                path = new_path
        start_str = os.fspath(start)
        if isinstance(start_str, bytes):
            start_str = start_str.decode("utf-8")
        raise NotGitRepository(f"No git repository was found at {start_str}")

    def controldir(self) -> str:
        """Return the path of the control directory."""
        return self._controldir

    def commondir(self) -> str:
        """Return the path of the common directory.

        For a main working tree, it is identical to controldir().

        For a linked working tree, it is the control directory of the
        main working tree.
        """
        return self._commondir

    def get_named_file(self, path: str, basedir: str | None = None) -> IO[bytes] | None:
        """Get a file from the control dir with a specific name.

        Args:
          path: The path to the file, relative to the control dir.
          basedir: Optional argument that specifies an alternative to the
            control dir.
        Returns: An open file object, or None if the file does not exist.
        """
        if basedir is None:
            basedir = self.controldir()
        path = path.lstrip(os.path.sep)
        try:
            return open(os.path.join(basedir, path), "rb")
        except FileNotFoundError:
            return None

    def get_shallow(self) -> set[ObjectID]:
        """Get the set of shallow commits, shared by all worktrees."""
        f = self.get_named_file(SHALLOW, basedir=self.commondir())
        if f is None:
            return set()
        with f:
            return {ObjectID(line.strip()) for line in f if line.strip()}

    def get_config(self) -> ConfigFile:
        """Retrieve the config object.

        Returns: `ConfigFile` object for the ``.git/config`` file.
        """
        path = os.path.join(self.commondir(), "config")
        try:
            return ConfigFile.from_path(path)
        except FileNotFoundError:
            ret = ConfigFile()
            ret.path = path
            return ret

    @classmethod
    def _init_maybe_bare(cls, controldir: str, bare: bool) -> None:
        for d in (
            (OBJECTDIR, "pack"),
            (REFSDIR, REFSDIR_TAGS),
            (REFSDIR, REFSDIR_HEADS),
        ):
            os.makedirs(os.path.join(controldir, *d), exist_ok=True)
        with open(os.path.join(controldir, "HEAD"), "wb") as f:
            f.write(SYMREF + b"refs/heads/" + DEFAULT_BRANCH + b"\n")
        with open(os.path.join(controldir, "config"), "wb") as f:
            f.write(
                b"[core]\n"
                b"\trepositoryformatversion = 0\n"
                b"\tbare = " + (b"true" if bare else b"false") + b"\n"
            )

    @classmethod
    def init(cls, path: str | os.PathLike[str], *, mkdir: bool = False) -> "Repo":
        """Create a new repository with a working tree.

        Args:
          path: Path in which to create the repository
          mkdir: Whether to create the directory
        Returns: `Repo` instance
        """
        path = os.fspath(path)
        if mkdir:
            os.mkdir(path)
        controldir = os.path.join(path, CONTROLDIR)
        os.mkdir(controldir)
        cls._init_maybe_bare(controldir, False)
        return cls(path)

    @classmethod
    def init_bare(cls, path: str | os.PathLike[str], *, mkdir: bool = False) -> "Repo":
        """Create a new bare repository.

        Args:
          path: Path to create bare repository in
          mkdir: Whether to create the directory
        Returns: a `Repo` instance
        """
        path = os.fspath(path)
        if mkdir:
            os.mkdir(path)
        cls._init_maybe_bare(path, True)
        return cls(path, bare=True)

    def __enter__(self) -> "Repo":
        """Enter context manager."""
        return self


class MemoryRepo(BaseRepo):
    """Repo that stores refs, objects, and named files in memory.

    MemoryRepos are always bare: they have no working tree and no index, since
    those have a stronger dependency on the filesystem.
    """

    def __init__(self) -> None:
        """Create a new repository in memory."""
        BaseRepo.__init__(self, MemoryObjectStore(), DictRefsContainer({}))
        self._named_files: dict[str, bytes] = {}
        self.bare = True
        self._config = ConfigFile()

    def _put_named_file(self, path: str, contents: bytes) -> None:
        """Write a file to the control dir with the given name and contents.

        Args:
          path: The path to the file, relative to the control dir.
          contents: A string to write to the file.
        """
        self._named_files[path] = contents

    def get_named_file(self, path: str) -> IO[bytes] | None:
        """Get a file from the control dir with a specific name.

        Args:
          path: The path to the file, relative to the control dir.
        Returns: An open file object, or None if the file does not exist.
        """
        contents = self._named_files.get(path, None)
        if contents is None:
            return None
        return BytesIO(contents)

    def set_config(self, config: ConfigFile) -> None:
        """Replace the config of this repository."""
        self._config = config

    def get_config(self) -> ConfigFile:
        """Retrieve the config object.

        Returns: `ConfigFile` object.
        """
        return self._config

    def update_shallow(self, shallow: set[ObjectID]) -> None:
        """Replace the set of shallow commits."""
        if shallow:
            self._put_named_file(SHALLOW, b"".join(sha + b"\n" for sha in sorted(shallow)))
        else:
            self._named_files.pop(SHALLOW, None)

    def __enter__(self) -> "MemoryRepo":
        """Enter context manager."""
        return self
