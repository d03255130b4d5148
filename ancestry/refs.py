# refs.py -- For dealing with git refs
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

"""Ref handling.

Refs are read-only here: containers answer lookups against a dict, a
``.git`` directory (loose refs plus ``packed-refs``) or a dumb server's
``info/refs`` listing.
"""

__all__ = [
    "HEADREF",
    "LOCAL_BRANCH_PREFIX",
    "LOCAL_REMOTE_PREFIX",
    "LOCAL_TAG_PREFIX",
    "PEELED_TAG_SUFFIX",
    "SYMREF",
    "DictRefsContainer",
    "DiskRefsContainer",
    "InfoRefsContainer",
    "RefsContainer",
    "SymrefLoop",
    "check_ref_format",
    "list_branches",
    "parse_symref_value",
    "read_info_refs",
    "read_packed_refs",
    "read_packed_refs_with_peeled",
    "resolve_ref",
    "split_peeled_refs",
]

import os
from collections.abc import Iterator
from typing import IO, TypeVar

from .errors import PackedRefsException, RefResolutionError
from .log_utils import getLogger
from .objects import ObjectID, valid_hexsha

logger = getLogger(__name__)

HEADREF = b"HEAD"
SYMREF = b"ref: "
LOCAL_BRANCH_PREFIX = b"refs/heads/"
LOCAL_TAG_PREFIX = b"refs/tags/"
LOCAL_REMOTE_PREFIX = b"refs/remotes/"
BAD_REF_CHARS = set(b"\177 ~^:?*[")
PEELED_TAG_SUFFIX = b"^{}"

# Symrefs deeper than this are assumed to loop
MAX_SYMREF_DEPTH = 5


class SymrefLoop(Exception):
    """There is a loop between one or more symrefs."""

    def __init__(self, ref: bytes, depth: int) -> None:
        """Initialize SymrefLoop exception."""
        self.ref = ref
        self.depth = depth
        super().__init__(f"symref loop while following {ref!r}")


def parse_symref_value(contents: bytes) -> bytes:
    """Parse a symref value.

    Args:
      contents: Contents to parse
    Returns: Destination
    """
    if contents.startswith(SYMREF):
        return contents[len(SYMREF) :].rstrip(b"\r\n")
    raise ValueError(contents)


def check_ref_format(refname: bytes) -> bool:
    """Check if a refname is correctly formatted.

    Implements all the same rules as git-check-ref-format[1].

    [1]
    http://www.kernel.org/pub/software/scm/git/docs/git-check-ref-format.html

    Args:
      refname: The refname to check
    Returns: True if refname is valid, False otherwise
    """
    if b"/." in refname or refname.startswith(b"."):
        return False
    if b"/" not in refname:
        return False
    if b".." in refname:
        return False
    for i, c in enumerate(refname):
        if ord(refname[i : i + 1]) < 0o40 or c in BAD_REF_CHARS:
            return False
    if refname[-1] in b"/.":
        return False
    if refname.endswith(b".lock"):
        return False
    if b"@{" in refname:
        return False
    if b"\\" in refname:
        return False
    return True


class RefsContainer:
    """A container for refs."""

    def get_packed_refs(self) -> dict[bytes, ObjectID]:
        """Get contents of the packed-refs file.

        Returns: Dictionary mapping ref names to SHA1s

        Note: Will return an empty dictionary when no packed-refs file is
            present.
        """
        raise NotImplementedError(self.get_packed_refs)

    def get_peeled(self, name: bytes) -> ObjectID | None:
        """Return the cached peeled value of a ref, if available.

        Args:
          name: Name of the ref to peel
        Returns: The peeled value of the ref. If the ref is known not point to
            a tag, this will be the SHA the ref refers to. If the ref may point
            to a tag, but no cached information is available, None is returned.
        """
        return None

    def allkeys(self) -> set[bytes]:
        """All refs present in this container."""
        raise NotImplementedError(self.allkeys)

    def __iter__(self) -> Iterator[bytes]:
        """Iterate over all reference keys."""
        return iter(self.allkeys())

    def keys(self, base: bytes | None = None) -> set[bytes]:
        """Refs present in this container.

        Args:
          base: An optional base to return refs under.
        Returns: An unsorted set of valid refs in this container, including
            packed refs.
        """
        if base is not None:
            return self.subkeys(base)
        else:
            return self.allkeys()

    def subkeys(self, base: bytes) -> set[bytes]:
        """Refs present in this container under a base.

        Args:
          base: The base to return refs under.
        Returns: A set of valid refs in this container under the base; the base
            prefix is stripped from the ref names returned.
        """
        keys = set()
        base = base.rstrip(b"/") + b"/"
        for refname in self.allkeys():
            if refname.startswith(base):
                keys.add(refname[len(base) :])
        return keys

    def as_dict(self, base: bytes | None = None) -> dict[bytes, ObjectID]:
        """Return the contents of this container as a dictionary."""
        ret = {}
        keys = self.keys(base)
        if base is None:
            base = b""
        else:
            base = base.rstrip(b"/")
        for key in keys:
            try:
                ret[key] = self[(base + b"/" + key).strip(b"/")]
            except (SymrefLoop, KeyError):
                continue  # Unable to resolve

        return ret

    def read_ref(self, refname: bytes) -> bytes | None:
        """Read a reference without following any references.

        Args:
          refname: The name of the reference
        Returns: The contents of the ref file, or None if it does
            not exist.
        """
        contents = self.read_loose_ref(refname)
        if not contents:
            contents = self.get_packed_refs().get(refname, None)
        return contents

    def read_loose_ref(self, name: bytes) -> bytes | None:
        """Read a loose reference and return its contents.

        Args:
          name: the refname to read
        Returns: The contents of the ref file, or None if it does
            not exist.
        """
        raise NotImplementedError(self.read_loose_ref)

    def follow(self, name: bytes) -> tuple[list[bytes], bytes | None]:
        """Follow a reference name.

        Returns: a tuple of (refnames, sha), wheres refnames are the names of
            references in the chain
        """
        contents: bytes | None = SYMREF + name
        depth = 0
        refnames = []
        while contents and contents.startswith(SYMREF):
            refname = contents[len(SYMREF) :]
            refnames.append(refname)
            contents = self.read_ref(refname)
            if not contents:
                break
            depth += 1
            if depth > MAX_SYMREF_DEPTH:
                raise SymrefLoop(name, depth)
        return refnames, contents

    def __contains__(self, refname: bytes) -> bool:
        """Check if a reference exists."""
        if self.read_ref(refname):
            return True
        return False

    def __getitem__(self, name: bytes) -> ObjectID:
        """Get the SHA1 for a reference name.

        This method follows all symbolic references.
        """
        _, sha = self.follow(name)
        if sha is None:
            raise KeyError(name)
        return ObjectID(sha)


class DictRefsContainer(RefsContainer):
    """RefsContainer backed by a simple dict.

    Symbolic refs are stored as ``b"ref: <target>"`` values.
    """

    def __init__(
        self,
        refs: dict[bytes, bytes],
        peeled: dict[bytes, ObjectID] | None = None,
    ) -> None:
        """Initialize DictRefsContainer with refs dictionary."""
        self._refs = refs
        self._peeled = dict(peeled or {})

    def allkeys(self) -> set[bytes]:
        """Return all reference keys."""
        return set(self._refs.keys())

    def read_loose_ref(self, name: bytes) -> bytes | None:
        """Read a loose reference."""
        return self._refs.get(name, None)

    def get_packed_refs(self) -> dict[bytes, ObjectID]:
        """Get packed references."""
        return {}

    def get_peeled(self, name: bytes) -> ObjectID | None:
        """Get peeled version of a reference."""
        return self._peeled.get(name)

    def set_symbolic_ref(self, name: bytes, other: bytes) -> None:
        """Make a ref point at another ref."""
        self._refs[name] = SYMREF + other

    def __setitem__(self, name: bytes, ref: bytes) -> None:
        """Set a reference name to point to the given SHA1, for testing."""
        self._refs[name] = ref

    def __delitem__(self, name: bytes) -> None:
        """Remove a refname, for testing."""
        del self._refs[name]


class InfoRefsContainer(RefsContainer):
    """Refs container that reads refs from a info/refs file."""

    def __init__(self, f: IO[bytes]) -> None:
        """Initialize InfoRefsContainer from info/refs file."""
        refs = read_info_refs(f)
        (self._refs, self._peeled) = split_peeled_refs(refs)

    def allkeys(self) -> set[bytes]:
        """Return all reference keys."""
        return set(self._refs.keys())

    def read_loose_ref(self, name: bytes) -> bytes | None:
        """Read a loose reference."""
        return self._refs.get(name, None)

    def get_packed_refs(self) -> dict[bytes, ObjectID]:
        """Get packed references."""
        return {}

    def get_peeled(self, name: bytes) -> ObjectID | None:
        """Get peeled version of a reference."""
        try:
            return self._peeled[name]
        except KeyError:
            return self._refs[name]


class DiskRefsContainer(RefsContainer):
    """Refs container that reads refs from disk."""

    def __init__(
        self,
        path: str | bytes | os.PathLike[str],
        worktree_path: str | bytes | os.PathLike[str] | None = None,
    ) -> None:
        """Initialize DiskRefsContainer.

        Args:
          path: The common git directory, holding refs/ and packed-refs
          worktree_path: The worktree's git directory, holding HEAD
        """
        self.path = os.fsencode(os.fspath(path))
        if worktree_path is None:
            self.worktree_path = self.path
        else:
            self.worktree_path = os.fsencode(os.fspath(worktree_path))
        self._packed_refs: dict[bytes, ObjectID] | None = None
        self._peeled_refs: dict[bytes, ObjectID] | None = None

    def __repr__(self) -> str:
        """Return string representation of DiskRefsContainer."""
        return f"{self.__class__.__name__}({self.path!r})"

    def _iter_loose_refs(self, base: bytes = b"refs/") -> Iterator[bytes]:
        refspath = os.path.join(self.path, base.rstrip(b"/"))
        prefix_len = len(os.path.join(self.path, b""))
        for root, _dirs, files in os.walk(refspath):
            directory = root[prefix_len:]
            if os.path.sep != "/":
                directory = directory.replace(os.fsencode(os.path.sep), b"/")
            for filename in files:
                refname = b"/".join([directory, filename])
                if check_ref_format(refname):
                    yield refname

    def subkeys(self, base: bytes) -> set[bytes]:
        """Return subkeys under a given base reference path."""
        subkeys = set()
        base = base.rstrip(b"/") + b"/"
        for key in self._iter_loose_refs(base):
            if key.startswith(base):
                subkeys.add(key[len(base) :].strip(b"/"))
        for key in self.get_packed_refs():
            if key.startswith(base):
                subkeys.add(key[len(base) :].strip(b"/"))
        return subkeys

    def allkeys(self) -> set[bytes]:
        """Return all reference keys."""
        allkeys = set()
        if os.path.exists(self.refpath(HEADREF)):
            allkeys.add(HEADREF)
        allkeys.update(self._iter_loose_refs())
        allkeys.update(self.get_packed_refs())
        return allkeys

    def refpath(self, name: bytes) -> bytes:
        """Return the disk path of a ref."""
        path = name
        if os.path.sep != "/":
            path = path.replace(b"/", os.fsencode(os.path.sep))
        root_dir = self.worktree_path if name == HEADREF else self.path
        return os.path.join(root_dir, path)

    def get_packed_refs(self) -> dict[bytes, ObjectID]:
        """Get contents of the packed-refs file.

        Returns: Dictionary mapping ref names to SHA1s

        Note: Will return an empty dictionary when no packed-refs file is
            present.
        """
        if self._packed_refs is None:
            self._packed_refs = {}
            # Stays None unless the file declares that it records peeled values
            self._peeled_refs = None
            path = os.path.join(self.path, b"packed-refs")
            try:
                f = open(path, "rb")
            except FileNotFoundError:
                return {}
            with f:
                first_line = f.readline().rstrip()
                if first_line.startswith(b"# pack-refs") and b" peeled" in first_line:
                    self._peeled_refs = {}
                    for sha, name, peeled in read_packed_refs_with_peeled(f):
                        self._packed_refs[name] = sha
                        if peeled:
                            self._peeled_refs[name] = peeled
                else:
                    f.seek(0)
                    for sha, name in read_packed_refs(f):
                        self._packed_refs[name] = sha
        return self._packed_refs

    def get_peeled(self, name: bytes) -> ObjectID | None:
        """Return the cached peeled value of a ref, if available.

        Args:
          name: Name of the ref to peel
        Returns: The peeled value of the ref. If the ref is known not point to
            a tag, this will be the SHA the ref refers to. If the ref may point
            to a tag, but no cached information is available, None is returned.
        """
        self.get_packed_refs()
        if (
            self._peeled_refs is None
            or self._packed_refs is None
            or name not in self._packed_refs
        ):
            # No cache: no peeled refs were read, or this ref is not packed
            return None
        if self.read_loose_ref(name):
            # The loose ref overrides the packed value the cache describes
            return None
        if name in self._peeled_refs:
            return self._peeled_refs[name]
        else:
            # Known not peelable
            return self[name]

    def read_loose_ref(self, name: bytes) -> bytes | None:
        """Read a reference file and return its contents.

        If the reference file a symbolic reference, only read the first line of
        the file. Otherwise, only read the first 40 bytes.

        Args:
          name: the refname to read, relative to refpath
        Returns: The contents of the ref file, or None if the file does not
            exist.
        """
        filename = self.refpath(name)
        try:
            with open(filename, "rb") as f:
                header = f.read(len(SYMREF))
                if header == SYMREF:
                    # Read only the first line
                    return header + f.readline().rstrip(b"\r\n")
                else:
                    # Read only the first 40 bytes
                    return header + f.read(40 - len(SYMREF))
        except (OSError, UnicodeError):
            # Invalid or forbidden paths raise platform specific errors
            return None


def _split_ref_line(line: bytes) -> tuple[ObjectID, bytes]:
    """Split a single ref line into a tuple of SHA1 and name."""
    fields = line.rstrip(b"\n\r").split(b" ")
    if len(fields) != 2:
        raise PackedRefsException(f"invalid ref line {line!r}")
    sha, name = fields
    if not valid_hexsha(sha):
        raise PackedRefsException(f"Invalid hex sha {sha!r}")
    if not check_ref_format(name):
        raise PackedRefsException(f"invalid ref name {name!r}")
    return (ObjectID(sha), name)


def read_packed_refs(f: IO[bytes]) -> Iterator[tuple[ObjectID, bytes]]:
    """Read a packed refs file.

    Args:
      f: file-like object to read from
    Returns: Iterator over tuples with SHA1s and ref names.
    """
    for line in f:
        if line.startswith(b"#"):
            # Comment
            continue
        if line.startswith(b"^"):
            raise PackedRefsException("found peeled ref in packed-refs without peeled")
        yield _split_ref_line(line)


def read_packed_refs_with_peeled(
    f: IO[bytes],
) -> Iterator[tuple[ObjectID, bytes, ObjectID | None]]:
    """Read a packed refs file including peeled refs.

    Assumes the "# pack-refs with: peeled" line was already read. Yields tuples
    with ref names, SHA1s, and peeled SHA1s (or None).

    Args:
      f: file-like object to read from, seek'ed to the second line
    """
    last = None
    for line in f:
        if line.startswith(b"#"):
            continue
        line = line.rstrip(b"\r\n")
        if line.startswith(b"^"):
            if not last:
                raise PackedRefsException("unexpected peeled ref line")
            if not valid_hexsha(line[1:]):
                raise PackedRefsException(f"Invalid hex sha {line[1:]!r}")
            sha, name = _split_ref_line(last)
            last = None
            yield (sha, name, ObjectID(line[1:]))
        else:
            if last:
                sha, name = _split_ref_line(last)
                yield (sha, name, None)
            last = line
    if last:
        sha, name = _split_ref_line(last)
        yield (sha, name, None)


def read_info_refs(f: IO[bytes]) -> dict[bytes, ObjectID]:
    """Read info/refs file.

    Args:
      f: File-like object to read from

    Returns:
      Dictionary mapping ref names to SHA1s
    """
    ret = {}
    for line in f.readlines():
        line = line.rstrip(b"\r\n")
        if not line:
            continue
        (sha, name) = line.split(b"\t", 1)
        ret[name] = ObjectID(sha)
    return ret


T = TypeVar("T", dict[bytes, bytes], dict[bytes, ObjectID])


def split_peeled_refs(refs: T) -> tuple[T, T]:
    """Split peeled refs from regular refs."""
    peeled = {}
    regular = {}
    for ref, sha in refs.items():
        if ref.endswith(PEELED_TAG_SUFFIX):
            peeled[ref[: -len(PEELED_TAG_SUFFIX)]] = sha
        else:
            regular[ref] = sha
    return regular, peeled  # type: ignore[return-value]


def _candidate_refs(name: bytes) -> list[bytes]:
    # Same order as git rev-parse's ref_rev_parse_rules
    return [
        name,
        b"refs/" + name,
        LOCAL_TAG_PREFIX + name,
        LOCAL_BRANCH_PREFIX + name,
        LOCAL_REMOTE_PREFIX + name,
        LOCAL_REMOTE_PREFIX + name + b"/HEAD",
    ]


def resolve_ref(refs: RefsContainer, name: str | bytes) -> ObjectID:
    """Resolve a name to the object id it refers to.

    A full hex object id resolves to itself. Anything else is looked up
    the way ``git rev-parse`` does it: as given, under ``refs/``, as a tag,
    as a local branch, as a remote and as a remote's HEAD.

    Args:
      refs: A RefsContainer
      name: A ref name, short ref name or hex object id
    Returns: The object id the name refers to
    Raises:
      RefResolutionError: if nothing matches
    """
    if isinstance(name, str):
        name = name.encode("utf-8")
    if valid_hexsha(name):
        return ObjectID(name.lower())
    for ref in _candidate_refs(name):
        if ref not in refs:
            continue
        try:
            sha = refs[ref]
        except (KeyError, SymrefLoop):
            logger.warning("Ignoring broken ref %r", ref)
            continue
        logger.debug("Resolved %r via %r to %r", name, ref, sha)
        return sha
    raise RefResolutionError(name)


def list_branches(refs: RefsContainer, remote: str | bytes | None = None) -> list[bytes]:
    """List branch names.

    Args:
      refs: A RefsContainer
      remote: Remote name to list branches of; local branches when None
    Returns: Sorted list of branch names, relative to their namespace
    """
    if remote is None:
        base = LOCAL_BRANCH_PREFIX
    else:
        if isinstance(remote, str):
            remote = remote.encode("utf-8")
        base = LOCAL_REMOTE_PREFIX + remote + b"/"
    return sorted(refs.keys(base=base))
