# object_store.py -- Object store for git objects
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

"""Git object store interfaces and implementation."""

__all__ = [
    "BaseObjectStore",
    "DiskObjectStore",
    "MemoryObjectStore",
    "peel_sha",
    "read_loose_object",
]

import os
import types
import zlib
from collections.abc import Iterable, Iterator

from .errors import ObjectFormatException, ObjectMissing
from .log_utils import getLogger
from .objects import (
    ObjectID,
    RawObjectID,
    ShaFile,
    Tag,
    hex_to_filename,
    hex_to_sha,
    object_class,
    object_header,
    sha_to_hex,
    valid_hexsha,
)
from .pack import Pack

logger = getLogger(__name__)

PACKDIR = "pack"


def _to_hexsha(sha: ObjectID | RawObjectID) -> ObjectID:
    if len(sha) == 40:
        return ObjectID(sha)
    elif len(sha) == 20:
        return sha_to_hex(RawObjectID(sha))
    else:
        raise ValueError(f"Invalid sha {sha!r}")


def read_loose_object(data: bytes, sha: ObjectID | None = None) -> tuple[int, bytes]:
    """Decode the contents of a loose object file.

    Args:
      data: zlib-compressed file contents
      sha: Object id, only used in error messages
    Returns: Tuple of (type_num, payload)
    Raises:
      ObjectFormatException: if the file is corrupt
    """
    try:
        raw = zlib.decompress(data)
    except zlib.error as exc:
        raise ObjectFormatException(
            f"corrupt loose object {sha!r}: {exc}"
        ) from exc
    header, sep, payload = raw.partition(b"\0")
    if not sep:
        raise ObjectFormatException(f"loose object {sha!r} has no header")
    try:
        type_name, size_text = header.split(b" ", 1)
        size = int(size_text)
    except ValueError as exc:
        raise ObjectFormatException(
            f"invalid loose object header {header!r}"
        ) from exc
    cls = object_class(type_name)
    if cls is None:
        raise ObjectFormatException(f"Not a known type: {type_name!r}")
    if size != len(payload):
        raise ObjectFormatException(
            f"loose object {sha!r} has length {len(payload)}, header says {size}"
        )
    return cls.type_num, payload


class BaseObjectStore:
    """Object store interface."""

    def __contains__(self, sha1: ObjectID | RawObjectID) -> bool:
        """Check if a particular object is present by SHA1."""
        try:
            self.get_raw(sha1)
        except KeyError:
            return False
        return True

    def get_raw(self, name: ObjectID | RawObjectID) -> tuple[int, bytes]:
        """Obtain the raw text for an object.

        Args:
          name: sha for the object.
        Returns: tuple with numeric type and object contents.
        Raises:
          ObjectMissing: if the object is not in the store
        """
        raise NotImplementedError(self.get_raw)

    def __getitem__(self, sha1: ObjectID | RawObjectID) -> ShaFile:
        """Obtain an object by SHA1."""
        type_num, uncomp = self.get_raw(sha1)
        return ShaFile.from_raw_string(type_num, uncomp, sha=_to_hexsha(sha1))

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the SHAs that are present in this store."""
        raise NotImplementedError(self.__iter__)

    def add_object(self, obj: ShaFile) -> None:
        """Add a single object to this object store."""
        raise NotImplementedError(self.add_object)

    def add_objects(self, objects: Iterable[ShaFile]) -> None:
        """Add a set of objects to this object store."""
        for obj in objects:
            self.add_object(obj)

    def close(self) -> None:
        """Close any files opened by this object store."""


class MemoryObjectStore(BaseObjectStore):
    """Object store that keeps all objects in memory."""

    def __init__(self) -> None:
        """Initialize an empty MemoryObjectStore."""
        self._data: dict[ObjectID, tuple[int, bytes]] = {}

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the SHAs that are present in this store."""
        return iter(self._data.keys())

    def __contains__(self, sha1: ObjectID | RawObjectID) -> bool:
        """Check if a particular object is present by SHA1."""
        return _to_hexsha(sha1) in self._data

    def get_raw(self, name: ObjectID | RawObjectID) -> tuple[int, bytes]:
        """Obtain the raw text for an object.

        Args:
          name: sha for the object.
        Returns: tuple with numeric type and object contents.
        """
        hexsha = _to_hexsha(name)
        try:
            return self._data[hexsha]
        except KeyError:
            raise ObjectMissing(hexsha) from None

    def __delitem__(self, name: ObjectID) -> None:
        """Delete an object from this store, for testing only."""
        del self._data[_to_hexsha(name)]

    def add_object(self, obj: ShaFile) -> None:
        """Add a single object to this object store."""
        self._data[obj.id] = (obj.type_num, obj.as_raw_string())

    def add_raw(self, sha: ObjectID, type_num: int, data: bytes) -> None:
        """Store raw object data under an arbitrary id, for testing only."""
        self._data[sha] = (type_num, data)


class DiskObjectStore(BaseObjectStore):
    """Git-style object store that exists on disk."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        """Open an object store.

        Args:
          path: Path of the object store (usually .git/objects).
        """
        self.path = os.fspath(path)
        self.pack_dir = os.path.join(self.path, PACKDIR)
        self._pack_cache: dict[str, Pack] = {}

    def __repr__(self) -> str:
        """Return string representation of DiskObjectStore."""
        return f"<{self.__class__.__name__}({self.path!r})>"

    @classmethod
    def init(cls, path: str | os.PathLike[str]) -> "DiskObjectStore":
        """Initialize a new disk object store.

        Creates the necessary directory structure for a Git object store.
        """
        os.makedirs(os.path.join(path, PACKDIR), exist_ok=True)
        return cls(path)

    def __enter__(self) -> "DiskObjectStore":
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Exit context manager."""
        self.close()

    def close(self) -> None:
        """Close all packs opened by this object store."""
        while self._pack_cache:
            (_name, pack) = self._pack_cache.popitem()
            pack.close()

    @property
    def packs(self) -> list[Pack]:
        """List with pack objects."""
        return list(self._iter_cached_packs()) + list(self._update_pack_cache())

    def _iter_cached_packs(self) -> Iterator[Pack]:
        return iter(list(self._pack_cache.values()))

    def _update_pack_cache(self) -> list[Pack]:
        """Read and iterate over new pack files and cache them."""
        try:
            pack_dir_contents = os.listdir(self.pack_dir)
        except FileNotFoundError:
            self.close()
            return []
        pack_files = set()
        for name in pack_dir_contents:
            if name.startswith("pack-") and name.endswith(".pack"):
                # The idx is written last; without it the pack is incomplete.
                idx_name = os.path.splitext(name)[0] + ".idx"
                if idx_name in pack_dir_contents:
                    pack_files.add(name[: -len(".pack")])

        new_packs = []
        for f in sorted(pack_files):
            if f not in self._pack_cache:
                pack = Pack(
                    os.path.join(self.pack_dir, f), resolve_ext_ref=self.get_raw
                )
                logger.debug("Opened pack %s", f)
                new_packs.append(pack)
                self._pack_cache[f] = pack
        for f in set(self._pack_cache) - pack_files:
            self._pack_cache.pop(f).close()
        return new_packs

    def _get_shafile_path(self, sha: ObjectID) -> str:
        return hex_to_filename(self.path, sha)

    def _iter_loose_objects(self) -> Iterator[ObjectID]:
        for base in os.listdir(self.path):
            if len(base) != 2:
                continue
            for rest in os.listdir(os.path.join(self.path, base)):
                sha = os.fsencode(base + rest)
                if not valid_hexsha(sha):
                    continue
                yield ObjectID(sha)

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the SHAs that are present in this store."""
        seen = set()
        for pack in self.packs:
            for sha in pack:
                if sha not in seen:
                    seen.add(sha)
                    yield sha
        for sha in self._iter_loose_objects():
            if sha not in seen:
                seen.add(sha)
                yield sha

    def _get_loose_object(self, hexsha: ObjectID) -> tuple[int, bytes] | None:
        path = self._get_shafile_path(hexsha)
        try:
            with open(path, "rb") as f:
                data = f.read()
        except FileNotFoundError:
            return None
        return read_loose_object(data, hexsha)

    def get_raw(self, name: ObjectID | RawObjectID) -> tuple[int, bytes]:
        """Obtain the raw fulltext for an object.

        Args:
          name: sha for the object.
        Returns: tuple with numeric type and object contents.
        """
        sha: RawObjectID
        if len(name) == 40:
            sha = hex_to_sha(ObjectID(name))
            hexsha = ObjectID(name)
        elif len(name) == 20:
            sha = RawObjectID(name)
            hexsha = sha_to_hex(sha)
        else:
            raise AssertionError(f"Invalid object name {name!r}")
        for pack in self._iter_cached_packs():
            try:
                return pack.get_raw(sha)
            except KeyError:
                pass
        ret = self._get_loose_object(hexsha)
        if ret is not None:
            return ret
        # Maybe something else has added a pack with the object
        # in the mean time?
        for pack in self._update_pack_cache():
            try:
                return pack.get_raw(sha)
            except KeyError:
                pass
        raise ObjectMissing(hexsha)

    def add_object(self, obj: ShaFile) -> None:
        """Add a single object to this object store as a loose object."""
        path = self._get_shafile_path(obj.id)
        dir = os.path.dirname(path)
        os.makedirs(dir, exist_ok=True)
        if os.path.exists(path):
            return
        payload = obj.as_raw_string()
        with open(path, "wb") as f:
            f.write(zlib.compress(object_header(obj.type_num, len(payload)) + payload))


def peel_sha(
    store: BaseObjectStore, sha: ObjectID | RawObjectID
) -> tuple[ShaFile, ShaFile]:
    """Peel all tags from a SHA.

    Args:
      store: Object store to get objects from
      sha: The object SHA to peel.
    Returns: A tuple of (unpeeled, peeled) objects; if the original sha does
        not point to a tag, both are the same object.
    """
    unpeeled = obj = store[sha]
    while isinstance(obj, Tag):
        _obj_class, sha = obj.object
        obj = store[sha]
    return unpeeled, obj
