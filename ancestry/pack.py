# pack.py -- For dealing with packed git objects.
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

"""Classes for reading git packs.

A pack is a compressed collection of objects, stored as a ``.pack`` data
file plus a ``.idx`` index that maps each object id to its offset in the
data file. Objects are either stored whole or as a delta against another
object, either by offset within the same pack (OFS_DELTA) or by object id
(REF_DELTA).

Only reading is supported; this module never writes packs.
"""

__all__ = [
    "DELTA_TYPES",
    "OFS_DELTA",
    "REF_DELTA",
    "Pack",
    "PackData",
    "PackIndex",
    "PackIndex1",
    "PackIndex2",
    "UnresolvedDeltas",
    "apply_delta",
    "bisect_find_sha",
    "load_pack_index",
    "load_pack_index_file",
    "read_pack_header",
    "read_zlib_chunks",
    "take_msb_bytes",
    "unpack_object",
]

import mmap
import os
import struct
import types
import zlib
from collections.abc import Callable, Iterator
from io import UnsupportedOperation
from struct import unpack_from
from typing import IO, Any

from .errors import ApplyDeltaError, ObjectFormatException
from .log_utils import getLogger
from .objects import ObjectID, RawObjectID, hex_to_sha, sha_to_hex

logger = getLogger(__name__)

OFS_DELTA = 6
REF_DELTA = 7

DELTA_TYPES = (OFS_DELTA, REF_DELTA)

_ZLIB_BUFSIZE = 65536

# Callback used to look up REF_DELTA bases that live outside of a pack.
ResolveExtRefFn = Callable[[RawObjectID], tuple[int, bytes]]

# What PackData.get_object_at returns for an object: its raw payload for
# whole objects, (offset delta, delta) for OFS_DELTA and (base sha, delta)
# for REF_DELTA.
PackObject = bytes | tuple[int, bytes] | tuple[bytes, bytes]


class UnresolvedDeltas(Exception):
    """Delta objects could not be resolved."""

    def __init__(self, shas: list[bytes]) -> None:
        """Initialize UnresolvedDeltas exception.

        Args:
          shas: List of SHA hashes for unresolved delta objects
        """
        self.shas = shas


def take_msb_bytes(read: Callable[[int], bytes]) -> list[int]:
    """Read bytes marked with most significant bit.

    Args:
      read: Read function
    Returns: List of the bytes read, the last one without the MSB set
    """
    ret: list[int] = []
    while len(ret) == 0 or ret[-1] & 0x80:
        b = read(1)
        if not b:
            raise ObjectFormatException("truncated variable length header")
        ret.append(ord(b[:1]))
    return ret


def read_zlib_chunks(
    read_some: Callable[[int], bytes],
    decomp_len: int,
    buffer_size: int = _ZLIB_BUFSIZE,
) -> bytes:
    """Read and inflate one zlib stream.

    Args:
      read_some: Read function that returns at least one byte, but may
        return less than the requested size.
      decomp_len: Expected length of the inflated data.
      buffer_size: Size of the read buffer.
    Returns: The inflated data.

    Raises:
      zlib.error: if a decompression error occurred.
    """
    if decomp_len < 0:
        raise ValueError("non-negative zlib data stream size expected")
    decomp_obj = zlib.decompressobj()
    decomp_chunks = []
    while not decomp_obj.eof:
        add = read_some(buffer_size)
        if not add:
            raise zlib.error("EOF before end of zlib stream")
        decomp_chunks.append(decomp_obj.decompress(add))
    decompressed = b"".join(decomp_chunks)
    if len(decompressed) != decomp_len:
        raise zlib.error("decompressed data does not match expected size")
    return decompressed


def unpack_object(
    read_all: Callable[[int], bytes],
    read_some: Callable[[int], bytes] | None = None,
) -> tuple[int, PackObject]:
    """Unpack a single object from a pack stream.

    Args:
      read_all: Read function that blocks until the number of requested
        bytes are read.
      read_some: Read function that returns at least one byte, but may not
        return the number of bytes requested.
    Returns: A tuple of (type_num, object), where object is the inflated
        payload for whole objects and a (base, delta) tuple for deltas.
    """
    if read_some is None:
        read_some = read_all

    raw = take_msb_bytes(read_all)
    type_num = (raw[0] >> 4) & 0x07
    size = raw[0] & 0x0F
    for i, byte in enumerate(raw[1:]):
        size += (byte & 0x7F) << ((i * 7) + 4)

    if type_num == OFS_DELTA:
        raw = take_msb_bytes(read_all)
        delta_base_offset = raw[0] & 0x7F
        for byte in raw[1:]:
            delta_base_offset += 1
            delta_base_offset <<= 7
            delta_base_offset += byte & 0x7F
        delta = read_zlib_chunks(read_some, size)
        return type_num, (delta_base_offset, delta)
    elif type_num == REF_DELTA:
        basename = read_all(20)
        delta = read_zlib_chunks(read_some, size)
        return type_num, (basename, delta)
    return type_num, read_zlib_chunks(read_some, size)


def read_pack_header(read: Callable[[int], bytes]) -> tuple[int, int]:
    """Read the header of a pack file.

    Args:
      read: Read function
    Returns: Tuple of (pack version, number of objects).
    """
    header = read(12)
    if not header:
        raise AssertionError("file too short to contain pack")
    if header[:4] != b"PACK":
        raise AssertionError(f"Invalid pack header {header!r}")
    (version,) = unpack_from(b">L", header, 4)
    if version not in (2, 3):
        raise AssertionError(f"Version was {version}")
    (num_objects,) = unpack_from(b">L", header, 8)
    return (version, num_objects)


def apply_delta(src_buf: bytes, delta: bytes) -> bytes:
    """Based on the similar function in git's patch-delta.c.

    Args:
      src_buf: Source buffer
      delta: Delta instructions
    """
    out = []
    index = 0
    delta_length = len(delta)

    def get_delta_header_size(delta: bytes, index: int) -> tuple[int, int]:
        size = 0
        i = 0
        while delta:
            cmd = ord(delta[index : index + 1])
            index += 1
            size |= (cmd & ~0x80) << i
            i += 7
            if not cmd & 0x80:
                break
        return size, index

    src_size, index = get_delta_header_size(delta, index)
    dest_size, index = get_delta_header_size(delta, index)
    if src_size != len(src_buf):
        raise ApplyDeltaError(
            f"Unexpected source buffer size: {src_size} vs {len(src_buf)}"
        )
    while index < delta_length:
        cmd = ord(delta[index : index + 1])
        index += 1
        if cmd & 0x80:
            cp_off = 0
            for i in range(4):
                if cmd & (1 << i):
                    x = ord(delta[index : index + 1])
                    index += 1
                    cp_off |= x << (i * 8)
            cp_size = 0
            # Version 3 packs can contain copy sizes larger than 64K.
            for i in range(3):
                if cmd & (1 << (4 + i)):
                    x = ord(delta[index : index + 1])
                    index += 1
                    cp_size |= x << (i * 8)
            if cp_size == 0:
                cp_size = 0x10000
            if (
                cp_off + cp_size < cp_size
                or cp_off + cp_size > src_size
                or cp_size > dest_size
            ):
                break
            out.append(src_buf[cp_off : cp_off + cp_size])
        elif cmd != 0:
            out.append(delta[index : index + cmd])
            index += cmd
        else:
            raise ApplyDeltaError("Invalid opcode 0")

    if index != delta_length:
        raise ApplyDeltaError(f"delta not empty: {delta[index:]!r}")

    result = b"".join(out)
    if dest_size != len(result):
        raise ApplyDeltaError("dest size incorrect")

    return result


def bisect_find_sha(
    start: int, end: int, sha: bytes, unpack_name: Callable[[int], bytes]
) -> int | None:
    """Find a SHA in a data blob with sorted SHAs.

    Args:
      start: Start index of range to search
      end: End index of range to search (inclusive)
      sha: Sha to find
      unpack_name: Callback to retrieve SHA by index
    Returns: Index of the SHA, or None if it wasn't found
    """
    while start <= end:
        i = (start + end) // 2
        file_sha = unpack_name(i)
        if file_sha < sha:
            start = i + 1
        elif file_sha > sha:
            end = i - 1
        else:
            return i
    return None


def _load_file_contents(f: IO[bytes]) -> tuple[Any, int]:
    """Load contents from a file, preferring mmap when possible."""
    try:
        fd = f.fileno()
    except (UnsupportedOperation, AttributeError):
        fd = None
    if fd is not None:
        size = os.fstat(fd).st_size
        if size > 0:
            try:
                contents = mmap.mmap(fd, size, access=mmap.ACCESS_READ)
            except (OSError, ValueError):
                # Can't mmap - perhaps a socket or invalid file descriptor
                pass
            else:
                return contents, size
    contents_bytes = f.read()
    return contents_bytes, len(contents_bytes)


class PackIndex:
    """An index into a packfile.

    Given a sha id of an object a pack index can tell you the location in the
    packfile of that object if it has it.
    """

    hash_size = 20

    def __init__(self, filename: str, contents: Any, size: int) -> None:
        """Initialize a pack index from already loaded contents."""
        self._filename = filename
        self._contents = contents
        self._size = size
        self._fan_out_table: list[int] = []

    @property
    def path(self) -> str:
        """Return the path to this index file."""
        return self._filename

    def __len__(self) -> int:
        """Return the number of entries in this pack index."""
        return self._fan_out_table[-1]

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the hex SHAs in this index."""
        for i in range(len(self)):
            yield sha_to_hex(RawObjectID(self._unpack_name(i)))

    def close(self) -> None:
        """Close any open files."""
        close = getattr(self._contents, "close", None)
        if close is not None:
            close()

    def _read_fan_out_table(self, start_offset: int) -> list[int]:
        """Read the fan-out table from the index.

        The fan-out table contains 256 entries mapping first byte values
        to the number of objects with SHA1s less than or equal to that byte.
        """
        ret = []
        for i in range(0x100):
            fanout_entry = self._contents[
                start_offset + i * 4 : start_offset + (i + 1) * 4
            ]
            ret.append(struct.unpack(">L", fanout_entry)[0])
        return ret

    def _unpack_name(self, i: int) -> bytes:
        raise NotImplementedError(self._unpack_name)

    def _unpack_offset(self, i: int) -> int:
        raise NotImplementedError(self._unpack_offset)

    def object_offset(self, sha: ObjectID | RawObjectID) -> int:
        """Return the offset in to the corresponding packfile for the object.

        Raises:
          KeyError: if the pack does not contain the object
        """
        if len(sha) == 40:
            sha = hex_to_sha(ObjectID(sha))
        idx = ord(sha[:1])
        if idx == 0:
            start = 0
        else:
            start = self._fan_out_table[idx - 1]
        end = self._fan_out_table[idx]
        i = bisect_find_sha(start, end - 1, sha, self._unpack_name)
        if i is None:
            raise KeyError(sha)
        return self._unpack_offset(i)

    def __contains__(self, sha: ObjectID | RawObjectID) -> bool:
        """Check whether this index contains the given object."""
        try:
            self.object_offset(sha)
        except KeyError:
            return False
        return True


class PackIndex1(PackIndex):
    """Version 1 Pack Index file."""

    version = 1

    def __init__(self, filename: str, contents: Any, size: int) -> None:
        """Initialize a version 1 pack index."""
        super().__init__(filename, contents, size)
        self._fan_out_table = self._read_fan_out_table(0)
        self._entry_size = 4 + self.hash_size

    def _unpack_name(self, i: int) -> bytes:
        offset = (0x100 * 4) + (i * self._entry_size) + 4
        return self._contents[offset : offset + self.hash_size]

    def _unpack_offset(self, i: int) -> int:
        offset = (0x100 * 4) + (i * self._entry_size)
        return int(unpack_from(">L", self._contents, offset)[0])


class PackIndex2(PackIndex):
    """Version 2 Pack Index file."""

    version = 2

    def __init__(self, filename: str, contents: Any, size: int) -> None:
        """Initialize a version 2 pack index."""
        super().__init__(filename, contents, size)
        if self._contents[:4] != b"\377tOc":
            raise AssertionError("Not a v2 pack index file")
        (version,) = unpack_from(b">L", self._contents, 4)
        if version != 2:
            raise AssertionError(f"Version was {version}")
        self._fan_out_table = self._read_fan_out_table(8)
        self._name_table_offset = 8 + 0x100 * 4
        self._crc32_table_offset = self._name_table_offset + self.hash_size * len(self)
        self._pack_offset_table_offset = self._crc32_table_offset + 4 * len(self)
        self._pack_offset_largetable_offset = self._pack_offset_table_offset + 4 * len(
            self
        )

    def _unpack_name(self, i: int) -> bytes:
        offset = self._name_table_offset + i * self.hash_size
        return self._contents[offset : offset + self.hash_size]

    def _unpack_offset(self, i: int) -> int:
        offset = self._pack_offset_table_offset + i * 4
        offset_val = int(unpack_from(">L", self._contents, offset)[0])
        if offset_val & (2**31):
            offset = (
                self._pack_offset_largetable_offset + (offset_val & (2**31 - 1)) * 8
            )
            offset_val = int(unpack_from(">Q", self._contents, offset)[0])
        return offset_val


def load_pack_index_file(path: str, f: IO[bytes]) -> PackIndex:
    """Load an index file from a file-like object.

    Args:
      path: Path for the index file
      f: File-like object
    Returns: A PackIndex loaded from the given file
    """
    contents, size = _load_file_contents(f)
    if contents[:4] == b"\377tOc":
        version = struct.unpack(b">L", contents[4:8])[0]
        if version == 2:
            return PackIndex2(path, contents, size)
        raise KeyError(f"Unknown pack index format {version}")
    return PackIndex1(path, contents, size)


def load_pack_index(path: str) -> PackIndex:
    """Load an index file by path.

    Args:
      path: Path to the index file
    Returns: A PackIndex loaded from the given path
    """
    with open(path, "rb") as f:
        return load_pack_index_file(path, f)


class PackData:
    """The data contained in a packfile.

    The header of each object is variable length. If the MSB of each byte is
    set then the subsequent byte is still part of the header. For the first
    byte the next MS bits are the type and the LS bits are the lowest bits of
    the size; each subsequent byte adds the next 7 bits of the size.

    Whole objects are stored as zlib deflated data whose inflated size is the
    size from the header.
    """

    def __init__(self, filename: str, file: IO[bytes] | None = None) -> None:
        """Create a PackData object representing the pack in the given filename.

        The file must exist and stay readable until the object is disposed of.
        """
        self._filename = filename
        self._header_size = 12
        if file is None:
            self._file: IO[bytes] = open(self._filename, "rb")
        else:
            self._file = file
        (self.version, self._num_objects) = read_pack_header(self._file.read)
        self._offset_cache: dict[int, tuple[int, PackObject]] = {}

    @property
    def filename(self) -> str:
        """Get the filename of the pack file."""
        return os.path.basename(self._filename)

    def __len__(self) -> int:
        """Returns the number of objects in this pack."""
        return self._num_objects

    def close(self) -> None:
        """Close the underlying pack file."""
        self._file.close()

    def __enter__(self) -> "PackData":
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

    def get_object_at(self, offset: int) -> tuple[int, PackObject]:
        """Given an offset in to the packfile return the object that is there.

        Using the associated index the location of an object can be looked up,
        and then the packfile can be asked directly for that object using this
        function.
        """
        try:
            return self._offset_cache[offset]
        except KeyError:
            pass
        if offset < self._header_size:
            raise ObjectFormatException(f"offset {offset} is inside the pack header")
        self._file.seek(offset)
        try:
            return unpack_object(self._file.read)
        except zlib.error as exc:
            raise ObjectFormatException(
                f"corrupt object at offset {offset} in {self.filename}: {exc}"
            ) from exc


class Pack:
    """A Git pack object: a PackData plus its PackIndex."""

    def __init__(
        self, basename: str, resolve_ext_ref: ResolveExtRefFn | None = None
    ) -> None:
        """Initialize a Pack object.

        Args:
          basename: Base path for pack files (without .pack/.idx extension)
          resolve_ext_ref: Optional function to resolve REF_DELTA bases
            that are not in this pack
        """
        self._basename = basename
        self._data: PackData | None = None
        self._idx: PackIndex | None = None
        self._idx_path = self._basename + ".idx"
        self._data_path = self._basename + ".pack"
        self.resolve_ext_ref = resolve_ext_ref

    def __repr__(self) -> str:
        """Return string representation of this pack."""
        return f"{self.__class__.__name__}({self._basename!r})"

    @property
    def data(self) -> PackData:
        """The pack data object being used."""
        if self._data is None:
            self._data = PackData(self._data_path)
        return self._data

    @property
    def index(self) -> PackIndex:
        """The index being used.

        Note: This may be an in-memory index
        """
        if self._idx is None:
            self._idx = load_pack_index(self._idx_path)
        return self._idx

    def close(self) -> None:
        """Close the pack file and index."""
        if self._data is not None:
            self._data.close()
            self._data = None
        if self._idx is not None:
            self._idx.close()
            self._idx = None

    def __enter__(self) -> "Pack":
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

    def __len__(self) -> int:
        """Number of entries in this pack."""
        return len(self.index)

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over all the sha1s of the objects in this pack."""
        return iter(self.index)

    def __contains__(self, sha1: ObjectID | RawObjectID) -> bool:
        """Check whether this pack contains a particular SHA1."""
        return sha1 in self.index

    def get_raw(self, sha1: ObjectID | RawObjectID) -> tuple[int, bytes]:
        """Get raw object data by SHA1.

        Raises:
          KeyError: if the object is not in this pack
        """
        offset = self.index.object_offset(sha1)
        obj_type, obj = self.data.get_object_at(offset)
        return self.resolve_object(offset, obj_type, obj)

    def get_ref(self, sha: RawObjectID) -> tuple[int | None, int, PackObject]:
        """Get the object for a ref SHA, only looking in this pack."""
        try:
            offset = self.index.object_offset(sha)
        except KeyError:
            offset = None
        if offset is not None:
            type_num, obj = self.data.get_object_at(offset)
            return offset, type_num, obj
        if self.resolve_ext_ref is None:
            raise KeyError(sha)
        type_num, data = self.resolve_ext_ref(sha)
        return None, type_num, data

    def resolve_object(
        self, offset: int, type_num: int, obj: PackObject
    ) -> tuple[int, bytes]:
        """Resolve an object, possibly resolving deltas when necessary.

        Returns: Tuple with object type and contents.
        """
        # Walk down the delta chain, building a stack of deltas to reach
        # the requested object.
        base_offset: int | None = offset
        base_type = type_num
        base_obj = obj
        delta_stack = []
        while base_type in DELTA_TYPES:
            prev_offset = base_offset
            if base_type == OFS_DELTA:
                (delta_offset, delta) = base_obj
                assert isinstance(delta_offset, int)
                assert base_offset is not None
                base_offset = base_offset - delta_offset
                base_type, base_obj = self.data.get_object_at(base_offset)
            else:
                (basename, delta) = base_obj
                assert isinstance(basename, bytes)
                base_offset, base_type, base_obj = self.get_ref(RawObjectID(basename))
                if base_offset is not None and base_offset == prev_offset:
                    # object is based on itself
                    raise UnresolvedDeltas([sha_to_hex(RawObjectID(basename))])
            delta_stack.append((prev_offset, delta))

        # Now grab the base object (mustn't be a delta) and apply the
        # deltas all the way up the stack.
        assert isinstance(base_obj, bytes)
        data = base_obj
        for prev_offset, delta in reversed(delta_stack):
            data = apply_delta(data, delta)
            if prev_offset is not None:
                self.data._offset_cache[prev_offset] = base_type, data
        return base_type, data
