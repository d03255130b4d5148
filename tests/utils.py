# utils.py -- Test utilities for ancestry.
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

"""Utility functions common to ancestry tests."""

import hashlib
import struct
import zlib
from typing import Any

from ancestry.object_store import BaseObjectStore
from ancestry.objects import (
    Commit,
    ObjectID,
    ShaFile,
    Tag,
    Tree,
    hex_to_sha,
    object_header,
)
from ancestry.pack import DELTA_TYPES, OFS_DELTA, REF_DELTA

EMPTY_TREE_ID = ObjectID(b"4b825dc642cb6eb9a060e54bf8d69288fbee4904")

# 2010-01-01 00:00:00 UTC
_DEFAULT_TIME = 1262304000


def make_commit(**attrs: Any) -> Commit:
    """Make a Commit object with a default set of members.

    Args:
      attrs: dict of attributes to overwrite from the default values.
    Returns: A newly initialized Commit object.
    """
    all_attrs = {
        "author": b"Test Author <test@nodomain.com>",
        "author_time": _DEFAULT_TIME,
        "author_timezone": 0,
        "committer": b"Test Committer <test@nodomain.com>",
        "commit_time": _DEFAULT_TIME,
        "commit_timezone": 0,
        "message": b"Test message.\n",
        "parents": [],
        "tree": EMPTY_TREE_ID,
    }
    all_attrs.update(attrs)
    commit = Commit()
    for name, value in all_attrs.items():
        setattr(commit, name, value)
    return commit


def make_tag(target: ShaFile, **attrs: Any) -> Tag:
    """Make a Tag object with a default set of values.

    Args:
      target: object to be tagged (Commit, Blob, Tree, etc)
      attrs: dict of attributes to overwrite from the default values.
    Returns: A newly initialized Tag object.
    """
    all_attrs = {
        "message": b"Test message.\n",
        "name": b"Test Tag",
        "tag_time": _DEFAULT_TIME,
        "tag_timezone": 0,
        "tagger": b"Test Author <test@nodomain.com>",
    }
    all_attrs.update(attrs)
    tag = Tag()
    tag.object = (type(target), target.id)
    for name, value in all_attrs.items():
        setattr(tag, name, value)
    return tag


def build_commit_graph(
    object_store: BaseObjectStore,
    commit_spec: list[list[int]],
    attrs: dict[int, dict[str, Any]] | None = None,
) -> list[Commit]:
    """Build a commit graph from a concise specification.

    Sample usage:
    >>> c1, c2, c3 = build_commit_graph(store, [[1], [2, 1], [3, 1, 2]])
    >>> c3.parents == [c1.id, c2.id]
    True

    Commits refer to the empty tree and have commit times increasing in the
    same order as the commit spec.

    Args:
      object_store: An ObjectStore to commit objects to.
      commit_spec: An iterable of iterables of ints defining the commit
        graph. Each entry defines one commit, and entries must be in
        topological order. The first element of each entry is a commit
        number, and the remaining elements are its parents.
      attrs: A dict of commit number -> (dict of attribute -> value) for
        assigning additional values to the commits.
    Returns: The list of commit objects created.
    Raises:
      ValueError: If an undefined commit identifier is listed as a parent.
    """
    if attrs is None:
        attrs = {}
    object_store.add_object(Tree())
    nums: dict[int, ObjectID] = {}
    commits = []

    for commit in commit_spec:
        commit_num = commit[0]
        try:
            parent_ids = [nums[pn] for pn in commit[1:]]
        except KeyError as e:
            (missing_parent,) = e.args
            raise ValueError(f"Unknown parent {missing_parent}") from e

        commit_attrs = {
            "message": f"Commit {commit_num}\n".encode("ascii"),
            "parents": parent_ids,
            "commit_time": _DEFAULT_TIME + commit_num,
        }
        commit_attrs.update(attrs.get(commit_num, {}))
        commit_obj = make_commit(**commit_attrs)

        object_store.add_object(commit_obj)
        nums[commit_num] = commit_obj.id
        commits.append(commit_obj)

    return commits


def _encode_size(size: int) -> bytes:
    ret = bytearray()
    c = size & 0x7F
    size >>= 7
    while size:
        ret.append(c | 0x80)
        c = size & 0x7F
        size >>= 7
    ret.append(c)
    return bytes(ret)


def create_delta(base_buf: bytes, target_buf: bytes) -> bytes:
    """Create a delta that copies the common prefix and inserts the rest."""
    out = bytearray(_encode_size(len(base_buf)) + _encode_size(len(target_buf)))
    prefix = 0
    limit = min(len(base_buf), len(target_buf), 0xFFFF)
    while prefix < limit and base_buf[prefix] == target_buf[prefix]:
        prefix += 1
    if prefix:
        # Copy from offset 0: no offset bytes, two size bytes
        out += bytes([0x80 | 0x10 | 0x20, prefix & 0xFF, prefix >> 8])
    rest = target_buf[prefix:]
    for i in range(0, len(rest), 127):
        chunk = rest[i : i + 127]
        out.append(len(chunk))
        out += chunk
    return bytes(out)


def _pack_object_header(type_num: int, size: int) -> bytes:
    c = (type_num << 4) | (size & 0x0F)
    size >>= 4
    ret = bytearray()
    while size:
        ret.append(c | 0x80)
        c = size & 0x7F
        size >>= 7
    ret.append(c)
    return bytes(ret)


def _encode_offset(delta_offset: int) -> bytes:
    ret = bytearray([delta_offset & 0x7F])
    delta_offset >>= 7
    while delta_offset:
        delta_offset -= 1
        ret.insert(0, 0x80 | (delta_offset & 0x7F))
        delta_offset >>= 7
    return bytes(ret)


def _obj_sha(type_num: int, data: bytes) -> ObjectID:
    sha = hashlib.sha1(object_header(type_num, len(data)) + data)
    return ObjectID(sha.hexdigest().encode("ascii"))


def _index_contents(
    entries: list[tuple[bytes, int, int]], pack_checksum: bytes, version: int
) -> bytes:
    entries = sorted(entries)
    fan_out = [0] * 256
    for name, _offset, _crc in entries:
        fan_out[name[0]] += 1
    for i in range(1, 256):
        fan_out[i] += fan_out[i - 1]
    fan_out_table = b"".join(struct.pack(">L", n) for n in fan_out)
    if version == 1:
        body = fan_out_table + b"".join(
            struct.pack(">L", offset) + name for name, offset, _crc in entries
        )
    elif version == 2:
        body = (
            b"\377tOc"
            + struct.pack(">L", 2)
            + fan_out_table
            + b"".join(name for name, _offset, _crc in entries)
            + b"".join(struct.pack(">L", crc) for _name, _offset, crc in entries)
            + b"".join(struct.pack(">L", offset) for _name, offset, _crc in entries)
        )
    else:
        raise ValueError(f"Unsupported index version {version}")
    body += pack_checksum
    return body + hashlib.sha1(body).digest()


def build_pack(
    basename: str,
    objects_spec: list[tuple[int, Any]],
    store: BaseObjectStore | None = None,
    index_version: int = 2,
) -> list[tuple[int, int, bytes, ObjectID]]:
    """Write a pack and its index with the specified objects.

    Args:
      basename: Path without extension; basename.pack and basename.idx
        are written.
      objects_spec: A list of (type_num, obj). For non-delta types, obj
        is the object's raw payload. For delta types, obj is a tuple of
        (base, data), where data is the full, non-delta payload of the
        object and base is the index of the base object in objects_spec.
        For REF_DELTA, base may also be the hex sha of an object that is
        only present in store (a thin pack).
      store: An optional store to resolve external bases from.
      index_version: Pack index version to write.
    Returns: A list of tuples in the order specified by objects_spec:
        (offset, type num, data, sha)
    """
    full_objects: dict[int, tuple[int, bytes, ObjectID]] = {}

    def resolve(i: int) -> tuple[int, bytes, ObjectID]:
        if i in full_objects:
            return full_objects[i]
        type_num, obj = objects_spec[i]
        if type_num in DELTA_TYPES:
            base, data = obj
            if isinstance(base, int):
                type_num = resolve(base)[0]
            else:
                assert store is not None
                type_num = store.get_raw(base)[0]
        else:
            data = obj
        full_objects[i] = (type_num, data, _obj_sha(type_num, data))
        return full_objects[i]

    for i in range(len(objects_spec)):
        resolve(i)

    chunks = [b"PACK" + struct.pack(">LL", 2, len(objects_spec))]
    pos = len(chunks[0])
    offsets: dict[int, int] = {}
    index_entries = []
    for i, (type_num, obj) in enumerate(objects_spec):
        if type_num == OFS_DELTA:
            base, data = obj
            if base >= i:
                raise ValueError("OFS_DELTA bases must come first")
            payload = create_delta(full_objects[base][1], data)
            header = _pack_object_header(type_num, len(payload)) + _encode_offset(
                pos - offsets[base]
            )
        elif type_num == REF_DELTA:
            base, data = obj
            if isinstance(base, int):
                base_sha = full_objects[base][2]
                base_data = full_objects[base][1]
            else:
                assert store is not None
                base_sha = base
                base_data = store.get_raw(base)[1]
            payload = create_delta(base_data, data)
            header = _pack_object_header(type_num, len(payload)) + hex_to_sha(
                base_sha
            )
        else:
            payload = obj
            header = _pack_object_header(type_num, len(payload))
        chunk = header + zlib.compress(payload)
        offsets[i] = pos
        index_entries.append(
            (hex_to_sha(full_objects[i][2]), pos, zlib.crc32(chunk) & 0xFFFFFFFF)
        )
        chunks.append(chunk)
        pos += len(chunk)

    pack_contents = b"".join(chunks)
    pack_checksum = hashlib.sha1(pack_contents).digest()
    with open(basename + ".pack", "wb") as f:
        f.write(pack_contents + pack_checksum)
    with open(basename + ".idx", "wb") as f:
        f.write(_index_contents(index_entries, pack_checksum, index_version))

    return [
        (offsets[i], full_objects[i][0], full_objects[i][1], full_objects[i][2])
        for i in range(len(objects_spec))
    ]
