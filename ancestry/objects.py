# objects.py -- Access to base git objects
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

"""Access to base git objects."""

__all__ = [
    "ZERO_SHA",
    "Blob",
    "Commit",
    "ObjectID",
    "RawObjectID",
    "ShaFile",
    "Tag",
    "Tree",
    "format_timezone",
    "git_line",
    "hex_to_filename",
    "hex_to_sha",
    "object_class",
    "object_header",
    "parse_commit",
    "parse_tag",
    "parse_time_entry",
    "parse_timezone",
    "sha_to_hex",
    "valid_hexsha",
]

import binascii
import hashlib
import os
import stat
from collections.abc import Iterable, Iterator
from io import BytesIO
from typing import NewType

from .errors import ObjectFormatException

# Hex encoded object id, e.g. b"4b825dc642cb6eb9a060e54bf8d69288fbee4904"
ObjectID = NewType("ObjectID", bytes)
# Binary (20 byte) object id
RawObjectID = NewType("RawObjectID", bytes)

ZERO_SHA = ObjectID(b"0" * 40)

# Header fields for commits
_TREE_HEADER = b"tree"
_PARENT_HEADER = b"parent"
_AUTHOR_HEADER = b"author"
_COMMITTER_HEADER = b"committer"
_ENCODING_HEADER = b"encoding"

# Header fields for tags
_OBJECT_HEADER = b"object"
_TYPE_HEADER = b"type"
_TAG_HEADER = b"tag"
_TAGGER_HEADER = b"tagger"


def sha_to_hex(sha: RawObjectID) -> ObjectID:
    """Takes a string and returns the hex of the sha within."""
    hexsha = binascii.hexlify(sha)
    assert len(hexsha) == 40, f"Incorrect length of sha1 string: {hexsha!r}"
    return ObjectID(hexsha)


def hex_to_sha(hex: ObjectID | str) -> RawObjectID:
    """Takes a hex sha and returns a binary sha."""
    assert len(hex) == 40, f"Incorrect length of hexsha: {hex!r}"
    try:
        return RawObjectID(binascii.unhexlify(hex))
    except TypeError as exc:
        if not isinstance(hex, bytes):
            raise
        raise ValueError(exc.args[0]) from exc


def valid_hexsha(hex: bytes | str) -> bool:
    """Check whether a value is a well-formed 40 character hex sha."""
    if len(hex) != 40:
        return False
    try:
        binascii.unhexlify(hex)
    except (TypeError, binascii.Error):
        return False
    else:
        return True


def hex_to_filename(path: str, hex: ObjectID | bytes | str) -> str:
    """Takes a hex sha and returns its filename relative to the given path."""
    if isinstance(hex, bytes):
        hex = hex.decode("ascii")
    # Objects are fanned out into 256 directories by the first byte
    return os.path.join(path, hex[:2], hex[2:])


def object_header(num_type: int, length: int) -> bytes:
    """Return an object header for the given numeric type and text length."""
    cls = object_class(num_type)
    if cls is None:
        raise AssertionError(f"unsupported class type num: {num_type}")
    return cls.type_name + b" " + str(length).encode("ascii") + b"\0"


def git_line(*items: bytes) -> bytes:
    """Formats items into a space-separated line."""
    return b" ".join(items) + b"\n"


def parse_timezone(text: bytes) -> tuple[int, bool]:
    """Parse a timezone text fragment (e.g. '+0100').

    Args:
      text: Text to parse.
    Returns: Tuple with timezone as seconds difference to UTC
        and a boolean indicating whether this was a UTC timezone
        prefixed with a negative sign (-0000).
    """
    # cgit parses the first character as the sign, and the rest
    # as an integer (using strtol), which could also be negative.
    # We do the same for compatibility. See #697828.
    if text[:1] not in b"+-":
        raise ValueError(f"Timezone must start with + or - ({text!r})")
    sign = text[:1]
    offset = int(text[1:])
    if sign == b"-":
        offset = -offset
    unnecessary_negative_timezone = offset >= 0 and sign == b"-"
    signum = -1 if offset < 0 else 1
    offset = abs(offset)
    hours = int(offset / 100)
    minutes = offset % 100
    return (
        signum * (hours * 3600 + minutes * 60),
        unnecessary_negative_timezone,
    )


def format_timezone(offset: int, unnecessary_negative_timezone: bool = False) -> bytes:
    """Format a timezone for Git serialization.

    Args:
      offset: Timezone offset as seconds difference to UTC
      unnecessary_negative_timezone: Whether to use a minus sign for
        UTC or positive timezones (-0000 and --700 rather than +0000 / +0700).
    """
    if offset % 60 != 0:
        raise ValueError("Unable to handle non-minute offset.")
    if offset < 0 or unnecessary_negative_timezone:
        sign = "-"
        offset = -offset
    else:
        sign = "+"
    return ("%c%02d%02d" % (sign, offset / 3600, (offset / 60) % 60)).encode("ascii")  # noqa: UP031


def parse_time_entry(
    value: bytes,
) -> tuple[bytes, int | None, tuple[int | None, bool]]:
    """Parse event.

    Args:
      value: Bytes representing a git commit/tag line
    Raises:
      ObjectFormatException in case of parsing error (malformed
      field date)
    Returns: Tuple of (author, time, (timezone, timezone_neg_utc))
    """
    try:
        sep = value.rindex(b"> ")
    except ValueError:
        return (value, None, (None, False))
    try:
        person = value[0 : sep + 1]
        rest = value[sep + 2 :]
        timetext, timezonetext = rest.rsplit(b" ", 1)
        time = int(timetext)
        timezone, timezone_neg_utc = parse_timezone(timezonetext)
    except ValueError as exc:
        raise ObjectFormatException(exc) from exc
    return person, time, (timezone, timezone_neg_utc)


def format_time_entry(
    person: bytes, time: int, timezone_info: tuple[int, bool]
) -> bytes:
    """Format an event."""
    (timezone, timezone_neg_utc) = timezone_info
    return b" ".join(
        [person, str(time).encode("ascii"), format_timezone(timezone, timezone_neg_utc)]
    )


def _parse_message(
    chunks: Iterable[bytes],
) -> Iterator[tuple[bytes, bytes] | tuple[None, bytes | None]]:
    """Parse a message with a list of fields and a body.

    Args:
      chunks: the raw chunks of the tag or commit object.
    Returns: iterator of tuples of (field, value), one per header line, in the
        order read from the text, possibly including duplicates. Includes a
        field named None for the freeform tag/commit text.
    """
    f = BytesIO(b"".join(chunks))
    k = None
    v = b""
    eof = False

    def _strip_last_newline(value: bytes) -> bytes:
        """Strip the last newline from value."""
        if value and value.endswith(b"\n"):
            return value[:-1]
        return value

    # Parse the headers
    #
    # Headers can contain newlines. The next line is indented with a space.
    # We store the latest key as 'k', and the accumulated value as 'v'.
    for line in f:
        if line.startswith(b" "):
            # Indented continuation of the previous line
            v += line[1:]
        else:
            if k is not None:
                yield (k, _strip_last_newline(v))
            if line == b"\n":
                # Empty line indicates end of headers
                break
            try:
                (k, v) = line.split(b" ", 1)
            except ValueError as exc:
                raise ObjectFormatException(f"invalid header line {line!r}") from exc

    else:
        # We reached end of file before the headers ended. We still need to
        # return the previous header, then we need to return a None field for
        # the text.
        eof = True
        if k is not None:
            yield (k, _strip_last_newline(v))
        yield (None, None)

    if not eof:
        # We didn't reach the end of file while parsing headers. We can return
        # the rest of the file as a message.
        yield (None, f.read())


def _format_message(
    headers: Iterable[tuple[bytes, bytes]], body: bytes | None
) -> Iterator[bytes]:
    for field, value in headers:
        lines = value.split(b"\n")
        yield git_line(field, lines[0])
        for line in lines[1:]:
            yield b" " + line + b"\n"
    if body is not None:
        yield b"\n"  # There must be a new line after the headers
        yield body


class ShaFile:
    """A git SHA file."""

    type_name: bytes
    type_num: int

    def __init__(self) -> None:
        """Initialize a ShaFile."""
        self._sha: ObjectID | None = None

    @staticmethod
    def from_raw_string(
        type_num: int, string: bytes, sha: ObjectID | None = None
    ) -> "ShaFile":
        """Creates an object of the indicated type from the raw string given.

        Args:
          type_num: The numeric type of the object.
          string: The raw uncompressed contents.
          sha: Optional known sha for the object
        """
        cls = object_class(type_num)
        if cls is None:
            raise AssertionError(f"unsupported class type num: {type_num}")
        obj = cls()
        obj.set_raw_string(string, sha)
        return obj

    @classmethod
    def from_string(cls, string: bytes) -> "ShaFile":
        """Create a ShaFile of this class from a string."""
        obj = cls()
        obj.set_raw_string(string)
        return obj

    def set_raw_string(self, text: bytes, sha: ObjectID | None = None) -> None:
        """Set the contents of this object from a serialized string."""
        if not isinstance(text, bytes):
            raise TypeError(f"Expected bytes for text, got {text!r}")
        self._deserialize(text)
        self._sha = sha

    def _deserialize(self, data: bytes) -> None:
        raise NotImplementedError(self._deserialize)

    def _serialize(self) -> list[bytes]:
        raise NotImplementedError(self._serialize)

    def as_raw_chunks(self) -> list[bytes]:
        """Return chunks with serialization of the object."""
        return self._serialize()

    def as_raw_string(self) -> bytes:
        """Return raw string with serialization of the object."""
        return b"".join(self.as_raw_chunks())

    def _header(self) -> bytes:
        return object_header(self.type_num, len(self.as_raw_string()))

    def sha(self) -> "hashlib._Hash":
        """The SHA1 object that is the name of this object."""
        ret = hashlib.sha1()
        ret.update(self._header())
        ret.update(self.as_raw_string())
        return ret

    @property
    def id(self) -> ObjectID:
        """The hex SHA of this object."""
        if self._sha is not None:
            return self._sha
        return ObjectID(self.sha().hexdigest().encode("ascii"))

    def copy(self) -> "ShaFile":
        """Create a new copy of this SHA1 object from its raw string."""
        return ShaFile.from_raw_string(self.type_num, self.as_raw_string(), self._sha)

    def __repr__(self) -> str:
        """Return string representation of this object."""
        return f"<{self.__class__.__name__} {self.id!r}>"

    def __eq__(self, other: object) -> bool:
        """Return True if the SHAs of the two objects match."""
        return isinstance(other, ShaFile) and self.id == other.id

    def __hash__(self) -> int:
        """Hash by object id."""
        return hash(self.id)


class Blob(ShaFile):
    """A Git Blob object."""

    type_name = b"blob"
    type_num = 3

    def __init__(self) -> None:
        """Initialize a new Blob."""
        super().__init__()
        self.data = b""

    @classmethod
    def from_data(cls, data: bytes) -> "Blob":
        """Create a blob with the given contents."""
        blob = cls()
        blob.data = data
        return blob

    def _deserialize(self, data: bytes) -> None:
        self.data = data

    def _serialize(self) -> list[bytes]:
        return [self.data]


class Tree(ShaFile):
    """A Git tree object."""

    type_name = b"tree"
    type_num = 2

    def __init__(self) -> None:
        """Initialize an empty Tree."""
        super().__init__()
        self._entries: dict[bytes, tuple[int, ObjectID]] = {}

    def __contains__(self, name: bytes) -> bool:
        """Check if name exists in tree."""
        return name in self._entries

    def __getitem__(self, name: bytes) -> tuple[int, ObjectID]:
        """Get tree entry by name."""
        return self._entries[name]

    def __len__(self) -> int:
        """Return number of entries in tree."""
        return len(self._entries)

    def add(self, name: bytes, mode: int, hexsha: ObjectID) -> None:
        """Add an entry to the tree.

        Args:
          name: The name of the entry, as a string.
          mode: The mode of the entry as an integral type. Not all
            possible modes are supported by git; see check() for details.
          hexsha: The hex SHA of the entry as a string.
        """
        self._entries[name] = (mode, hexsha)

    def items(self) -> list[tuple[bytes, int, ObjectID]]:
        """Return the sorted entries in this tree."""
        return [
            (name, mode, sha)
            for name, (mode, sha) in sorted(
                self._entries.items(), key=lambda e: _tree_sort_key(e[0], e[1][0])
            )
        ]

    def _deserialize(self, data: bytes) -> None:
        entries: dict[bytes, tuple[int, ObjectID]] = {}
        pos = 0
        length = len(data)
        while pos < length:
            mode_end = data.find(b" ", pos)
            if mode_end == -1:
                raise ObjectFormatException("tree entry without mode")
            name_end = data.find(b"\0", mode_end)
            if name_end == -1 or name_end + 21 > length:
                raise ObjectFormatException("truncated tree entry")
            try:
                mode = int(data[pos:mode_end], 8)
            except ValueError as exc:
                raise ObjectFormatException(
                    f"invalid mode {data[pos:mode_end]!r}"
                ) from exc
            name = data[mode_end + 1 : name_end]
            sha = sha_to_hex(RawObjectID(data[name_end + 1 : name_end + 21]))
            entries[name] = (mode, sha)
            pos = name_end + 21
        self._entries = entries

    def _serialize(self) -> list[bytes]:
        return [
            (f"{mode:04o}").encode("ascii") + b" " + name + b"\0" + hex_to_sha(sha)
            for name, mode, sha in self.items()
        ]


def _tree_sort_key(name: bytes, mode: int) -> bytes:
    # Directories sort as if they had a trailing slash
    if stat.S_ISDIR(mode):
        return name + b"/"
    return name


class Tag(ShaFile):
    """A Git Tag object."""

    type_name = b"tag"
    type_num = 4

    def __init__(self) -> None:
        """Initialize a new Tag object."""
        super().__init__()
        self._object_sha: ObjectID | None = None
        self._object_class: type[ShaFile] | None = None
        self.name: bytes | None = None
        self.tagger: bytes | None = None
        self.tag_time: int | None = None
        self.tag_timezone: int | None = None
        self._tag_timezone_neg_utc = False
        self.message: bytes | None = None
        self.extra: list[tuple[bytes, bytes]] = []

    def _get_object(self) -> tuple[type[ShaFile], ObjectID]:
        """Get the object pointed to by this tag.

        Returns: tuple of (object class, sha).
        """
        if self._object_class is None or self._object_sha is None:
            raise ObjectFormatException("tag has no object")
        return (self._object_class, self._object_sha)

    def _set_object(self, value: tuple[type[ShaFile], ObjectID]) -> None:
        (self._object_class, self._object_sha) = value

    object = property(_get_object, _set_object)

    def _deserialize(self, data: bytes) -> None:
        """Grab the metadata attached to the tag."""
        self.tagger = None
        self.tag_time = None
        self.tag_timezone = None
        self._tag_timezone_neg_utc = False
        self.extra = []
        for field, value in _parse_message([data]):
            if field == _OBJECT_HEADER:
                self._object_sha = ObjectID(value)
            elif field == _TYPE_HEADER:
                assert isinstance(value, bytes)
                obj_class = object_class(value)
                if not obj_class:
                    raise ObjectFormatException(f"Not a known type: {value!r}")
                self._object_class = obj_class
            elif field == _TAG_HEADER:
                self.name = value
            elif field == _TAGGER_HEADER:
                assert value is not None
                (
                    self.tagger,
                    self.tag_time,
                    (self.tag_timezone, self._tag_timezone_neg_utc),
                ) = parse_time_entry(value)
            elif field is None:
                self.message = value
            else:
                assert value is not None
                self.extra.append((field, value))
        if self._object_sha is None:
            raise ObjectFormatException("tag is missing the object header")
        if self._object_class is None:
            raise ObjectFormatException("tag is missing the type header")

    def _serialize(self) -> list[bytes]:
        object_class_, object_sha = self.object
        headers = [
            (_OBJECT_HEADER, object_sha),
            (_TYPE_HEADER, object_class_.type_name),
        ]
        if self.name is not None:
            headers.append((_TAG_HEADER, self.name))
        if self.tagger is not None:
            if self.tag_time is None:
                headers.append((_TAGGER_HEADER, self.tagger))
            else:
                assert self.tag_timezone is not None
                headers.append(
                    (
                        _TAGGER_HEADER,
                        format_time_entry(
                            self.tagger,
                            self.tag_time,
                            (self.tag_timezone, self._tag_timezone_neg_utc),
                        ),
                    )
                )
        headers.extend(self.extra)
        return list(_format_message(headers, self.message))


class Commit(ShaFile):
    """A git commit object."""

    type_name = b"commit"
    type_num = 1

    def __init__(self) -> None:
        """Initialize an empty Commit."""
        super().__init__()
        self.tree: ObjectID | None = None
        self.parents: list[ObjectID] = []
        self.author: bytes | None = None
        self.committer: bytes | None = None
        self.author_time: int | None = None
        self.author_timezone = 0
        self._author_timezone_neg_utc = False
        self.commit_time: int | None = None
        self.commit_timezone = 0
        self._commit_timezone_neg_utc = False
        self.encoding: bytes | None = None
        self.message: bytes | None = None
        self.extra: list[tuple[bytes, bytes]] = []

    def _deserialize(self, data: bytes) -> None:
        self.tree = None
        self.parents = []
        self.extra = []
        self.author = self.committer = self.encoding = None
        for field, value in _parse_message([data]):
            if field == _TREE_HEADER:
                self.tree = ObjectID(value)
            elif field == _PARENT_HEADER:
                assert value is not None
                self.parents.append(ObjectID(value))
            elif field == _AUTHOR_HEADER:
                assert value is not None
                author_info = parse_time_entry(value)
                self.author, self.author_time, tz_info = author_info
                if tz_info[0] is not None:
                    self.author_timezone, self._author_timezone_neg_utc = tz_info  # type: ignore[assignment]
            elif field == _COMMITTER_HEADER:
                assert value is not None
                commit_info = parse_time_entry(value)
                self.committer, self.commit_time, tz_info = commit_info
                if tz_info[0] is not None:
                    self.commit_timezone, self._commit_timezone_neg_utc = tz_info  # type: ignore[assignment]
            elif field == _ENCODING_HEADER:
                self.encoding = value
            elif field is None:
                self.message = value
            else:
                assert value is not None
                self.extra.append((field, value))
        if self.tree is None:
            raise ObjectFormatException("commit is missing the tree header")

    def _serialize(self) -> list[bytes]:
        if self.tree is None:
            raise ObjectFormatException("commit has no tree")
        headers: list[tuple[bytes, bytes]] = [(_TREE_HEADER, self.tree)]
        for p in self.parents:
            headers.append((_PARENT_HEADER, p))
        if self.author is not None:
            headers.append((_AUTHOR_HEADER, self._format_person(
                self.author,
                self.author_time,
                self.author_timezone,
                self._author_timezone_neg_utc,
            )))
        if self.committer is not None:
            headers.append((_COMMITTER_HEADER, self._format_person(
                self.committer,
                self.commit_time,
                self.commit_timezone,
                self._commit_timezone_neg_utc,
            )))
        if self.encoding:
            headers.append((_ENCODING_HEADER, self.encoding))
        headers.extend(self.extra)
        return list(_format_message(headers, self.message))

    @staticmethod
    def _format_person(
        person: bytes, time: int | None, timezone: int, neg_utc: bool
    ) -> bytes:
        if time is None:
            return person
        return format_time_entry(person, time, (timezone, neg_utc))


OBJECT_CLASSES = (
    Commit,
    Tree,
    Blob,
    Tag,
)

_TYPE_MAP: dict[bytes | int, type[ShaFile]] = {}

for cls in OBJECT_CLASSES:
    _TYPE_MAP[cls.type_name] = cls
    _TYPE_MAP[cls.type_num] = cls


def object_class(type: bytes | int) -> type[ShaFile] | None:
    """Get the object class corresponding to the given type.

    Args:
      type: Either a type name string or a numeric type.
    Returns: The ShaFile subclass corresponding to the given type, or None if
        type is not a valid type name/number.
    """
    return _TYPE_MAP.get(type, None)


def parse_commit(data: bytes, sha: ObjectID | None = None) -> Commit:
    """Decode the payload of a commit object.

    Raises:
      ObjectFormatException: if the payload is not a well-formed commit
    """
    commit = Commit()
    commit.set_raw_string(data, sha)
    return commit


def parse_tag(data: bytes, sha: ObjectID | None = None) -> Tag:
    """Decode the payload of an annotated tag object.

    Raises:
      ObjectFormatException: if the payload is not a well-formed tag
    """
    tag = Tag()
    tag.set_raw_string(data, sha)
    return tag
