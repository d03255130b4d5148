# config.py - Reading of .git/config files
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

"""Reading of git config files.

Only reading is supported. Section and variable names are case
insensitive; subsection names are case sensitive, as in git.

TODO:
 * include and includeIf directives
"""

__all__ = [
    "Config",
    "ConfigFile",
]

import os
from collections.abc import Iterator
from typing import IO

Section = tuple[bytes, ...]
SectionLike = bytes | str | tuple[bytes | str, ...]
Name = bytes
Value = bytes

_TRUE_VALUES = (b"true", b"yes", b"on", b"1")
_FALSE_VALUES = (b"false", b"no", b"off", b"0", b"")


def _to_bytes(value: bytes | str) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


def _normalize_section(section: SectionLike) -> Section:
    if not isinstance(section, tuple):
        section = (section,)
    parts = tuple(_to_bytes(part) for part in section)
    if not parts:
        raise ValueError("empty section")
    # Only the section name itself is case insensitive
    return (parts[0].lower(), *parts[1:])


class Config:
    """A Git configuration."""

    def get(self, section: SectionLike, name: bytes | str) -> Value:
        """Retrieve the contents of a configuration setting.

        Args:
          section: Tuple with section name and optional subsection name
          name: Variable name
        Returns:
          Contents of the setting
        Raises:
          KeyError: if the value is not set
        """
        raise NotImplementedError(self.get)

    def get_multivar(self, section: SectionLike, name: bytes | str) -> Iterator[Value]:
        """Retrieve the contents of a multivar configuration setting.

        Raises:
          KeyError: if the value is not set
        """
        raise NotImplementedError(self.get_multivar)

    def get_boolean(
        self, section: SectionLike, name: bytes | str, default: bool | None = None
    ) -> bool | None:
        """Retrieve a configuration setting as boolean.

        Args:
          section: Tuple with section name and optional subsection name
          name: Name of the setting
          default: Default value if setting is not found

        Returns:
          Contents of the setting
        """
        try:
            value = self.get(section, name)
        except KeyError:
            return default
        if value.lower() in _TRUE_VALUES:
            return True
        elif value.lower() in _FALSE_VALUES:
            return False
        raise ValueError(f"not a valid boolean string: {value!r}")

    def sections(self) -> Iterator[Section]:
        """Iterate over the sections.

        Returns: Iterator over section tuples
        """
        raise NotImplementedError(self.sections)

    def has_section(self, name: SectionLike) -> bool:
        """Check if a specified section exists."""
        return _normalize_section(name) in self.sections()


_ESCAPE_TABLE = {
    ord(b"\\"): ord(b"\\"),
    ord(b'"'): ord(b'"'),
    ord(b"n"): ord(b"\n"),
    ord(b"t"): ord(b"\t"),
    ord(b"b"): ord(b"\b"),
}
_COMMENT_CHARS = [ord(b"#"), ord(b";")]
_WHITESPACE_CHARS = [ord(b"\t"), ord(b" ")]


def _parse_string(value: bytes) -> bytes:
    value_array = bytearray(value.strip())
    ret = bytearray()
    whitespace = bytearray()
    in_quotes = False
    i = 0
    while i < len(value_array):
        c = value_array[i]
        if c == ord(b"\\"):
            i += 1
            if i >= len(value_array):
                # Backslash at end of string is kept literally
                ret.extend(whitespace)
                whitespace = bytearray()
                ret.append(ord(b"\\"))
            else:
                ret.extend(whitespace)
                whitespace = bytearray()
                try:
                    ret.append(_ESCAPE_TABLE[value_array[i]])
                except KeyError:
                    # Unknown escape: keep the backslash, reprocess the next char
                    ret.append(ord(b"\\"))
                    i -= 1
        elif c == ord(b'"'):
            in_quotes = not in_quotes
        elif c in _COMMENT_CHARS and not in_quotes:
            # the rest of the line is a comment
            break
        elif c in _WHITESPACE_CHARS:
            whitespace.append(c)
        else:
            ret.extend(whitespace)
            whitespace = bytearray()
            ret.append(c)
        i += 1

    if in_quotes:
        raise ValueError("missing end quote")

    return bytes(ret)


def _check_variable_name(name: bytes) -> bool:
    for i in range(len(name)):
        c = name[i : i + 1]
        if not c.isalnum() and c != b"-":
            return False
    return True


def _check_section_name(name: bytes) -> bool:
    for i in range(len(name)):
        c = name[i : i + 1]
        if not c.isalnum() and c not in (b"-", b"."):
            return False
    return True


def _strip_comments(line: bytes) -> bytes:
    comment_bytes = {ord(b"#"), ord(b";")}
    quote = ord(b'"')
    string_open = False
    for i, character in enumerate(bytearray(line)):
        # Comment characters outside balanced quotes denote comment start
        if character == quote:
            string_open = not string_open
        elif not string_open and character in comment_bytes:
            return line[:i]
    return line


def _is_line_continuation(value: bytes) -> bool:
    """Check if a value ends with an unescaped line continuation backslash."""
    if value.endswith(b"\\\r\n"):
        content = value[:-2]
    elif value.endswith(b"\\\n"):
        content = value[:-1]
    else:
        return False
    backslash_count = len(content) - len(content.rstrip(b"\\"))
    # An even number of trailing backslashes are all escaped
    return backslash_count % 2 == 1


def _strip_continuation(value: bytes) -> bytes:
    if value.endswith(b"\\\r\n"):
        return value[:-3]
    return value[:-2]


def _parse_section_header_line(line: bytes) -> tuple[Section, bytes]:
    # Parse section header ("[bla]")
    line = _strip_comments(line).rstrip()
    in_quotes = False
    escaped = False
    for i, c in enumerate(line):
        if escaped:
            escaped = False
            continue
        if c == ord(b'"'):
            in_quotes = not in_quotes
        if c == ord(b"\\"):
            escaped = True
        if c == ord(b"]") and not in_quotes:
            last = i
            break
    else:
        raise ValueError("expected trailing ]")
    pts = line[1:last].split(b" ", 1)
    line = line[last + 1 :]
    section: Section
    if len(pts) == 2:
        if pts[1][:1] == b'"' and pts[1][-1:] == b'"':
            pts[1] = pts[1][1:-1].replace(b'\\"', b'"').replace(b"\\\\", b"\\")
        else:
            raise ValueError(f"Invalid subsection {pts[1]!r}")
        if not _check_section_name(pts[0]):
            raise ValueError(f"invalid section name {pts[0]!r}")
        section = (pts[0].lower(), pts[1])
    else:
        if not _check_section_name(pts[0]):
            raise ValueError(f"invalid section name {pts[0]!r}")
        pts = pts[0].split(b".", 1)
        if len(pts) == 2:
            # Deprecated [section.subsection] syntax
            section = (pts[0].lower(), pts[1])
        else:
            section = (pts[0].lower(),)
    return section, line


class ConfigFile(Config):
    """A Git configuration file, like .git/config or ~/.gitconfig."""

    def __init__(self) -> None:
        """Initialize an empty ConfigFile."""
        self.path: str | None = None
        # section -> lowercased name -> values in file order
        self._values: dict[Section, dict[Name, list[Value]]] = {}

    def __repr__(self) -> str:
        """Return string representation of ConfigFile."""
        return f"{self.__class__.__name__}({self.path!r})"

    def _lookup(self, section: SectionLike, name: bytes | str) -> list[Value]:
        values = self._values[_normalize_section(section)]
        return values[_to_bytes(name).lower()]

    def get(self, section: SectionLike, name: bytes | str) -> Value:
        """Retrieve the last value of a setting.

        Raises:
          KeyError: if the value is not set
        """
        return self._lookup(section, name)[-1]

    def get_multivar(self, section: SectionLike, name: bytes | str) -> Iterator[Value]:
        """Retrieve all values of a setting, in file order.

        Raises:
          KeyError: if the value is not set
        """
        return iter(self._lookup(section, name))

    def items(self, section: SectionLike) -> Iterator[tuple[Name, Value]]:
        """Iterate over the last value of each setting in a section."""
        for name, values in self._values.get(_normalize_section(section), {}).items():
            yield name, values[-1]

    def sections(self) -> Iterator[Section]:
        """Iterate over the sections."""
        return iter(list(self._values.keys()))

    def _add(self, section: Section, name: Name, value: Value) -> None:
        self._values.setdefault(section, {}).setdefault(name.lower(), []).append(
            value
        )

    @classmethod
    def from_file(cls, f: IO[bytes]) -> "ConfigFile":
        """Read configuration from a file-like object.

        Raises:
          ValueError: if the file is not a valid git config file
        """
        ret = cls()
        section: Section | None = None
        setting: bytes | None = None
        continuation = b""
        for lineno, line in enumerate(f.readlines()):
            if lineno == 0 and line.startswith(b"\xef\xbb\xbf"):
                line = line[3:]
            if setting is not None:
                # continuation line
                assert section is not None
                if _is_line_continuation(line):
                    continuation += _strip_continuation(line)
                    continue
                ret._add(section, setting, _parse_string(continuation + line))
                setting = None
                continue
            line = line.lstrip()
            if line[:1] == b"[":
                section, line = _parse_section_header_line(line)
                ret._values.setdefault(section, {})
            if _strip_comments(line).strip() == b"":
                continue
            if section is None:
                raise ValueError(f"setting {line!r} without section")
            try:
                name, value = line.split(b"=", 1)
            except ValueError:
                # A bare variable name is a boolean true
                name = _strip_comments(line)
                value = b"true"
            name = name.strip()
            if not _check_variable_name(name):
                raise ValueError(f"invalid variable name {name!r}")
            if _is_line_continuation(value):
                setting = name
                continuation = _strip_continuation(value)
            else:
                ret._add(section, name, _parse_string(value))
        if setting is not None:
            assert section is not None
            ret._add(section, setting, _parse_string(continuation))
        return ret

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> "ConfigFile":
        """Read configuration from a file on disk."""
        abs_path = os.fspath(path)
        with open(abs_path, "rb") as f:
            ret = cls.from_file(f)
        ret.path = abs_path
        return ret
