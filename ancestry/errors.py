# errors.py -- errors for ancestry
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

"""ancestry-related exception classes."""

# Please do not add more errors here, but instead add them close to the code
# that raises the error.

__all__ = [
    "ApplyDeltaError",
    "FileFormatException",
    "GitProtocolError",
    "NotGitRepository",
    "ObjectFormatException",
    "ObjectMissing",
    "ObjectTypeError",
    "PackedRefsException",
    "RefResolutionError",
    "WrongObjectException",
]


def _display(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode("ascii", "replace")
    return value


class WrongObjectException(Exception):
    """Baseclass for all the _ is not a _ exceptions on objects.

    Do not instantiate directly.

    Subclasses should define a type_name attribute that indicates what
    was expected if they were raised.
    """

    type_name: str

    def __init__(self, sha: bytes, *args: object) -> None:
        """Initialize a WrongObjectException.

        Args:
            sha: The SHA of the object that was not of the expected type.
            *args: Additional positional arguments.
        """
        self.sha = sha
        Exception.__init__(self, f"{_display(sha)} is not a {self.type_name}")


class ObjectTypeError(WrongObjectException):
    """An object was found to be of a different kind than required.

    Attributes:
      sha: Hex SHA of the offending object
      actual: Kind the object turned out to be (e.g. b"tree")
      expected: Kind that was required (e.g. b"commit")
    """

    def __init__(self, sha: bytes, actual: bytes, expected: bytes) -> None:
        """Initialize an ObjectTypeError.

        Args:
            sha: The SHA of the object that was not of the expected type.
            actual: The type name of the object that was found.
            expected: The type name that was expected.
        """
        self.sha = sha
        self.actual = actual
        self.expected = expected
        self.type_name = _display(expected)
        Exception.__init__(
            self,
            f"Object {_display(sha)} was anticipated to be a {_display(expected)} "
            f"but it is a {_display(actual)}.",
        )


class ObjectMissing(KeyError):
    """Indicates that a requested object is not in the object store."""

    def __init__(self, sha: bytes) -> None:
        """Initialize an ObjectMissing exception.

        Args:
          sha: The SHA of the missing object.
        """
        self.sha = sha
        KeyError.__init__(self, sha)

    def __str__(self) -> str:
        """Return a readable message rather than the key repr."""
        return f"{_display(self.sha)} is not in the object store"


class RefResolutionError(KeyError):
    """A reference name could not be resolved to an object id."""

    def __init__(self, name: bytes) -> None:
        """Initialize a RefResolutionError.

        Args:
          name: The ref name that could not be resolved.
        """
        self.name = name
        KeyError.__init__(self, name)

    def __str__(self) -> str:
        """Return a readable message rather than the key repr."""
        return f"Could not resolve reference {_display(self.name)}"


class ApplyDeltaError(Exception):
    """Indicates that applying a delta failed."""


class NotGitRepository(Exception):
    """Indicates that no Git repository was found."""


class GitProtocolError(Exception):
    """Error while talking to a remote repository."""

    def __eq__(self, other: object) -> bool:
        """Check equality between GitProtocolError instances."""
        return isinstance(other, GitProtocolError) and self.args == other.args

    __hash__ = Exception.__hash__


class FileFormatException(Exception):
    """Base class for exceptions relating to reading git file formats."""


class PackedRefsException(FileFormatException):
    """Indicates an error parsing a packed-refs file."""


class ObjectFormatException(FileFormatException):
    """Indicates an error parsing an object."""
