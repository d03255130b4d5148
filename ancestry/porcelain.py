# porcelain.py -- Porcelain-like layer on top of ancestry
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

"""Simple wrapper that provides porcelain-like functions on top of ancestry.

Currently implemented:
 * list_branches
 * list_commits
 * rev_parse

These functions are meant to behave similarly to the git subcommands.
Differences in behaviour are considered bugs.

Functions should generally accept both unicode strings and bytestrings
"""

__all__ = [
    "list_branches",
    "list_commits",
    "open_repo_closing",
    "rev_parse",
]

import os
from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager, closing, contextmanager
from typing import TypeVar

from .graph import AncestryEntry, compute_ancestry_map
from .log_utils import getLogger
from .objects import ObjectID
from .refs import LOCAL_BRANCH_PREFIX, LOCAL_REMOTE_PREFIX
from .repo import BaseRepo, Repo

logger = getLogger(__name__)

T = TypeVar("T", bound=BaseRepo)

RepoPath = str | os.PathLike[str] | BaseRepo


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


@contextmanager
def _noop_context_manager(obj: T) -> Iterator[T]:
    """Context manager that has the same api as closing but does nothing."""
    yield obj


def open_repo_closing(path_or_repo: RepoPath) -> AbstractContextManager[BaseRepo]:
    """Open an argument that can be a repository or a path for a repository.

    returns a context manager that will close the repo on exit if the argument
    is a path, else does nothing if the argument is a repo.
    """
    if isinstance(path_or_repo, BaseRepo):
        return _noop_context_manager(path_or_repo)
    return closing(Repo(path_or_repo))


def list_branches(repo: RepoPath = ".", remote: str | bytes | None = None) -> list[bytes]:
    """List branches.

    Args:
      repo: Path to the repository
      remote: List the branches of this remote instead of the local ones;
        the remote's HEAD is included when present
    Returns: Sorted list of branch names
    """
    with open_repo_closing(repo) as r:
        return r.list_branches(remote)


def rev_parse(repo: RepoPath, name: str | bytes) -> ObjectID:
    """Resolve a ref name or hex sha to an object id.

    Raises:
      RefResolutionError: if the name can not be resolved
    """
    with open_repo_closing(repo) as r:
        return r.resolve_ref(name)


def list_commits(
    repo: RepoPath = ".",
    remote: str | bytes | None = None,
    finish: Iterable[str | bytes] = (),
    refs: Iterable[str | bytes] | None = None,
) -> dict[ObjectID, AncestryEntry]:
    """Map every commit reachable from the branches to its children.

    Args:
      repo: Path to the repository
      remote: Start from this remote's branches rather than the local ones
      finish: Ref names the walk may stop at; unknown names are ignored
      refs: Start from these ref names instead of the branches
    Returns: Dictionary mapping commit ids to AncestryEntry records
    Raises:
      RefResolutionError: if a starting ref can not be resolved
    """
    with open_repo_closing(repo) as r:
        if refs is None:
            if remote is None:
                prefix = LOCAL_BRANCH_PREFIX
            else:
                prefix = LOCAL_REMOTE_PREFIX + _to_bytes(remote) + b"/"
            # Qualify branch names so a tag with the same name can't shadow them
            refs = [prefix + name for name in r.list_branches(remote)]
            logger.debug("Starting from branches %r", refs)
        return compute_ancestry_map(r, refs, finish)
