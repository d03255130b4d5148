# graph.py -- Commit ancestry walking
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

"""Compute the reverse adjacency map of a commit graph.

Starting from a set of commits, every reachable ancestor is mapped to the
list of its direct children seen during a depth-first walk. Annotated tags
are peeled on the way and never show up in the result; commits on the
shallow boundary are kept as leaves.
"""

__all__ = [
    "AncestryEntry",
    "compute_ancestry_map",
    "walk_ancestry",
]

from collections.abc import Iterable, Set
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import ObjectTypeError, RefResolutionError
from .log_utils import getLogger
from .object_store import BaseObjectStore
from .objects import Commit, ObjectID, Tag, object_class, parse_commit, parse_tag

if TYPE_CHECKING:
    from .repo import BaseRepo

logger = getLogger(__name__)


@dataclass
class AncestryEntry:
    """Children of a commit, in the order the walk discovered them."""

    children: list[ObjectID] = field(default_factory=list)


class _Frame:
    """A commit whose parents are being expanded."""

    __slots__ = ("commit_id", "index", "parents", "pending")

    def __init__(self, commit_id: ObjectID, parents: list[ObjectID]) -> None:
        self.commit_id = commit_id
        self.parents = parents
        self.index = 0
        # Parent whose subtree is on the stack above this frame
        self.pending: ObjectID | None = None


def _read_commit(store: BaseObjectStore, sha: ObjectID) -> tuple[ObjectID, Commit]:
    """Read a commit, peeling any annotated tags in front of it.

    Returns: Tuple of (commit id, commit)
    Raises:
      ObjectTypeError: if the peeled object is not a commit
    """
    while True:
        type_num, data = store.get_raw(sha)
        if type_num == Tag.type_num:
            _obj_class, target = parse_tag(data, sha).object
            logger.debug("Peeled tag %s to %s", sha.decode("ascii"), target.decode("ascii"))
            sha = target
            continue
        if type_num != Commit.type_num:
            cls = object_class(type_num)
            actual = cls.type_name if cls is not None else str(type_num).encode("ascii")
            raise ObjectTypeError(sha, actual, Commit.type_name)
        return sha, parse_commit(data, sha)


def _expand(
    store: BaseObjectStore,
    visited: dict[ObjectID, AncestryEntry],
    commit_id: ObjectID,
    commit: Commit,
    shallows: Set[ObjectID],
) -> None:
    """Claim a commit in visited and expand all of its ancestry.

    Parents are expanded depth-first in order; the edge to a parent is
    recorded once that parent's own ancestry has been expanded.
    """

    def claim(commit_id: ObjectID, commit: Commit) -> _Frame:
        visited[commit_id] = AncestryEntry()
        if commit_id in shallows:
            logger.debug("Not expanding shallow commit %s", commit_id.decode("ascii"))
            return _Frame(commit_id, [])
        return _Frame(commit_id, commit.parents)

    stack = [claim(commit_id, commit)]
    while stack:
        frame = stack[-1]
        if frame.pending is not None:
            visited[frame.pending].children.append(frame.commit_id)
            frame.pending = None
        if frame.index >= len(frame.parents):
            stack.pop()
            continue
        parent = frame.parents[frame.index]
        frame.index += 1
        if parent in visited:
            logger.debug("Skipping visited parent %s", parent.decode("ascii"))
            visited[parent].children.append(frame.commit_id)
            continue
        parent_id, parent_commit = _read_commit(store, parent)
        if parent_id in visited:
            visited[parent_id].children.append(frame.commit_id)
            continue
        logger.debug("Visiting parent %s", parent_id.decode("ascii"))
        frame.pending = parent_id
        stack.append(claim(parent_id, parent_commit))


def walk_ancestry(
    store: BaseObjectStore,
    heads: Iterable[ObjectID],
    shallows: Set[ObjectID] = frozenset(),
    finishing: Set[ObjectID] = frozenset(),
) -> dict[ObjectID, AncestryEntry]:
    """Map every commit reachable from heads to its children.

    Args:
      store: Object store to read commits and tags from
      heads: Object ids to start from; annotated tags are peeled
      shallows: Commits whose parents must not be followed
      finishing: Accepted for interface stability; does not affect the walk
    Returns: Dictionary mapping each commit id to an AncestryEntry. Starting
        commits are always present, with whatever children the walk found.
    Raises:
      KeyError: if an object is missing from the store
      ObjectTypeError: if a head or parent does not lead to a commit
      ObjectFormatException: if an object can not be decoded
    """
    # TODO: stop at commits in finishing once the exclusion semantics
    # (drop them, or keep them as leaves) have been settled.
    visited: dict[ObjectID, AncestryEntry] = {}
    for head in heads:
        commit_id, commit = _read_commit(store, head)
        if commit_id in visited:
            continue
        _expand(store, visited, commit_id, commit, shallows)
    logger.debug("Walked %d commits", len(visited))
    return visited


def compute_ancestry_map(
    repo: "BaseRepo",
    ref_names: Iterable[str | bytes],
    finish: Iterable[str | bytes] = (),
) -> dict[ObjectID, AncestryEntry]:
    """Resolve ref names and walk the ancestry of the commits they name.

    Args:
      repo: Repository to read refs, objects and the shallow file from
      ref_names: Names (or hex shas) to start from
      finish: Names of commits the walk may stop at; names that can not be
        resolved are ignored
    Returns: See walk_ancestry
    Raises:
      RefResolutionError: if a starting name can not be resolved
    """
    # Resolve every start before reading any objects
    heads = list(dict.fromkeys(repo.resolve_ref(name) for name in ref_names))
    finishing = set()
    for name in finish:
        try:
            finishing.add(repo.resolve_ref(name))
        except RefResolutionError:
            logger.debug("Ignoring unresolvable finishing ref %r", name)
    return walk_ancestry(repo.object_store, heads, repo.get_shallow(), finishing)
