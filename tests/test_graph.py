# test_graph.py -- Tests for graph.py
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

"""Tests for ancestry.graph."""

import sys
from collections import Counter

from ancestry.errors import (
    ObjectFormatException,
    ObjectMissing,
    ObjectTypeError,
    RefResolutionError,
)
from ancestry.graph import AncestryEntry, compute_ancestry_map, walk_ancestry
from ancestry.object_store import MemoryObjectStore
from ancestry.objects import Blob, Commit, ObjectID, RawObjectID, Tree
from ancestry.repo import MemoryRepo

from . import TestCase
from .utils import EMPTY_TREE_ID, build_commit_graph, make_commit, make_tag


class CountingObjectStore(MemoryObjectStore):
    """MemoryObjectStore that counts reads per object."""

    def __init__(self) -> None:
        super().__init__()
        self.reads: Counter[bytes] = Counter()

    def get_raw(self, name: ObjectID | RawObjectID) -> tuple[int, bytes]:
        self.reads[name] += 1
        return super().get_raw(name)


def children(ancestry: dict[ObjectID, AncestryEntry]) -> dict[ObjectID, list[ObjectID]]:
    return {sha: entry.children for sha, entry in ancestry.items()}


class WalkAncestryTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.store = CountingObjectStore()

    def test_root_commit(self) -> None:
        (c1,) = build_commit_graph(self.store, [[1]])
        self.assertEqual(
            {c1.id: AncestryEntry(children=[])}, walk_ancestry(self.store, [c1.id])
        )

    def test_linear(self) -> None:
        c1, c2, c3 = build_commit_graph(self.store, [[1], [2, 1], [3, 2]])
        self.assertEqual(
            {c1.id: [c2.id], c2.id: [c3.id], c3.id: []},
            children(walk_ancestry(self.store, [c3.id])),
        )

    def test_shared_parent(self) -> None:
        c1, c2, c3, c4 = build_commit_graph(
            self.store, [[1], [2, 1], [3, 2], [4, 2]]
        )
        self.assertEqual(
            {c1.id: [c2.id], c2.id: [c3.id, c4.id], c3.id: [], c4.id: []},
            children(walk_ancestry(self.store, [c3.id, c4.id])),
        )

    def test_shared_parent_order_follows_starts(self) -> None:
        c1, c2, c3, c4 = build_commit_graph(
            self.store, [[1], [2, 1], [3, 2], [4, 2]]
        )
        ancestry = walk_ancestry(self.store, [c4.id, c3.id])
        self.assertEqual([c4.id, c3.id], ancestry[c2.id].children)

    def test_merge(self) -> None:
        c1, c2, c3, c4 = build_commit_graph(
            self.store, [[1], [2, 1], [3, 1], [4, 2, 3]]
        )
        ancestry = walk_ancestry(self.store, [c4.id])
        self.assertEqual(
            {c1.id: [c2.id, c3.id], c2.id: [c4.id], c3.id: [c4.id], c4.id: []},
            children(ancestry),
        )
        # Commits are claimed depth-first, first parent first
        self.assertEqual([c4.id, c2.id, c1.id, c3.id], list(ancestry))

    def test_each_commit_read_once(self) -> None:
        commits = build_commit_graph(
            self.store, [[1], [2, 1], [3, 1], [4, 2, 3], [5, 4], [6, 4, 1]]
        )
        walk_ancestry(self.store, [commits[4].id, commits[5].id])
        self.assertEqual(
            {c.id: 1 for c in commits}, dict(self.store.reads)
        )

    def test_annotated_tag(self) -> None:
        c1, c2 = build_commit_graph(self.store, [[1], [2, 1]])
        tag = make_tag(c2, name=b"v1.0")
        self.store.add_object(tag)
        ancestry = walk_ancestry(self.store, [tag.id])
        self.assertEqual({c1.id: [c2.id], c2.id: []}, children(ancestry))
        self.assertNotIn(tag.id, ancestry)

    def test_tag_of_tag(self) -> None:
        (c1,) = build_commit_graph(self.store, [[1]])
        tag1 = make_tag(c1, name=b"inner")
        tag2 = make_tag(tag1, name=b"outer")
        self.store.add_objects([tag1, tag2])
        ancestry = walk_ancestry(self.store, [tag2.id])
        self.assertEqual({c1.id: []}, children(ancestry))

    def test_tag_and_commit_starts(self) -> None:
        c1, c2 = build_commit_graph(self.store, [[1], [2, 1]])
        tag = make_tag(c2)
        self.store.add_object(tag)
        self.assertEqual(
            children(walk_ancestry(self.store, [c2.id])),
            children(walk_ancestry(self.store, [tag.id, c2.id])),
        )

    def test_peeling_is_logged(self) -> None:
        (c1,) = build_commit_graph(self.store, [[1]])
        tag = make_tag(c1)
        self.store.add_object(tag)
        with self.assertLogs("ancestry.graph", level="DEBUG") as cm:
            walk_ancestry(self.store, [tag.id])
        self.assertTrue(any("Peeled tag" in line for line in cm.output))

    def test_tag_as_parent(self) -> None:
        (c1,) = build_commit_graph(self.store, [[1]])
        tag = make_tag(c1)
        c2 = make_commit(parents=[tag.id], message=b"odd parent\n")
        self.store.add_objects([tag, c2])
        ancestry = walk_ancestry(self.store, [c2.id])
        self.assertEqual({c1.id: [c2.id], c2.id: []}, children(ancestry))

    def test_shallow_start(self) -> None:
        missing_parent = ObjectID(b"1" * 40)
        c = make_commit(parents=[missing_parent])
        self.store.add_object(c)
        ancestry = walk_ancestry(self.store, [c.id], shallows={c.id})
        self.assertEqual({c.id: []}, children(ancestry))
        self.assertEqual(1, self.store.reads[c.id])
        self.assertNotIn(missing_parent, self.store.reads)

    def test_shallow_parent(self) -> None:
        c1, c2, c3 = build_commit_graph(self.store, [[1], [2, 1], [3, 2]])
        ancestry = walk_ancestry(self.store, [c3.id], shallows={c2.id})
        self.assertEqual({c2.id: [c3.id], c3.id: []}, children(ancestry))

    def test_shallow_ancestor_reachable_elsewhere(self) -> None:
        c1, c2, c3 = build_commit_graph(self.store, [[1], [2, 1], [3, 2]])
        ancestry = walk_ancestry(self.store, [c3.id, c1.id], shallows={c2.id})
        self.assertEqual(
            {c1.id: [], c2.id: [c3.id], c3.id: []}, children(ancestry)
        )

    def test_shallow_start_must_be_commit(self) -> None:
        tree = Tree()
        self.store.add_object(tree)
        self.assertRaises(
            ObjectTypeError, walk_ancestry, self.store, [tree.id], {tree.id}
        )

    def test_start_is_tree(self) -> None:
        tree = Tree()
        self.store.add_object(tree)
        with self.assertRaises(ObjectTypeError) as cm:
            walk_ancestry(self.store, [tree.id])
        self.assertEqual(EMPTY_TREE_ID, cm.exception.sha)
        self.assertEqual(b"tree", cm.exception.actual)
        self.assertEqual(b"commit", cm.exception.expected)

    def test_tag_of_blob(self) -> None:
        blob = Blob.from_data(b"not a commit")
        tag = make_tag(blob)
        self.store.add_objects([blob, tag])
        with self.assertRaises(ObjectTypeError) as cm:
            walk_ancestry(self.store, [tag.id])
        self.assertEqual(blob.id, cm.exception.sha)
        self.assertEqual(b"blob", cm.exception.actual)

    def test_parent_is_tree(self) -> None:
        c = make_commit(parents=[EMPTY_TREE_ID])
        self.store.add_objects([Tree(), c])
        with self.assertRaises(ObjectTypeError) as cm:
            walk_ancestry(self.store, [c.id])
        self.assertEqual(EMPTY_TREE_ID, cm.exception.sha)

    def test_missing_start(self) -> None:
        self.assertRaises(ObjectMissing, walk_ancestry, self.store, [b"1" * 40])

    def test_missing_parent(self) -> None:
        c = make_commit(parents=[b"1" * 40])
        self.store.add_object(c)
        with self.assertRaises(KeyError) as cm:
            walk_ancestry(self.store, [c.id])
        self.assertIsInstance(cm.exception, ObjectMissing)
        self.assertEqual(b"1" * 40, cm.exception.sha)

    def test_corrupt_commit(self) -> None:
        sha = ObjectID(b"2" * 40)
        self.store.add_raw(sha, Commit.type_num, b"garbage")
        self.assertRaises(ObjectFormatException, walk_ancestry, self.store, [sha])

    def test_no_heads(self) -> None:
        self.assertEqual({}, walk_ancestry(self.store, []))

    def test_deep_history(self) -> None:
        depth = max(5000, sys.getrecursionlimit() + 100)
        commits = build_commit_graph(
            self.store, [[1]] + [[i, i - 1] for i in range(2, depth + 1)]
        )
        ancestry = walk_ancestry(self.store, [commits[-1].id])
        self.assertEqual(depth, len(ancestry))
        self.assertEqual([], ancestry[commits[-1].id].children)
        self.assertEqual([commits[1].id], ancestry[commits[0].id].children)

    def test_overlapping_starts(self) -> None:
        c1, c2, c3 = build_commit_graph(self.store, [[1], [2, 1], [3, 2]])
        expected = {c1.id: [c2.id], c2.id: [c3.id], c3.id: []}
        self.assertEqual(expected, children(walk_ancestry(self.store, [c2.id, c3.id])))
        self.assertEqual(expected, children(walk_ancestry(self.store, [c3.id, c2.id])))

    def test_duplicate_starts(self) -> None:
        c1, c2 = build_commit_graph(self.store, [[1], [2, 1]])
        self.assertEqual(
            {c1.id: [c2.id], c2.id: []},
            children(walk_ancestry(self.store, [c2.id, c2.id])),
        )

    def test_idempotent(self) -> None:
        commits = build_commit_graph(
            self.store, [[1], [2, 1], [3, 1], [4, 2, 3], [5, 3]]
        )
        heads = [commits[3].id, commits[4].id]
        self.assertEqual(
            walk_ancestry(self.store, heads), walk_ancestry(self.store, heads)
        )

    def test_finishing_is_inert(self) -> None:
        c1, c2, c3 = build_commit_graph(self.store, [[1], [2, 1], [3, 2]])
        self.assertEqual(
            walk_ancestry(self.store, [c3.id]),
            walk_ancestry(self.store, [c3.id], finishing={c2.id}),
        )


class ComputeAncestryMapTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.repo = MemoryRepo()
        self.c1, self.c2, self.c3, self.c4 = build_commit_graph(
            self.repo.object_store, [[1], [2, 1], [3, 2], [4, 2]]
        )
        self.repo.refs[b"refs/heads/master"] = self.c3.id
        self.repo.refs[b"refs/heads/topic"] = self.c4.id
        self.repo.refs.set_symbolic_ref(b"HEAD", b"refs/heads/master")

    def test_branches(self) -> None:
        ancestry = compute_ancestry_map(self.repo, ["master", b"topic"])
        self.assertEqual(
            {
                self.c1.id: [self.c2.id],
                self.c2.id: [self.c3.id, self.c4.id],
                self.c3.id: [],
                self.c4.id: [],
            },
            children(ancestry),
        )

    def test_full_ref_names(self) -> None:
        self.assertEqual(
            compute_ancestry_map(self.repo, ["master"]),
            compute_ancestry_map(self.repo, [b"refs/heads/master"]),
        )

    def test_symref(self) -> None:
        self.assertEqual(
            compute_ancestry_map(self.repo, ["master"]),
            compute_ancestry_map(self.repo, ["HEAD"]),
        )

    def test_hexsha(self) -> None:
        ancestry = compute_ancestry_map(self.repo, [self.c2.id])
        self.assertEqual({self.c1.id: [self.c2.id], self.c2.id: []}, children(ancestry))

    def test_duplicate_names(self) -> None:
        ancestry = compute_ancestry_map(
            self.repo, ["master", "refs/heads/master", self.c3.id]
        )
        self.assertEqual([self.c3.id], ancestry[self.c2.id].children)

    def test_annotated_tag_ref(self) -> None:
        tag = make_tag(self.c2, name=b"v1.0")
        self.repo.object_store.add_object(tag)
        self.repo.refs[b"refs/tags/v1.0"] = tag.id
        ancestry = compute_ancestry_map(self.repo, ["v1.0"])
        self.assertEqual({self.c1.id: [self.c2.id], self.c2.id: []}, children(ancestry))

    def test_unresolvable_start(self) -> None:
        with self.assertRaises(RefResolutionError) as cm:
            compute_ancestry_map(self.repo, ["master", "nope"])
        self.assertEqual(b"nope", cm.exception.name)

    def test_starts_resolved_before_walking(self) -> None:
        self.repo.refs[b"refs/heads/broken"] = ObjectID(b"1" * 40)
        # The broken branch is never read; the bad name fails first
        self.assertRaises(
            RefResolutionError, compute_ancestry_map, self.repo, ["broken", "nope"]
        )

    def test_unresolvable_finish_ignored(self) -> None:
        self.assertEqual(
            compute_ancestry_map(self.repo, ["master"]),
            compute_ancestry_map(self.repo, ["master"], finish=["nope", "topic"]),
        )

    def test_shallow(self) -> None:
        self.repo.update_shallow({self.c2.id})
        ancestry = compute_ancestry_map(self.repo, ["master"])
        self.assertEqual({self.c2.id: [self.c3.id], self.c3.id: []}, children(ancestry))

    def test_no_refs(self) -> None:
        self.assertEqual({}, compute_ancestry_map(self.repo, []))
