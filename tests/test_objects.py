# test_objects.py -- tests for objects.py
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

"""Tests for ancestry.objects."""

import os

from ancestry.errors import ObjectFormatException
from ancestry.objects import (
    Blob,
    Commit,
    ShaFile,
    Tag,
    Tree,
    format_timezone,
    hex_to_filename,
    hex_to_sha,
    object_class,
    object_header,
    parse_commit,
    parse_tag,
    parse_time_entry,
    parse_timezone,
    sha_to_hex,
    valid_hexsha,
)

from . import TestCase
from .utils import EMPTY_TREE_ID, make_commit, make_tag

a_sha = b"6f670c0fb53f9463760b7295fbb814e965fb20c8"
b_sha = b"2969be3e8ee1c0222396a5611407e4769f14e54b"
c_sha = b"954a536f7819d40e6f637f849ee187dd10066349"

COMMIT_TEXT = (
    b"tree d80c186a03f423a81b39df39dc87fd269736ca86\n"
    b"parent " + a_sha + b"\n"
    b"parent " + b_sha + b"\n"
    b"author James Westby <jw+debian@jameswestby.net> 1174773719 +0000\n"
    b"committer James Westby <jw+debian@jameswestby.net> 1174773719 +0100\n"
    b"\n"
    b"Merge ../b\n"
)

TAG_TEXT = (
    b"object " + c_sha + b"\n"
    b"type commit\n"
    b"tag v0.1\n"
    b"tagger Ali Sabil <ali.sabil@gmail.com> 1231203091 -0500\n"
    b"\n"
    b"Release 0.1\n"
)


class TestHexToSha(TestCase):
    def test_simple(self) -> None:
        self.assertEqual(b"\xab\xcd" * 10, hex_to_sha(b"abcd" * 10))

    def test_reverse(self) -> None:
        self.assertEqual(b"abcd" * 10, sha_to_hex(b"\xab\xcd" * 10))

    def test_valid_hexsha(self) -> None:
        self.assertTrue(valid_hexsha(a_sha))
        self.assertTrue(valid_hexsha(a_sha.upper()))
        self.assertFalse(valid_hexsha(a_sha[:-1]))
        self.assertFalse(valid_hexsha(b"g" * 40))
        self.assertFalse(valid_hexsha(b"refs/heads/master"))

    def test_hex_to_filename(self) -> None:
        self.assertEqual(
            os.path.join("objects", "6f", "670c0fb53f9463760b7295fbb814e965fb20c8"),
            hex_to_filename("objects", a_sha),
        )


class ObjectClassTests(TestCase):
    def test_lookup(self) -> None:
        self.assertIs(Commit, object_class(b"commit"))
        self.assertIs(Commit, object_class(1))
        self.assertIs(Tree, object_class(2))
        self.assertIs(Blob, object_class(b"blob"))
        self.assertIs(Tag, object_class(4))
        self.assertIsNone(object_class(b"bogus"))
        self.assertIsNone(object_class(6))

    def test_object_header(self) -> None:
        self.assertEqual(b"blob 11\0", object_header(3, 11))
        self.assertRaises(AssertionError, object_header, 7, 0)


class BlobTests(TestCase):
    def test_hash(self) -> None:
        self.assertEqual(
            b"95d09f2b10159347eece71399a7e2e907ea3df4f",
            Blob.from_data(b"hello world").id,
        )

    def test_empty(self) -> None:
        self.assertEqual(
            b"e69de29bb2d1d6434b8b29ae775ad8c2e48c5391", Blob.from_data(b"").id
        )

    def test_eq(self) -> None:
        self.assertEqual(Blob.from_data(b"a"), Blob.from_data(b"a"))
        self.assertNotEqual(Blob.from_data(b"a"), Blob.from_data(b"b"))


class TreeTests(TestCase):
    def test_empty_tree_id(self) -> None:
        self.assertEqual(EMPTY_TREE_ID, Tree().id)

    def test_roundtrip(self) -> None:
        blob = Blob.from_data(b"contents")
        tree = Tree()
        tree.add(b"file", 0o100644, blob.id)
        tree.add(b"dir", 0o40000, EMPTY_TREE_ID)
        parsed = ShaFile.from_raw_string(Tree.type_num, tree.as_raw_string())
        self.assertIsInstance(parsed, Tree)
        self.assertEqual(tree.items(), parsed.items())
        self.assertEqual(tree.id, parsed.id)

    def test_directory_sort_order(self) -> None:
        tree = Tree()
        tree.add(b"a0", 0o100644, a_sha)
        tree.add(b"a.c", 0o100644, b_sha)
        tree.add(b"a", 0o40000, EMPTY_TREE_ID)
        # Directories sort as "a/", between "a.c" and "a0"
        self.assertEqual([b"a.c", b"a", b"a0"], [e[0] for e in tree.items()])

    def test_truncated(self) -> None:
        self.assertRaises(
            ObjectFormatException, Tree.from_string, b"100644 file\0" + b"x" * 10
        )


class TimezoneTests(TestCase):
    def test_parse(self) -> None:
        self.assertEqual((3600, False), parse_timezone(b"+0100"))
        self.assertEqual((-5 * 3600, False), parse_timezone(b"-0500"))
        self.assertEqual((0, True), parse_timezone(b"-0000"))
        self.assertEqual((5400, False), parse_timezone(b"+0130"))

    def test_parse_invalid(self) -> None:
        self.assertRaises(ValueError, parse_timezone, b"0100")

    def test_format(self) -> None:
        self.assertEqual(b"+0100", format_timezone(3600))
        self.assertEqual(b"-0500", format_timezone(-5 * 3600))
        self.assertEqual(b"-0000", format_timezone(0, True))
        self.assertRaises(ValueError, format_timezone, 30)

    def test_parse_time_entry(self) -> None:
        self.assertEqual(
            (b"Foo <foo@example.com>", 1174773719, (3600, False)),
            parse_time_entry(b"Foo <foo@example.com> 1174773719 +0100"),
        )

    def test_parse_time_entry_without_time(self) -> None:
        self.assertEqual(
            (b"Foo", None, (None, False)),
            parse_time_entry(b"Foo"),
        )

    def test_parse_time_entry_invalid(self) -> None:
        self.assertRaises(
            ObjectFormatException,
            parse_time_entry,
            b"Foo <foo@example.com> notatime +0100",
        )


class CommitParseTests(TestCase):
    def test_simple(self) -> None:
        c = parse_commit(COMMIT_TEXT)
        self.assertEqual(b"d80c186a03f423a81b39df39dc87fd269736ca86", c.tree)
        self.assertEqual([a_sha, b_sha], c.parents)
        self.assertEqual(b"James Westby <jw+debian@jameswestby.net>", c.author)
        self.assertEqual(1174773719, c.author_time)
        self.assertEqual(0, c.author_timezone)
        self.assertEqual(3600, c.commit_timezone)
        self.assertEqual(b"Merge ../b\n", c.message)

    def test_roundtrip(self) -> None:
        self.assertEqual(COMMIT_TEXT, parse_commit(COMMIT_TEXT).as_raw_string())

    def test_known_sha(self) -> None:
        c = parse_commit(COMMIT_TEXT, a_sha)
        self.assertEqual(a_sha, c.id)

    def test_root_commit(self) -> None:
        text = COMMIT_TEXT.replace(b"parent " + a_sha + b"\n", b"").replace(
            b"parent " + b_sha + b"\n", b""
        )
        self.assertEqual([], parse_commit(text).parents)

    def test_extra_headers(self) -> None:
        text = COMMIT_TEXT.replace(
            b"\n\nMerge", b"\nmergetag object " + c_sha + b"\n type commit\n\nMerge"
        )
        c = parse_commit(text)
        self.assertEqual(
            [(b"mergetag", b"object " + c_sha + b"\ntype commit")], c.extra
        )
        self.assertEqual(text, c.as_raw_string())

    def test_missing_tree(self) -> None:
        text = COMMIT_TEXT.replace(
            b"tree d80c186a03f423a81b39df39dc87fd269736ca86\n", b""
        )
        self.assertRaises(ObjectFormatException, parse_commit, text)

    def test_invalid_header_line(self) -> None:
        self.assertRaises(ObjectFormatException, parse_commit, b"tree\n\nmessage\n")

    def test_no_message(self) -> None:
        c = parse_commit(b"tree " + EMPTY_TREE_ID + b"\n")
        self.assertIsNone(c.message)

    def test_make_commit(self) -> None:
        c = make_commit(parents=[a_sha])
        parsed = parse_commit(c.as_raw_string())
        self.assertEqual(c.id, parsed.id)
        self.assertEqual([a_sha], parsed.parents)


class TagParseTests(TestCase):
    def test_simple(self) -> None:
        tag = parse_tag(TAG_TEXT)
        self.assertEqual((Commit, c_sha), tag.object)
        self.assertEqual(b"v0.1", tag.name)
        self.assertEqual(b"Ali Sabil <ali.sabil@gmail.com>", tag.tagger)
        self.assertEqual(1231203091, tag.tag_time)
        self.assertEqual(-5 * 3600, tag.tag_timezone)
        self.assertEqual(b"Release 0.1\n", tag.message)

    def test_roundtrip(self) -> None:
        self.assertEqual(TAG_TEXT, parse_tag(TAG_TEXT).as_raw_string())

    def test_missing_object(self) -> None:
        text = TAG_TEXT.replace(b"object " + c_sha + b"\n", b"")
        self.assertRaises(ObjectFormatException, parse_tag, text)

    def test_unknown_type(self) -> None:
        text = TAG_TEXT.replace(b"type commit", b"type bogus")
        self.assertRaises(ObjectFormatException, parse_tag, text)

    def test_make_tag(self) -> None:
        commit = make_commit()
        tag = make_tag(commit, name=b"v1.0")
        parsed = parse_tag(tag.as_raw_string())
        self.assertEqual((Commit, commit.id), parsed.object)
        self.assertEqual(b"v1.0", parsed.name)

    def test_object_unset(self) -> None:
        self.assertRaises(ObjectFormatException, lambda: Tag().object)
