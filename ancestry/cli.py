#
# ancestry - Simple command-line interface to ancestry
# Copyright (C) 2026 The ancestry authors
# vim: expandtab
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

"""Simple command-line interface to ancestry.

The repository is taken from ``--url`` (a dumb HTTP remote), the
``GIT_DIR`` environment variable, or discovered from the current
directory, in that order.
"""

__all__ = [
    "Command",
    "commands",
    "main",
    "to_display_str",
]

import argparse
import json
import logging
import os
import signal
import sys
import types
from collections.abc import Sequence

from . import porcelain
from .errors import (
    GitProtocolError,
    NotGitRepository,
    ObjectMissing,
    ObjectTypeError,
    RefResolutionError,
)
from .graph import AncestryEntry
from .log_utils import _configure_logging_from_trace
from .objects import ObjectID
from .repo import BaseRepo, Repo

logger = logging.getLogger(__name__)


def to_display_str(value: bytes | str) -> str:
    """Convert a bytes or string value to a display string.

    Args:
        value: The value to convert (bytes or str)

    Returns:
        A string suitable for display
    """
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return value


def signal_int(signal: int, frame: types.FrameType | None) -> None:
    """Handle interrupt signal by exiting.

    Args:
        signal: Signal number
        frame: Current stack frame
    """
    sys.exit(1)


def _open_repo(url: str | None = None) -> BaseRepo:
    if url is not None:
        from .dumb import DumbRemoteHTTPRepo

        return DumbRemoteHTTPRepo(url)
    gitdir = os.environ.get("GIT_DIR")
    if gitdir:
        return Repo(gitdir)
    return Repo.discover(".")


def _format_ancestry(ancestry: dict[ObjectID, AncestryEntry], as_json: bool) -> str:
    if as_json:
        return json.dumps(
            {
                to_display_str(sha): {
                    "children": [to_display_str(c) for c in entry.children]
                }
                for sha, entry in ancestry.items()
            },
            indent=2,
        )
    lines = []
    for sha, entry in ancestry.items():
        lines.append(" ".join(to_display_str(s) for s in [sha, *entry.children]))
    return "\n".join(lines)


class Command:
    """An ancestry subcommand."""

    def run(self, args: Sequence[str]) -> int | None:
        """Run the command."""
        raise NotImplementedError(self.run)


class cmd_list_commits(Command):
    """Print every reachable commit followed by its children."""

    def run(self, args: Sequence[str]) -> int | None:
        """Execute the list-commits command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="ancestry list-commits")
        parser.add_argument(
            "--remote", type=str, help="Start from the branches of this remote"
        )
        parser.add_argument(
            "--finish",
            type=str,
            action="append",
            default=[],
            help="Ref the walk may stop at (may be repeated)",
        )
        parser.add_argument("--json", action="store_true", help="Output JSON")
        parser.add_argument("--url", type=str, help="URL of a dumb HTTP remote")
        parser.add_argument(
            "refs", nargs="*", help="Refs to start from (default: all branches)"
        )
        parsed_args = parser.parse_args(args)
        with _open_repo(parsed_args.url) as repo:
            ancestry = porcelain.list_commits(
                repo,
                remote=parsed_args.remote,
                finish=parsed_args.finish,
                refs=parsed_args.refs or None,
            )
        output = _format_ancestry(ancestry, parsed_args.json)
        if output:
            sys.stdout.write(output + "\n")
        return None


class cmd_branches(Command):
    """List local branches, or the branches of a remote."""

    def run(self, args: Sequence[str]) -> int | None:
        """Execute the branches command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="ancestry branches")
        parser.add_argument("--remote", type=str, help="List this remote's branches")
        parser.add_argument("--url", type=str, help="URL of a dumb HTTP remote")
        parsed_args = parser.parse_args(args)
        with _open_repo(parsed_args.url) as repo:
            for branch in porcelain.list_branches(repo, remote=parsed_args.remote):
                sys.stdout.write(to_display_str(branch) + "\n")
        return None


class cmd_rev_parse(Command):
    """Print the object id a name refers to."""

    def run(self, args: Sequence[str]) -> int | None:
        """Execute the rev-parse command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="ancestry rev-parse")
        parser.add_argument("--url", type=str, help="URL of a dumb HTTP remote")
        parser.add_argument("name", help="Ref name or object id")
        parsed_args = parser.parse_args(args)
        with _open_repo(parsed_args.url) as repo:
            sha = porcelain.rev_parse(repo, parsed_args.name)
        sys.stdout.write(to_display_str(sha) + "\n")
        return None


commands = {
    "branches": cmd_branches,
    "list-commits": cmd_list_commits,
    "rev-parse": cmd_rev_parse,
}


def main(argv: Sequence[str] | None = None) -> int | None:
    """Main entry point for the ancestry CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code or None
    """
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        parser = argparse.ArgumentParser(
            prog="ancestry", description="Simple command-line interface to ancestry"
        )
        parser.add_argument(
            "command",
            nargs="?",
            help=f"Command to run. Available: {', '.join(sorted(commands.keys()))}",
        )
        parser.print_help()
        return 1

    # Try to configure from GIT_TRACE, fall back to default if it fails
    if not _configure_logging_from_trace():
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
        )

    cmd = argv[0]
    try:
        cmd_kls = commands[cmd]
    except KeyError:
        logging.fatal("No such subcommand: %s", cmd)
        return 1
    try:
        return cmd_kls().run(argv[1:])
    except (
        RefResolutionError,
        ObjectMissing,
        ObjectTypeError,
        NotGitRepository,
        GitProtocolError,
    ) as e:
        logger.error("%s", e)
        return 1


def _main() -> None:
    signal.signal(signal.SIGINT, signal_int)

    sys.exit(main())


if __name__ == "__main__":
    _main()
