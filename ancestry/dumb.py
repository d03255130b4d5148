# dumb.py -- Support for dumb HTTP(S) git repositories
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

"""Support for reading dumb HTTP(S) git repositories.

A dumb server is any web server exporting a repository's control
directory; it needs ``git update-server-info`` to have written
``info/refs``. Only loose objects are fetched.
"""

__all__ = [
    "DumbHTTPObjectStore",
    "DumbRemoteHTTPRepo",
    "HttpRequestFn",
    "default_http_request",
]

from collections.abc import Callable, Iterator
from io import BytesIO
from typing import Any
from urllib.parse import urljoin

import urllib3
import urllib3.exceptions

from . import __version__
from .config import Config, ConfigFile
from .errors import GitProtocolError, NotGitRepository, ObjectMissing
from .log_utils import getLogger
from .object_store import BaseObjectStore, _to_hexsha, read_loose_object
from .objects import ObjectID, RawObjectID, ShaFile
from .refs import HEADREF, SYMREF, DictRefsContainer, InfoRefsContainer
from .repo import BaseRepo

logger = getLogger(__name__)

# (url, headers) -> (response, read)
HttpRequestFn = Callable[[str, dict[str, str]], tuple[Any, Callable[[int], bytes]]]


def default_user_agent_string() -> str:
    """Return the User-Agent sent with HTTP requests."""
    return "ancestry/{}".format(".".join(map(str, __version__)))


def default_http_request(
    config: Config | None = None,
    pool_manager: urllib3.PoolManager | None = None,
    timeout: float | None = None,
) -> HttpRequestFn:
    """Build a request function backed by a urllib3 pool manager.

    Args:
      config: Optional git config; ``http.userAgent`` and ``http.sslVerify``
        are honoured.
      pool_manager: Pool manager to use instead of a new one
      timeout: Timeout for HTTP requests in seconds
    Returns: Function taking (url, headers) and returning (response, read)
    """
    user_agent = None
    ssl_verify = True
    if config is not None:
        try:
            user_agent = config.get(b"http", b"useragent").decode("utf-8")
        except KeyError:
            pass
        ssl_verify = bool(config.get_boolean(b"http", b"sslVerify", True))
    if user_agent is None:
        user_agent = default_user_agent_string()

    if pool_manager is None:
        kwargs: dict[str, Any] = {"headers": {"User-agent": user_agent}}
        if not ssl_verify:
            kwargs["cert_reqs"] = "CERT_NONE"
        pool_manager = urllib3.PoolManager(**kwargs)

    def _http_request(
        url: str, headers: dict[str, str]
    ) -> tuple[Any, Callable[[int], bytes]]:
        req_headers = dict(pool_manager.headers)
        req_headers.update(headers)
        req_headers["Pragma"] = "no-cache"
        request_kwargs: dict[str, Any] = {
            "headers": req_headers,
            "preload_content": False,
        }
        if timeout is not None:
            request_kwargs["timeout"] = timeout
        try:
            resp = pool_manager.request("GET", url, **request_kwargs)
        except urllib3.exceptions.HTTPError as e:
            raise GitProtocolError(str(e)) from e
        return resp, resp.read

    return _http_request


def _fetch_url(http_request: HttpRequestFn, base_url: str, path: str) -> bytes | None:
    """Fetch a path relative to base_url.

    Returns: The body, or None if the server answered 404
    Raises:
      GitProtocolError: on any other unexpected status
    """
    url = urljoin(base_url, path)
    resp, read = http_request(url, {})
    try:
        if resp.status == 404:
            return None
        elif resp.status != 200:
            raise GitProtocolError(f"unexpected http resp {resp.status} for {url}")
        chunks = []
        while True:
            chunk = read(4096)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)
    finally:
        resp.close()


class DumbHTTPObjectStore(BaseObjectStore):
    """Object store implementation that fetches loose objects over dumb HTTP."""

    def __init__(self, base_url: str, http_request: HttpRequestFn) -> None:
        """Initialize a DumbHTTPObjectStore.

        Args:
          base_url: Base URL of the remote repository (e.g. "https://example.com/repo.git/")
          http_request: Function to make HTTP requests, should accept (url, headers)
                           and return (response, read_func).
        """
        self.base_url = base_url.rstrip("/") + "/"
        self._http_request = http_request
        self._cached_objects: dict[ObjectID, tuple[int, bytes]] = {}

    def __repr__(self) -> str:
        """Return string representation of DumbHTTPObjectStore."""
        return f"{self.__class__.__name__}({self.base_url!r})"

    def _fetch_loose_object(self, hexsha: ObjectID) -> tuple[int, bytes]:
        path = "objects/{}/{}".format(
            hexsha[:2].decode("ascii"), hexsha[2:].decode("ascii")
        )
        compressed = _fetch_url(self._http_request, self.base_url, path)
        if compressed is None:
            raise ObjectMissing(hexsha)
        logger.debug("Fetched %s from %s", hexsha.decode("ascii"), self.base_url)
        return read_loose_object(compressed, hexsha)

    def get_raw(self, name: ObjectID | RawObjectID) -> tuple[int, bytes]:
        """Obtain the raw text for an object.

        Args:
          name: SHA1 of the object
        Returns:
          Tuple with numeric type and object contents
        """
        hexsha = _to_hexsha(name)
        try:
            return self._cached_objects[hexsha]
        except KeyError:
            pass
        result = self._fetch_loose_object(hexsha)
        self._cached_objects[hexsha] = result
        return result

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the objects fetched so far.

        Loose objects can not be listed over dumb HTTP.
        """
        return iter(list(self._cached_objects))

    def add_object(self, obj: ShaFile) -> None:
        """Add a single object to this object store."""
        raise NotImplementedError("Cannot add objects to dumb HTTP repository")


class DumbRemoteHTTPRepo(BaseRepo):
    """Read-only repository over dumb HTTP."""

    def __init__(
        self, base_url: str, http_request: HttpRequestFn | None = None
    ) -> None:
        """Initialize a DumbRemoteHTTPRepo.

        Args:
          base_url: Base URL of the remote repository
          http_request: Function to make HTTP requests; a urllib3 based one
            is used when omitted.

        Raises:
          NotGitRepository: if info/refs can not be read
        """
        self.base_url = base_url.rstrip("/") + "/"
        if http_request is None:
            http_request = default_http_request()
        self._http_request = http_request
        refs_data = _fetch_url(self._http_request, self.base_url, "info/refs")
        if refs_data is None:
            raise NotGitRepository(f"Cannot read refs from {self.base_url}")
        info_refs = InfoRefsContainer(BytesIO(refs_data))
        refs = DictRefsContainer(
            {name: info_refs[name] for name in info_refs.allkeys()},
            peeled={
                name: info_refs.get_peeled(name)  # type: ignore[misc]
                for name in info_refs.allkeys()
            },
        )
        head = _fetch_url(self._http_request, self.base_url, "HEAD")
        if head is not None:
            refs[HEADREF] = head.rstrip(b"\r\n")
        BaseRepo.__init__(
            self, DumbHTTPObjectStore(self.base_url, self._http_request), refs
        )

    def __repr__(self) -> str:
        """Return string representation of DumbRemoteHTTPRepo."""
        return f"{self.__class__.__name__}({self.base_url!r})"

    def get_named_file(self, path: str) -> None:
        """Named files are not fetched over dumb HTTP."""
        return None

    def get_shallow(self) -> set[ObjectID]:
        """A dumb HTTP remote has no shallow boundary."""
        return set()

    def get_config(self) -> ConfigFile:
        """Remote configuration is not exported; return an empty config."""
        return ConfigFile()

    def head_target(self) -> bytes | None:
        """Return the ref HEAD points at, or None if HEAD is detached."""
        contents = self.refs.read_ref(HEADREF)
        if contents is not None and contents.startswith(SYMREF):
            return contents[len(SYMREF) :]
        return None
