"""CouchDB HTTP API adapter.

Design Pattern: Adapter Pattern
CouchClient adapts the CouchDB REST interface to the DatabaseClient
interface.

Implementation details:
- httpx.AsyncClient shared across concurrent workflow runs
- replication jobs are documents in the /_replicator database
- HTTP failures are classified into TransientError / PermanentError
"""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from pyrelay.core.errors import (
    CONFLICT,
    INVALID,
    NOT_FOUND,
    UNAUTHORIZED,
    UNKNOWN,
    PermanentError,
    TransientError,
)
from pyrelay.rpc.base import (
    Ack,
    DatabaseClient,
    DocRef,
    Handle,
    JobRef,
    ReplicationStatus,
    job_id_of,
)

if TYPE_CHECKING:
    from pyrelay.config import RelayConfig

logger = logging.getLogger(__name__)

REPLICATOR_DB = "_replicator"

# HTTP status → PermanentError kind. Everything 5xx (and 429) is transient.
_PERMANENT_KINDS = {
    400: INVALID,
    401: UNAUTHORIZED,
    403: UNAUTHORIZED,
    404: NOT_FOUND,
    409: CONFLICT,
    412: CONFLICT,  # PUT /{db} on an existing database answers file_exists
}


class CouchClient(DatabaseClient):
    """CouchDB-backed database client.

    Usage:
        async with CouchClient("http://localhost:5984", auth=("admin", "secret")) as client:
            await client.create_resource("source")
            job = await client.start_replication("source", "target")
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5984",
        *,
        auth: tuple[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client (no request is made until the first operation).

        Args:
            base_url: Server root URL
            auth: Optional (username, password) for basic authentication
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
            client: Optional preconfigured httpx.AsyncClient (not closed by close())
        """
        self.base_url = base_url.rstrip("/")
        self._auth = auth
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            auth=auth,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_config(cls, config: RelayConfig, **kwargs: Any) -> CouchClient:
        """Build a client from a RelayConfig."""
        return cls(
            config.couch_url,
            auth=config.credentials,
            timeout=config.request_timeout,
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"CouchClient({self.base_url})"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ========================================================================
    # Databases
    # ========================================================================

    async def create_resource(self, name: str) -> Handle:
        body = await self._request("PUT", _db_path(name))
        return Handle(name=name, ok=bool(body.get("ok", False)))

    async def delete_resource(self, name: str) -> Ack:
        body = await self._request("DELETE", _db_path(name))
        return Ack(ok=bool(body.get("ok", False)))

    # ========================================================================
    # Replication
    # ========================================================================

    async def start_replication(
        self,
        source: str,
        target: str,
        *,
        continuous: bool = True,
        create_target: bool = False,
    ) -> JobRef:
        doc = {
            "source": self._endpoint(source),
            "target": self._endpoint(target),
            "continuous": continuous,
            "create_target": create_target,
        }
        body = await self._request("POST", _db_path(REPLICATOR_DB), json=doc)
        job = JobRef(id=body["id"], rev=body["rev"])
        logger.debug(f"Started replication {source} -> {target}: {job.id}")
        return job

    async def stop_replication(self, job: JobRef) -> Ack:
        body = await self._request(
            "DELETE", _doc_path(REPLICATOR_DB, job.id), params={"rev": job.rev}
        )
        return Ack(ok=bool(body.get("ok", False)))

    async def get_replication_status(self, job: JobRef | str) -> ReplicationStatus:
        doc_id = job_id_of(job)
        doc = await self._request("GET", _doc_path(REPLICATOR_DB, doc_id))
        state = doc.get("_replication_state")
        replication_id = doc.get("_replication_id")

        if state is None:
            # Newer servers keep job state in the scheduler, not the document
            try:
                scheduled = await self._request(
                    "GET", f"/_scheduler/docs/{REPLICATOR_DB}/{quote(doc_id, safe='')}"
                )
            except PermanentError as e:
                if not e.is_not_found:
                    raise
                logger.debug(f"No scheduler entry for replication {doc_id} yet")
            else:
                state = scheduled.get("state")
                replication_id = scheduled.get("id") or replication_id

        return ReplicationStatus(
            id=doc.get("_id", doc_id),
            rev=doc["_rev"],
            state=state,
            job_id=replication_id,
            source=_endpoint_name(doc.get("source")),
            target=_endpoint_name(doc.get("target")),
            raw=doc,
        )

    # ========================================================================
    # Documents
    # ========================================================================

    async def put_document(self, doc: dict[str, Any], location: str) -> DocRef:
        if "_id" in doc:
            body = await self._request("PUT", _doc_path(location, doc["_id"]), json=doc)
        else:
            body = await self._request("POST", _db_path(location), json=doc)
        return DocRef(id=body["id"], rev=body["rev"])

    async def get_document(self, doc_id: str, location: str) -> dict[str, Any]:
        return await self._request("GET", _doc_path(location, doc_id))

    # ========================================================================
    # HTTP plumbing
    # ========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            raise TransientError(f"{method} {path} timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise _classify_response(method, path, response)

        if not response.content:
            return {}
        return response.json()

    def _endpoint(self, name: str) -> str | dict[str, Any]:
        """Replication endpoint for a database name or URL.

        Local names are expanded to full URLs; credentials travel in a
        header rather than in the URL.
        """
        if name.startswith(("http://", "https://")):
            return name
        url = f"{self.base_url}{_db_path(name)}"
        if self._auth is None:
            return url
        token = base64.b64encode(f"{self._auth[0]}:{self._auth[1]}".encode()).decode("ascii")
        return {"url": url, "headers": {"Authorization": f"Basic {token}"}}


def _db_path(name: str) -> str:
    return f"/{quote(name, safe='')}"


def _doc_path(db: str, doc_id: str) -> str:
    return f"{_db_path(db)}/{quote(doc_id, safe='')}"


def _endpoint_name(endpoint: Any) -> str | None:
    if isinstance(endpoint, dict):
        return endpoint.get("url")
    return endpoint


def _classify_response(method: str, path: str, response: httpx.Response) -> Exception:
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    reason = body.get("reason") or body.get("error") or response.reason_phrase
    message = f"{method} {path} -> {status}: {reason}"

    if status == 429 or status >= 500:
        return TransientError(message, status=status)
    return PermanentError(message, kind=_PERMANENT_KINDS.get(status, UNKNOWN), status=status)
