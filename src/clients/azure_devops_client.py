"""Azure DevOps / TFS REST client for the work item import.

Implements the ``WorkItemClient`` protocol on top of the Work Item Tracking REST
API. Work items are written with ``bypassRules=true`` so historic authors and
dates from the source tracker are preserved.
"""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlsplit

import requests

from src import config
from src.clients.exceptions import (
    ApiError,
    AuthenticationError,
    ClientConnectionError,
    FileAttachmentError,
    RecordNotFoundError,
)
from src.clients.work_item_client import ClassificationNode, TreeStructureGroup
from src.models.migration_error import AbortMigrationError
from src.models.revision import Identity
from src.models.work_item import Attachment, LinkType, LinkTypeEnd, RelatedLink, WorkItem
from src.settings import ImportSettings

logger = config.logger

HTTP_BAD_REQUEST_MIN = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409

ATTACHED_FILE = "AttachedFile"
CLASSIFICATION_DEPTH = 100
JSON_PATCH = "application/json-patch+json"


def _serialize_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Identity):
        return str(value)
    return value


def _id_from_url(url: str) -> str:
    """Last path segment of a resource URL; attachment URLs carry a ``fileName`` query."""
    return urlsplit(url).path.rstrip("/").rsplit("/", 1)[-1]


class AzureDevOpsClient:
    """REST client for one destination project."""

    def __init__(
        self,
        settings: ImportSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Import settings (default: ``config.settings``)
            session: Preconfigured HTTP session, mainly for tests

        """
        self.settings = settings or config.settings
        self.base_url = self.settings.account.rstrip("/")
        self.project = self.settings.project
        self.api_version = self.settings.api_version
        self.timeout = self.settings.request_timeout

        self.session = session or requests.Session()
        self.session.auth = ("", self.settings.pat)
        self.session.verify = self.settings.ssl_verify

        self._link_types: list[LinkType] | None = None
        self._link_ends: dict[str, LinkTypeEnd] = {}
        self._type_fields: dict[str, frozenset[str]] = {}

    # ----- transport -----

    def _url(self, path: str, *, project_scoped: bool) -> str:
        if project_scoped:
            return f"{self.base_url}/{quote(self.project)}/_apis/{path}"
        return f"{self.base_url}/_apis/{path}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        project_scoped: bool = False,
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Send a request and return the decoded JSON body (or None).

        Raises:
            ClientConnectionError: If the destination cannot be reached
            AuthenticationError: For 401/403 responses
            RecordNotFoundError: For 404 responses
            ApiError: For any other error response

        """
        url = self._url(path, project_scoped=project_scoped)
        query = {"api-version": self.api_version, **(params or {})}
        try:
            response = self.session.request(method, url, params=query, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            msg = f"Cannot reach {self.base_url}: {e}"
            raise ClientConnectionError(msg) from e

        self._check_response(response)
        if not response.content:
            return None
        return response.json()

    def _check_response(self, response: requests.Response) -> None:
        if response.status_code < HTTP_BAD_REQUEST_MIN:
            return

        error_msg = f"HTTP Error {response.status_code}: {response.reason}"
        try:
            error_json = response.json()
            if isinstance(error_json, dict) and "message" in error_json:
                error_msg = f"{error_msg} - {error_json['message']}"
        except ValueError:
            logger.debug("Error response without JSON body: %s", response.text[:200])

        if response.status_code == HTTP_NOT_FOUND:
            raise RecordNotFoundError(error_msg)
        if response.status_code in {HTTP_UNAUTHORIZED, HTTP_FORBIDDEN}:
            raise AuthenticationError(error_msg)
        raise ApiError(error_msg, status_code=response.status_code)

    # ----- projects -----

    def get_project(self) -> dict[str, Any] | None:
        try:
            return self._request("GET", f"projects/{quote(self.project)}")
        except RecordNotFoundError:
            return None

    def _get_process_id(self, process_name: str) -> str:
        payload = self._request("GET", "process/processes")
        for process in payload.get("value", []):
            if process.get("name", "").lower() == process_name.lower():
                return process["id"]
        msg = f"Process template '{process_name}' does not exist"
        raise RecordNotFoundError(msg)

    def create_project(self, description: str = "") -> bool:
        """Queue project creation and wait for it to finish.

        Returns:
            True when the project was created within ``operation_max_wait``

        """
        body = {
            "name": self.project,
            "description": description,
            "capabilities": {
                "versioncontrol": {"sourceControlType": "Git"},
                "processTemplate": {"templateTypeId": self._get_process_id(self.settings.process_template)},
            },
        }
        operation = self._request("POST", "projects", json=body)
        logger.info("Queued creation of project '%s' (%s)", self.project, self.settings.process_template)
        return self.wait_for_operation(operation["id"])

    def wait_for_operation(self, operation_id: str) -> bool:
        """Poll a long-running operation until it finishes or the wait limit is reached."""
        interval = self.settings.operation_poll_interval
        max_wait = self.settings.operation_max_wait
        started = time.monotonic()

        while True:
            operation = self._request("GET", f"operations/{operation_id}")
            status = str(operation.get("status", "")).lower()
            if status == "succeeded":
                return True
            if status in {"failed", "cancelled"}:
                logger.error("Operation %s %s: %s", operation_id, status, operation.get("resultMessage", ""))
                return False

            if time.monotonic() - started + interval > max_wait:
                logger.error("Operation %s did not finish within %.0f seconds", operation_id, max_wait)
                return False
            time.sleep(interval)

    def get_or_create_project(self) -> dict[str, Any] | None:
        """Return the destination project, creating it after confirmation if missing."""
        project = self.get_project()
        if project is not None:
            logger.info("Using project '%s'", self.project)
            return project

        if not self.settings.no_confirm:
            answer = input(f"\nProject '{self.project}' does not exist. Create it? [Y/n]: ").strip().lower()
            if answer and answer not in ("y", "yes"):
                logger.warning("Project creation declined by user")
                return None

        if not self.create_project():
            logger.error("Project '%s' could not be created", self.project)
            return None

        logger.success("Created project '%s'", self.project)
        return self.get_project()

    # ----- metadata -----

    def get_link_types(self) -> list[LinkType]:
        if self._link_types is not None:
            return self._link_types

        payload = self._request("GET", "wit/workitemrelationtypes")
        directional: dict[str, dict[str, Any]] = {}
        link_types: list[LinkType] = []

        for relation in payload.get("value", []):
            attributes = relation.get("attributes", {})
            if attributes.get("usage") != "workItemLink" or not attributes.get("enabled", True):
                continue

            reference_name: str = relation["referenceName"]
            if not attributes.get("directional"):
                link_types.append(LinkType.non_directional(reference_name, relation["name"]))
                continue

            base_name, _, token = reference_name.rpartition("-")
            entry = directional.setdefault(base_name, {"topology": attributes.get("topology", "")})
            entry[token] = relation["name"]

        for base_name, entry in directional.items():
            link_types.append(
                LinkType.directional(
                    base_name,
                    entry.get("Forward", base_name),
                    entry.get("Reverse", base_name),
                    non_circular=entry["topology"] in {"tree", "dependency"},
                ),
            )

        self._link_types = link_types
        self._link_ends = {}
        for link_type in link_types:
            self._link_ends[link_type.forward_end.immutable_name] = link_type.forward_end
            self._link_ends[link_type.reverse_end.immutable_name] = link_type.reverse_end
        return link_types

    def _get_type_fields(self, type_name: str) -> frozenset[str]:
        if type_name not in self._type_fields:
            payload = self._request("GET", f"wit/workitemtypes/{quote(type_name)}/fields", project_scoped=True)
            self._type_fields[type_name] = frozenset(f["referenceName"] for f in payload.get("value", []))
        return self._type_fields[type_name]

    def refresh_metadata(self) -> None:
        self._type_fields.clear()
        logger.debug("Cleared cached work item type metadata")

    # ----- classification nodes -----

    def get_classification_tree(self, group: TreeStructureGroup) -> ClassificationNode:
        payload = self._request(
            "GET",
            f"wit/classificationnodes/{group.value}",
            project_scoped=True,
            params={"$depth": CLASSIFICATION_DEPTH},
        )
        root = ClassificationNode(payload["id"], payload["name"])
        stack = [(root, payload)]
        while stack:
            node, data = stack.pop()
            for child_data in data.get("children", []):
                child = ClassificationNode(child_data["id"], child_data["name"])
                node.children.append(child)
                stack.append((child, child_data))
        return root

    def create_classification_node(
        self,
        group: TreeStructureGroup,
        name: str,
        parent_path: str,
    ) -> ClassificationNode:
        path = f"wit/classificationnodes/{group.value}"
        if parent_path:
            path = f"{path}/{quote(parent_path)}"

        try:
            payload = self._request("POST", path, project_scoped=True, json={"name": name})
        except ApiError as e:
            if e.status_code != HTTP_CONFLICT:
                raise
            logger.debug("%s '%s' already exists under '%s'", group.label, name, parent_path)
            payload = self._request("GET", f"{path}/{quote(name)}", project_scoped=True)

        return ClassificationNode(payload["id"], payload["name"])

    # ----- work items -----

    def create_work_item(self, type_name: str) -> WorkItem:
        return WorkItem(
            type_name=type_name,
            project=self.project,
            known_fields=self._get_type_fields(type_name),
        )

    def get_work_item(self, wi_id: int) -> WorkItem:
        payload = self._request("GET", f"wit/workitems/{wi_id}", params={"$expand": "relations"})
        return self._to_work_item(payload)

    def _to_work_item(self, payload: dict[str, Any]) -> WorkItem:
        fields = dict(payload.get("fields", {}))
        type_name = fields.get("System.WorkItemType", "")
        wi = WorkItem(
            type_name=type_name,
            project=fields.get("System.TeamProject", self.project),
            id=payload["id"],
            fields=fields,
            known_fields=self._get_type_fields(type_name) if type_name else None,
        )

        if not self._link_ends:
            self.get_link_types()

        for relation in payload.get("relations") or []:
            rel = relation.get("rel", "")
            attributes = relation.get("attributes", {})
            if rel == ATTACHED_FILE:
                wi.attachments.append(
                    Attachment(
                        file_path=attributes.get("name", ""),
                        comment=attributes.get("comment", ""),
                        id=_id_from_url(relation["url"]),
                        url=relation["url"],
                    ),
                )
            elif rel in self._link_ends:
                wi.links.append(RelatedLink(self._link_ends[rel], int(_id_from_url(relation["url"]))))

        wi.mark_saved()
        return wi

    def _upload_attachment(self, attachment: Attachment) -> None:
        path = Path(attachment.file_path)
        try:
            content = path.read_bytes()
            payload = self._request(
                "POST",
                "wit/attachments",
                project_scoped=True,
                params={"fileName": path.name},
                data=content,
                headers={"Content-Type": "application/octet-stream"},
            )
        except (OSError, ApiError, RecordNotFoundError) as e:
            msg = f"Attachment '{attachment.file_path}' was rejected: {e}"
            raise FileAttachmentError(msg, attachment) from e

        attachment.id = payload["id"]
        attachment.url = payload["url"]

    def _relation_indexes(self, wi_id: int) -> list[tuple[str, str]]:
        payload = self._request("GET", f"wit/workitems/{wi_id}", params={"$expand": "relations"})
        return [(r.get("rel", ""), r.get("url", "")) for r in payload.get("relations") or []]

    def _work_item_url(self, wi_id: int) -> str:
        return f"{self.base_url}/_apis/wit/workItems/{wi_id}"

    def build_patch(self, wi: WorkItem) -> list[dict[str, Any]]:
        """Build the JSON Patch document for the unsaved changes of ``wi``."""
        operations: list[dict[str, Any]] = []

        removed = [
            (link.end.immutable_name, self._work_item_url(link.related_work_item_id)) for link in wi.removed_links()
        ]
        removed += [(ATTACHED_FILE, att.url or "") for att in wi.removed_attachments()]
        if removed and wi.id is not None:
            current = [(rel, url.lower()) for rel, url in self._relation_indexes(wi.id)]
            indexes = set()
            for rel, url in removed:
                key = (rel, url.lower())
                if key in current:
                    indexes.add(current.index(key))
                else:
                    logger.warning("Relation %s -> %s not found on work item %s", rel, url, wi.id)
            operations.extend({"op": "remove", "path": f"/relations/{i}"} for i in sorted(indexes, reverse=True))

        for name, value in wi.changed_fields().items():
            operations.append({"op": "add", "path": f"/fields/{name}", "value": _serialize_value(value)})

        for link in wi.added_links():
            operations.append(
                {
                    "op": "add",
                    "path": "/relations/-",
                    "value": {"rel": link.end.immutable_name, "url": self._work_item_url(link.related_work_item_id)},
                },
            )

        for att in wi.added_attachments():
            operations.append(
                {
                    "op": "add",
                    "path": "/relations/-",
                    "value": {"rel": ATTACHED_FILE, "url": att.url, "attributes": {"comment": att.comment}},
                },
            )

        return operations

    def save_work_item(self, work_item: WorkItem) -> None:
        """Save the work item as one JSON Patch request.

        Raises:
            FileAttachmentError: If one attachment cannot be uploaded
            AbortMigrationError: If the destination rejects our credentials
            ClientError: For any other failure

        """
        for att in work_item.added_attachments():
            if att.url is None:
                self._upload_attachment(att)

        operations = self.build_patch(work_item)
        if not operations:
            logger.debug("Nothing to save for work item %s", work_item.id)
            return

        if work_item.id is None:
            method, path = "POST", f"wit/workitems/${quote(work_item.type_name)}"
        else:
            method, path = "PATCH", f"wit/workitems/{work_item.id}"

        try:
            payload = self._request(
                method,
                path,
                project_scoped=work_item.id is None,
                params={"bypassRules": "true"},
                json=operations,
                headers={"Content-Type": JSON_PATCH},
            )
        except AuthenticationError as e:
            msg = f"Destination refused to save work items: {e}"
            raise AbortMigrationError(msg) from e

        work_item.id = payload["id"]
        work_item.mark_saved()
        logger.debug("Saved work item %s (%d operations)", work_item.id, len(operations))
