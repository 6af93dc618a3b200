"""Layout store backed by a remote content API over HTTP.

The remote API serves layouts as the persisted document form
(``{id, type, groups}``) and fields as ``{id, name, handle, type}``:

    GET  /field-layouts/{id}
    PUT  /field-layouts/{id}
    GET  /fields
    GET  /fields/{id}
"""

from __future__ import annotations

import copy
import logging
import os
from typing import Dict, List

import httpx

from fieldlayout.elements import AttributeDescriptor, FieldDescriptor
from fieldlayout.errors import LayoutError, PersistenceError, field_not_found, layout_not_found
from fieldlayout.layout import Layout
from layout_store import DEFAULT_ATTRIBUTE_CATALOGS, check_unique_uids, lookup_attribute


logger = logging.getLogger("fieldlayout.store")


def _unavailable(exc: Exception, url: str) -> LayoutError:
    return LayoutError(
        code="CONTENT_STORE_ERROR",
        message="Content store request failed",
        detail={"url": url, "error": str(exc)},
    )


def _field_from_doc(doc: dict) -> FieldDescriptor:
    return FieldDescriptor(id=int(doc["id"]), name=doc.get("name") or "", handle=doc.get("handle") or "", type=doc.get("type") or "")


class HttpLayoutStore:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        attribute_catalogs: Dict[str, Dict[str, AttributeDescriptor]] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        base_url = (base_url or os.getenv("CONTENT_API_URL", "")).strip().rstrip("/")
        if not base_url:
            raise RuntimeError("CONTENT_API_URL is required when LAYOUT_STORE=http")
        token = token if token is not None else os.getenv("CONTENT_API_TOKEN", "").strip()
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout if timeout is not None else float(os.getenv("CONTENT_API_TIMEOUT", "30")),
            transport=transport,
        )
        self._catalogs = copy.deepcopy(attribute_catalogs if attribute_catalogs is not None else DEFAULT_ATTRIBUTE_CATALOGS)

    def close(self) -> None:
        self._client.close()

    def _get(self, path: str) -> httpx.Response:
        try:
            return self._client.get(path)
        except httpx.HTTPError as exc:
            logger.warning("content_api_error method=GET path=%s error=%s", path, exc)
            raise _unavailable(exc, path) from exc

    def find_field(self, field_id: int) -> FieldDescriptor | None:
        resp = self._get(f"/fields/{field_id}")
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise _unavailable(RuntimeError(f"status {resp.status_code}"), f"/fields/{field_id}")
        return _field_from_doc(resp.json())

    def resolve_field(self, field_id: int) -> FieldDescriptor:
        descriptor = self.find_field(field_id)
        if descriptor is None:
            raise field_not_found(field_id)
        return descriptor

    def list_fields(self) -> List[FieldDescriptor]:
        resp = self._get("/fields")
        if resp.status_code >= 400:
            raise _unavailable(RuntimeError(f"status {resp.status_code}"), "/fields")
        return [_field_from_doc(doc) for doc in resp.json()]

    def resolve_attribute(self, layout_type: str, name: str) -> AttributeDescriptor:
        return lookup_attribute(self._catalogs, layout_type, name)

    def load_layout(self, layout_id: int) -> Layout:
        path = f"/field-layouts/{layout_id}"
        resp = self._get(path)
        if resp.status_code == 404:
            raise layout_not_found(layout_id)
        if resp.status_code >= 400:
            raise _unavailable(RuntimeError(f"status {resp.status_code}"), path)
        return Layout.from_dict(resp.json())

    def persist_layout(self, layout: Layout, actor: dict | None = None, reason: str = "reconcile") -> Layout:
        check_unique_uids(layout)
        path = f"/field-layouts/{layout.id}"
        try:
            resp = self._client.put(path, json=layout.to_dict())
        except httpx.HTTPError as exc:
            logger.warning("content_api_error method=PUT path=%s error=%s", path, exc)
            raise PersistenceError(detail={"fieldLayoutId": layout.id, "error": str(exc)}) from exc
        if resp.status_code == 404:
            raise layout_not_found(layout.id)
        if resp.status_code >= 400:
            raise PersistenceError(detail={"fieldLayoutId": layout.id, "status": resp.status_code, "body": resp.text[:500]})
        logger.info("layout_persisted layout_id=%s via=http", layout.id)
        return Layout.from_dict(resp.json())
