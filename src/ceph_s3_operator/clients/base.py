"""Kubernetes client infrastructure.

``K8sClient`` is the object store used by every controller and webhook. It
wraps the dynamic client so that custom resources and core kinds are read and
written the same way, as plain dictionaries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from kubernetes import config as k8s_config
from kubernetes.client import ApiClient
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ConflictError as DynamicConflictError
from kubernetes.dynamic.exceptions import DynamicApiError
from kubernetes.dynamic.exceptions import NotFoundError as DynamicNotFoundError

from ceph_s3_operator.utils.errors import (
    ConflictError,
    NotFoundError,
    ResourceExistsError,
    S3OperatorError,
    is_conflict,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CRDDefinition:
    """Identifies a Kubernetes resource type."""

    group: str
    version: str
    plural: str
    kind: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        """Return the apiVersion string, e.g. ``s3.snappcloud.io/v1alpha1``."""
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"


def _meta(body: dict[str, Any]) -> dict[str, Any]:
    return body.get("metadata") or {}


def _api_error(operation: str, crd: CRDDefinition, error: DynamicApiError) -> S3OperatorError:
    return S3OperatorError(
        f"Failed to {operation} {crd.kind}: {error.summary()}",
        {"kind": crd.kind, "status": error.status},
    )


class K8sClient:
    """Object store backed by the Kubernetes API server.

    Reads go through the API server directly. ``list(..., consistent=True)``
    asks for a quorum read; otherwise the API server may answer from its
    watch cache, which is cheaper but can lag behind recent writes.
    """

    def __init__(self, api_client: ApiClient | None = None, request_timeout: float | None = None):
        self._api_client = api_client
        self._request_timeout = request_timeout
        self._dynamic: DynamicClient | None = None

    @classmethod
    def from_environment(cls, request_timeout: float | None = None) -> K8sClient:
        """Load in-cluster config when running in a pod, kubeconfig otherwise."""
        try:
            k8s_config.load_incluster_config()
            logger.info("K8s config loaded: in-cluster (ServiceAccount)")
        except k8s_config.ConfigException:
            k8s_config.load_kube_config()
            logger.info("K8s config loaded: kubeconfig")
        return cls(ApiClient(), request_timeout=request_timeout)

    @property
    def api_client(self) -> ApiClient:
        if self._api_client is None:
            self._api_client = ApiClient()
        return self._api_client

    def with_timeout(self, request_timeout: float) -> K8sClient:
        """Return a client sharing this connection with its own request timeout."""
        return K8sClient(self.api_client, request_timeout=request_timeout)

    @property
    def dynamic(self) -> DynamicClient:
        if self._dynamic is None:
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    def _resource(self, crd: CRDDefinition) -> Any:
        return self.dynamic.resources.get(api_version=crd.api_version, kind=crd.kind)

    def _kwargs(self, timeout: float | None) -> dict[str, Any]:
        timeout = timeout if timeout is not None else self._request_timeout
        return {"_request_timeout": timeout} if timeout is not None else {}

    def get(
        self,
        crd: CRDDefinition,
        name: str,
        namespace: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Get a single object.

        Raises:
            NotFoundError: If the object does not exist.
        """
        try:
            result = self._resource(crd).get(name=name, namespace=namespace, **self._kwargs(timeout))
        except DynamicNotFoundError as e:
            raise NotFoundError(crd.kind, name, namespace) from e
        except DynamicApiError as e:
            raise _api_error("get", crd, e) from e
        return result.to_dict()

    def list(
        self,
        crd: CRDDefinition,
        namespace: str | None = None,
        label_selector: str | None = None,
        consistent: bool = False,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """List objects, optionally filtered by namespace and labels."""
        kwargs = self._kwargs(timeout)
        if label_selector:
            kwargs["label_selector"] = label_selector
        if not consistent:
            kwargs["resource_version"] = "0"
        try:
            result = self._resource(crd).get(namespace=namespace, **kwargs)
        except DynamicApiError as e:
            raise _api_error("list", crd, e) from e
        return [item.to_dict() for item in result.items]

    def create(self, crd: CRDDefinition, body: dict[str, Any]) -> dict[str, Any]:
        """Create an object.

        Raises:
            ResourceExistsError: If an object with the same name exists.
        """
        meta = _meta(body)
        body = {"apiVersion": crd.api_version, "kind": crd.kind, **body}
        try:
            result = self._resource(crd).create(
                body=body, namespace=meta.get("namespace"), **self._kwargs(None)
            )
        except DynamicConflictError as e:
            raise ResourceExistsError(crd.kind, meta.get("name", ""), meta.get("namespace")) from e
        except DynamicApiError as e:
            raise _api_error("create", crd, e) from e
        return result.to_dict()

    def replace(self, crd: CRDDefinition, body: dict[str, Any]) -> dict[str, Any]:
        """Replace an object, guarded by its ``metadata.resourceVersion``.

        Raises:
            ConflictError: If the object changed since it was read.
            NotFoundError: If the object no longer exists.
        """
        return self._write(self._resource(crd), crd, body)

    def replace_status(self, crd: CRDDefinition, body: dict[str, Any]) -> dict[str, Any]:
        """Replace the status subresource of an object.

        Raises:
            ConflictError: If the object changed since it was read.
            NotFoundError: If the object no longer exists.
        """
        return self._write(self._resource(crd).status, crd, body)

    def _write(self, resource: Any, crd: CRDDefinition, body: dict[str, Any]) -> dict[str, Any]:
        meta = _meta(body)
        name = meta.get("name", "")
        namespace = meta.get("namespace")
        try:
            result = resource.replace(body=body, namespace=namespace, **self._kwargs(None))
        except DynamicNotFoundError as e:
            raise NotFoundError(crd.kind, name, namespace) from e
        except DynamicConflictError as e:
            raise ConflictError(crd.kind, name, namespace) from e
        except DynamicApiError as e:
            if is_conflict(e.summary()):
                raise ConflictError(crd.kind, name, namespace) from e
            raise _api_error("update", crd, e) from e
        return result.to_dict()

    def delete(self, crd: CRDDefinition, name: str, namespace: str | None = None) -> None:
        """Delete an object.

        Raises:
            NotFoundError: If the object does not exist.
        """
        try:
            self._resource(crd).delete(name=name, namespace=namespace, **self._kwargs(None))
        except DynamicNotFoundError as e:
            raise NotFoundError(crd.kind, name, namespace) from e
        except DynamicApiError as e:
            raise _api_error("delete", crd, e) from e
