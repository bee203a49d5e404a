"""Kubernetes-backed resource store for ``jenkins.io/v1`` custom resources.

The store reads Workflows, PipelineActivities and Environments, opens watch
streams for the informers, and performs the single write the controller
needs: creating a promotion target namespace when it does not exist yet.

Authentication follows the usual order:
    1. Explicit kubeconfig path from config
    2. In-cluster configuration
    3. Default kubeconfig (~/.kube/config)

Example:
    >>> from promoflow.config import ControllerConfig
    >>> store = KubernetesResourceStore(ControllerConfig(namespace="jx"))
    >>> store.startup()
    >>> [w.name for w in store.list_workflows("jx")]
    ['default', 'hotfix']
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from promoflow.config import ControllerConfig
from promoflow.errors import ResourceStoreError
from promoflow.models import (
    Environment,
    PipelineActivity,
    Workflow,
    sort_environments,
)

logger = structlog.get_logger(__name__)

GROUP = "jenkins.io"
VERSION = "v1"

SERVICE_ACCOUNT_NAMESPACE_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")
DEFAULT_NAMESPACE = "default"

ModelT = TypeVar("ModelT", bound=BaseModel)


class ResourceKind(str, Enum):
    """Custom resource plurals watched or read by the controller."""

    WORKFLOW = "workflows"
    ACTIVITY = "pipelineactivities"
    ENVIRONMENT = "environments"


class WatchEventType(str, Enum):
    """Event types delivered by a watch stream or synthesized by a relist."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"
    BOOKMARK = "BOOKMARK"


@dataclass(frozen=True)
class WatchEvent:
    """One event of a watch stream.

    Attributes:
        type: Event type.
        object: Raw object. For ERROR events this is a Status with ``code``.
    """

    type: WatchEventType
    object: dict[str, Any] = field(default_factory=dict)

    @property
    def resource_version(self) -> str:
        metadata = self.object.get("metadata") or {}
        return str(metadata.get("resourceVersion") or "")

    @property
    def name(self) -> str:
        metadata = self.object.get("metadata") or {}
        return str(metadata.get("name") or "")


def object_name(obj: Mapping[str, Any]) -> str:
    """Return ``metadata.name`` of a raw object, or ""."""
    metadata = obj.get("metadata") or {}
    return str(metadata.get("name") or "")


class ResourceStore(Protocol):
    """Read access to the controller's custom resources."""

    def list_workflows(self, namespace: str) -> list[Workflow]: ...

    def list_activities(self, namespace: str) -> list[PipelineActivity]: ...

    def get_activity(self, namespace: str, name: str) -> PipelineActivity | None: ...

    def list_environments(self, namespace: str) -> list[Environment]: ...

    def get_environment(self, namespace: str, name: str) -> Environment | None: ...

    def ensure_namespace(self, name: str) -> None: ...

    def current_namespace(self) -> str: ...

    def list_raw(
        self, kind: ResourceKind, namespace: str
    ) -> tuple[list[dict[str, Any]], str]: ...

    def watch(
        self,
        kind: ResourceKind,
        namespace: str,
        resource_version: str,
        timeout_seconds: int,
    ) -> Iterator[WatchEvent]: ...


def _describe_error(e: Exception) -> str:
    """Describe a Kubernetes API failure without its response body."""
    status = getattr(e, "status", None)
    reason = getattr(e, "reason", None)
    if status is not None and reason is not None:
        return f"{reason} (HTTP {status})"
    if reason is not None:
        return str(reason)
    return f"{type(e).__name__}: {e}"


class KubernetesResourceStore:
    """Resource store talking to the Kubernetes API.

    Attributes:
        config: Controller configuration (kubeconfig and namespace).
    """

    def __init__(self, config: ControllerConfig | None = None) -> None:
        """Initialize the store. Call ``startup()`` before use.

        Args:
            config: Controller configuration. Uses defaults if None.
        """
        self.config = config or ControllerConfig()
        self._client: Any = None
        self._custom_api: Any = None
        self._core_api: Any = None
        self._watch_factory: Callable[[], Any] | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def startup(self) -> None:
        """Initialize the Kubernetes client.

        Raises:
            ResourceStoreError: If the client configuration cannot be loaded.
        """
        try:
            from kubernetes import client, watch
            from kubernetes import config as k8s_config

            if self.config.kubeconfig_path:
                k8s_config.load_kube_config(
                    config_file=self.config.kubeconfig_path,
                    context=self.config.context,
                )
                logger.info(
                    "kubeconfig_loaded",
                    kubeconfig_path=self.config.kubeconfig_path,
                    context=self.config.context,
                )
            else:
                try:
                    k8s_config.load_incluster_config()
                    logger.info("incluster_config_loaded")
                except k8s_config.ConfigException:
                    k8s_config.load_kube_config(context=self.config.context)
                    logger.info("default_kubeconfig_loaded", context=self.config.context)

            self._client = client
            self._custom_api = client.CustomObjectsApi()
            self._core_api = client.CoreV1Api()
            self._watch_factory = watch.Watch

        except Exception as e:
            logger.exception("kubernetes_client_init_failed")
            raise ResourceStoreError(operation="startup", reason=str(e)) from e

    def shutdown(self) -> None:
        """Drop the API clients."""
        self._client = None
        self._custom_api = None
        self._core_api = None
        self._watch_factory = None

    def _ensure_initialized(self) -> None:
        if self._custom_api is None:
            raise ResourceStoreError(reason="store not initialized - call startup() first")

    def _is_api_exception(self, e: Exception) -> bool:
        return isinstance(e, self._client.rest.ApiException)

    # =========================================================================
    # Namespaces
    # =========================================================================

    def current_namespace(self) -> str:
        """Namespace the controller operates in.

        Resolution order: configured namespace, the service account
        namespace when running in-cluster, the active kubeconfig context's
        namespace, then ``default``.
        """
        if self.config.namespace:
            return self.config.namespace

        if SERVICE_ACCOUNT_NAMESPACE_FILE.is_file():
            namespace = SERVICE_ACCOUNT_NAMESPACE_FILE.read_text().strip()
            if namespace:
                return namespace

        try:
            from kubernetes import config as k8s_config

            _, active = k8s_config.list_kube_config_contexts(
                config_file=self.config.kubeconfig_path
            )
        except Exception as e:
            logger.debug("kubeconfig_context_unavailable", error=str(e))
            return DEFAULT_NAMESPACE

        context = (active or {}).get("context") or {}
        return context.get("namespace") or DEFAULT_NAMESPACE

    def ensure_namespace(self, name: str) -> None:
        """Create namespace ``name`` unless it already exists.

        Raises:
            ResourceStoreError: If the namespace cannot be read or created.
        """
        self._ensure_initialized()
        try:
            self._core_api.read_namespace(name=name)
            return
        except Exception as e:
            if not (self._is_api_exception(e) and e.status == 404):
                raise ResourceStoreError(
                    operation="ensure_namespace", reason=_describe_error(e)
                ) from e

        body = self._client.V1Namespace(metadata=self._client.V1ObjectMeta(name=name))
        try:
            self._core_api.create_namespace(body=body)
        except Exception as e:
            # Created concurrently by someone else
            if self._is_api_exception(e) and e.status == 409:
                return
            raise ResourceStoreError(
                operation="ensure_namespace", reason=_describe_error(e)
            ) from e
        logger.info("namespace_created", namespace=name)

    # =========================================================================
    # Raw access
    # =========================================================================

    def list_raw(
        self, kind: ResourceKind, namespace: str
    ) -> tuple[list[dict[str, Any]], str]:
        """List raw objects of ``kind``, sorted by name.

        Returns:
            The objects and the list's resourceVersion, usable to start a watch.

        Raises:
            ResourceStoreError: If the list call fails.
        """
        self._ensure_initialized()
        try:
            response = self._custom_api.list_namespaced_custom_object(
                GROUP, VERSION, namespace, kind.value
            )
        except Exception as e:
            raise ResourceStoreError(
                operation=f"list {kind.value}", reason=_describe_error(e)
            ) from e

        items = sorted(response.get("items") or [], key=object_name)
        resource_version = str((response.get("metadata") or {}).get("resourceVersion") or "")
        return items, resource_version

    def get_raw(self, kind: ResourceKind, namespace: str, name: str) -> dict[str, Any] | None:
        """Read one raw object, or None if it does not exist.

        Raises:
            ResourceStoreError: If the read fails for any reason but 404.
        """
        self._ensure_initialized()
        try:
            return self._custom_api.get_namespaced_custom_object(
                GROUP, VERSION, namespace, kind.value, name
            )
        except Exception as e:
            if self._is_api_exception(e) and e.status == 404:
                return None
            raise ResourceStoreError(
                operation=f"get {kind.value}/{name}", reason=_describe_error(e)
            ) from e

    def watch(
        self,
        kind: ResourceKind,
        namespace: str,
        resource_version: str,
        timeout_seconds: int,
    ) -> Iterator[WatchEvent]:
        """Stream change events of ``kind`` starting after ``resource_version``.

        The stream ends when the server closes it after ``timeout_seconds``.
        A server-side watch error is delivered as a single ERROR event whose
        object carries the HTTP ``code``, and ends the stream.

        Raises:
            ResourceStoreError: If the stream fails for any other reason
                (connection reset, read timeout).
        """
        self._ensure_initialized()
        assert self._watch_factory is not None
        w = self._watch_factory()
        try:
            stream = w.stream(
                self._custom_api.list_namespaced_custom_object,
                GROUP,
                VERSION,
                namespace,
                kind.value,
                resource_version=resource_version,
                timeout_seconds=timeout_seconds,
            )
            for event in stream:
                event_type = WatchEventType(event["type"])
                obj = event.get("object") or event.get("raw_object") or {}
                yield WatchEvent(type=event_type, object=obj)
                if event_type is WatchEventType.ERROR:
                    return
        except Exception as e:
            if not self._is_api_exception(e):
                raise ResourceStoreError(
                    operation=f"watch {kind.value}", reason=_describe_error(e)
                ) from e
            yield WatchEvent(
                type=WatchEventType.ERROR,
                object={"code": e.status, "message": str(e.reason)},
            )
        finally:
            w.stop()

    # =========================================================================
    # Typed access
    # =========================================================================

    def _parse(
        self,
        kind: ResourceKind,
        items: list[dict[str, Any]],
        parse: Callable[[dict[str, Any]], ModelT],
    ) -> list[ModelT]:
        parsed: list[ModelT] = []
        for item in items:
            try:
                parsed.append(parse(item))
            except ValidationError as e:
                logger.warning(
                    "resource_invalid",
                    kind=kind.value,
                    name=object_name(item),
                    error=str(e),
                )
        return parsed

    def list_workflows(self, namespace: str) -> list[Workflow]:
        """List Workflows sorted by name. Invalid objects are skipped."""
        items, _ = self.list_raw(ResourceKind.WORKFLOW, namespace)
        return self._parse(ResourceKind.WORKFLOW, items, Workflow.from_resource)

    def list_activities(self, namespace: str) -> list[PipelineActivity]:
        """List PipelineActivities sorted by name. Invalid objects are skipped."""
        items, _ = self.list_raw(ResourceKind.ACTIVITY, namespace)
        return self._parse(ResourceKind.ACTIVITY, items, PipelineActivity.from_resource)

    def get_activity(self, namespace: str, name: str) -> PipelineActivity | None:
        obj = self.get_raw(ResourceKind.ACTIVITY, namespace, name)
        if obj is None:
            return None
        return PipelineActivity.from_resource(obj)

    def list_environments(self, namespace: str) -> list[Environment]:
        """List Environments sorted by ``(order, name)``."""
        items, _ = self.list_raw(ResourceKind.ENVIRONMENT, namespace)
        environments = self._parse(ResourceKind.ENVIRONMENT, items, Environment.from_resource)
        return sort_environments(environments)

    def get_environment(self, namespace: str, name: str) -> Environment | None:
        obj = self.get_raw(ResourceKind.ENVIRONMENT, namespace, name)
        if obj is None:
            return None
        return Environment.from_resource(obj)


__all__ = [
    "GROUP",
    "VERSION",
    "KubernetesResourceStore",
    "ResourceKind",
    "ResourceStore",
    "WatchEvent",
    "WatchEventType",
    "object_name",
]
