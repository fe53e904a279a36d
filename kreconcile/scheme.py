"""
The Scheme converts declared objects into the typed, versioned models of the
kubernetes client. Whether an object converts decides which patch format can
be used for it.
"""

# Standard
from typing import Any, Dict, Optional, Tuple
import inspect
import json

# Third Party
from kubernetes import client

# First Party
import alog

# Local
from . import constants
from .exceptions import ConversionError, NotRegisteredError
from .resource import ResourceHandle

log = alog.use_channel("SCHEM")

# API groups whose kinds are served by the typed kubernetes client models
BUILTIN_API_GROUPS = frozenset(
    [
        "",
        "admissionregistration.k8s.io",
        "apiextensions.k8s.io",
        "apiregistration.k8s.io",
        "apps",
        "autoscaling",
        "batch",
        "certificates.k8s.io",
        "coordination.k8s.io",
        "discovery.k8s.io",
        "events.k8s.io",
        "networking.k8s.io",
        "node.k8s.io",
        "policy",
        "rbac.authorization.k8s.io",
        "scheduling.k8s.io",
        "storage.k8s.io",
    ]
)

# Model value used to register a kind that has no schema
UNSTRUCTURED = None

# Content type of the text handed to the client deserializer
JSON_CONTENT_TYPE = "application/json"


class _JsonPayload:  # pylint: disable=too-few-public-methods
    """Minimal response shape accepted by ApiClient.deserialize on clients
    that read the response object
    """

    def __init__(self, content: dict):
        self.data = json.dumps(content)


class Scheme:
    """Registry of the kinds that can be converted to a versioned model"""

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        self._api_client = api_client
        self._registered: Dict[Tuple[str, str], Optional[str]] = {}

    @property
    def api_client(self):
        """Lazy property access to the client used for deserialization"""
        if self._api_client is None:
            self._api_client = client.ApiClient()
        return self._api_client

    def register(
        self,
        api_version: str,
        kind: str,
        model: Optional[str] = UNSTRUCTURED,
    ):
        """Register a kind with the scheme

        Args:
            api_version:  str
                The apiVersion of the kind
            kind:  str
                The kind to register
            model:  Optional[str]
                The name of the kubernetes.client model class to convert to.
                If None, the kind is registered as schemaless and converts to
                its plain dict form.
        """
        log.debug2("Registering [%s/%s] as %s", api_version, kind, model)
        self._registered[(api_version, kind)] = model

    def model_name(self, api_version: str, kind: str) -> Optional[str]:
        """Get the name of the model class for the given kind

        Raises:
            NotRegisteredError if the kind is not known to the scheme
        """
        key = (api_version, kind)
        if key in self._registered:
            return self._registered[key]

        group, _, version = api_version.rpartition("/")
        if group in BUILTIN_API_GROUPS:
            name = version[:1].upper() + version[1:] + kind
            if hasattr(client.models, name):
                return name

        raise NotRegisteredError(
            f"no kind {kind!r} is registered for version {api_version!r}"
        )

    def convert_to_version(self, handle: ResourceHandle) -> Any:
        """Convert the handle's object to its versioned form

        Returns:
            versioned:  Any
                The typed model instance, or the plain dict for kinds
                registered as schemaless

        Raises:
            NotRegisteredError if the kind is unknown
            ConversionError if the object does not fit its model
        """
        model = self.model_name(handle.api_version, handle.kind)
        if model is UNSTRUCTURED:
            log.debug3("Kind [%s] is schemaless", handle.kind)
            return handle.object

        log.debug3("Converting %s to %s", handle, model)
        try:
            return self._deserialize(handle.object, model)
        except (ValueError, TypeError, client.exceptions.ApiException) as err:
            raise ConversionError(
                f"failed to convert {handle} to {model}: {err}"
            ) from err

    ## Implementation Details ##################################################

    def _deserialize(self, content: dict, model: str) -> Any:
        """Newer clients take the response text and its content type. Older
        clients take a response object holding the text in its data attribute.
        """
        deserialize = self.api_client.deserialize
        if "content_type" in inspect.signature(deserialize).parameters:
            return deserialize(json.dumps(content), model, JSON_CONTENT_TYPE)
        return deserialize(_JsonPayload(content), model)


def is_unstructured(versioned: Any) -> bool:
    """A converted object is unstructured when no model holds it"""
    return isinstance(versioned, dict)


def is_schema_definition(versioned: Any) -> bool:
    """Schema definition objects (CRDs) do not support strategic merge"""
    return getattr(versioned, "kind", None) in constants.SCHEMA_DEFINITION_KINDS
