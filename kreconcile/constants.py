"""
Shared module to hold constant values for the library
"""

# Default namespace if none given
DEFAULT_NAMESPACE = "default"

# Annotation written by kubectl apply. It must never be diffed or sent back
LAST_APPLIED_CONFIG_ANNOTATION = "kubectl.kubernetes.io/last-applied-configuration"

# Metadata fields owned by the server which change on every write
SERVER_MANAGED_METADATA = [
    "resourceVersion",
    "generation",
    "managedFields",
    "uid",
    "creationTimestamp",
    "selfLink",
]

# Propagation policy requested for every delete
DELETE_PROPAGATION_POLICY = "Background"

# Kinds with a known schema-definition role. These are always patched with a
# generic JSON merge patch.
SCHEMA_DEFINITION_KINDS = ["CustomResourceDefinition"]

# Hook annotations
HOOK_ANNOTATION = "helm.sh/hook"
HOOK_WEIGHT_ANNOTATION = "helm.sh/hook-weight"
HOOK_DELETE_ANNOTATION = "helm.sh/hook-delete-policy"

