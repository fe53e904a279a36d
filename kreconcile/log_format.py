"""
Custom logging formats that contain more detailed kreconcile logs
"""

# First Party
from alog import AlogJsonFormatter


class KReconcileJsonFormatter(AlogJsonFormatter):
    """Custom Log Format that extends AlogJsonFormatter to add the identifiers
    of the resource being reconciled and thread information to the json. The
    resource is taken from the "resource" attribute of the record (passed with
    extra={"resource": ...}) or from the manifest given at construction.
    """

    _FIELDS_TO_PRINT = AlogJsonFormatter._FIELDS_TO_PRINT + [
        "process",
        "thread",
        "threadName",
        "kind",
        "apiVersion",
        "resourceVersion",
        "resourceName",
        "namespace",
    ]

    def __init__(self, manifest=None):
        super().__init__()
        self.manifest = manifest

    def format(self, record):
        if resource := getattr(record, "resource", self.manifest):
            record.kind = resource.get("kind")
            record.apiVersion = resource.get("apiVersion")

            metadata = resource.get("metadata", {})
            record.resourceVersion = metadata.get("resourceVersion")
            record.resourceName = metadata.get("name")
            record.namespace = metadata.get("namespace")

        return super().format(record)
