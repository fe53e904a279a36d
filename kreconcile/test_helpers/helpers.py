"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from unittest import mock
import copy
import inspect
import os

# First Party
import alog

# Local
from kreconcile.config import library_config as config_detail_dict
from kreconcile.exceptions import ClusterError
from kreconcile.resource import ResourceList
from kreconcile.transport.dry_run_transport import DryRunTransport

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_NAMESPACE = "test"
SOME_OTHER_NAMESPACE = "somewhere"

## Sample Resources ############################################################


def make_configmap(name="test-cm", data=None, namespace=TEST_NAMESPACE, **kwargs):
    resource = copy.deepcopy(kwargs)
    resource.setdefault("apiVersion", "v1")
    resource.setdefault("kind", "ConfigMap")
    resource.setdefault("metadata", {}).update({"name": name, "namespace": namespace})
    resource["data"] = data if data is not None else {"key": "value"}
    return resource


def make_deployment(name="test-deploy", containers=None, namespace=TEST_NAMESPACE):
    containers = (
        containers
        if containers is not None
        else [{"name": "main", "image": "main:1"}]
    )
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"app": name}},
            "template": {
                "metadata": {"labels": {"app": name}},
                "spec": {"containers": copy.deepcopy(containers)},
            },
        },
    }


def make_job(name="test-job", conditions=None, namespace=TEST_NAMESPACE, **status):
    job = {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "template": {
                "spec": {
                    "containers": [{"name": "job", "image": "job:1"}],
                    "restartPolicy": "Never",
                }
            }
        },
    }
    if conditions is not None or status:
        job["status"] = dict(status)
        if conditions is not None:
            job["status"]["conditions"] = conditions
    return job


def make_pod(name="test-pod", phase=None, namespace=TEST_NAMESPACE):
    pod = {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"containers": [{"name": "main", "image": "main:1"}]},
    }
    if phase is not None:
        pod["status"] = {"phase": phase}
    return pod


def make_widget(name="test-widget", spec=None, namespace=TEST_NAMESPACE):
    """A custom resource that no scheme knows about"""
    return {
        "apiVersion": "foo.bar.com/v1",
        "kind": "Widget",
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec if spec is not None else {"size": 1, "colors": ["red"]},
    }


def make_crd(name="widgets.foo.bar.com", versions=None):
    versions = versions or ["v1"]
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": name},
        "spec": {
            "group": "foo.bar.com",
            "names": {"kind": "Widget", "plural": "widgets"},
            "scope": "Namespaced",
            "versions": [
                {"name": version, "served": True, "storage": idx == 0}
                for idx, version in enumerate(versions)
            ],
        },
    }


def resource_list(*definitions) -> ResourceList:
    return ResourceList.from_definitions(copy.deepcopy(list(definitions)))


## Config ######################################################################


@contextmanager
def library_config(**config_overrides):
    """This context manager sets library config values temporarily and reverts
    them on completion
    """
    # Override the configs and hang onto the old values
    old_vals = {}
    for key, val in config_overrides.items():
        if key in config_detail_dict:
            old_vals[key] = config_detail_dict[key]
        config_detail_dict[key] = val

    # Yield to the context
    try:
        yield
    finally:
        # Revert to the old values
        for key in config_overrides:
            if key in old_vals:
                config_detail_dict[key] = old_vals[key]
            else:
                del config_detail_dict[key]


## Failure Injection ###########################################################


def get_failable_method(fail_flag, method, failure_exception=ClusterError):
    """Wrap a method so that it fails according to the fail_flag

    Args:
        fail_flag:  Any
            An exception (class or instance) to raise, a callable to call
            before passing through (a non-None return is returned instead),
            "assert" to raise an AssertionError, or any other truthy value to
            raise failure_exception
        method:  Callable
            The method to pass through to
        failure_exception:  Type[Exception]
            The exception raised for a plain truthy fail_flag
    """
    log.debug4(
        "Setting up failable mock of [%s] with fail flag: %s", str(method), fail_flag
    )

    def failable_method(*args, **kwargs):
        log.debug4(
            "Running failable mock of [%s] with fail flag: %s", str(method), fail_flag
        )
        if isinstance(fail_flag, Exception) or (
            inspect.isclass(fail_flag) and issubclass(fail_flag, Exception)
        ):
            log.debug4("Raising in failable mock")
            raise fail_flag
        if callable(fail_flag):
            log.debug4("Calling callable fail flag")
            res = fail_flag()
            if res is not None:
                return res
        elif fail_flag == "assert":
            log.debug4("Asserting in failable mock")
            raise AssertionError(f"You told me to fail {method}!")
        elif fail_flag:
            log.debug4("Raising %s", failure_exception)
            raise failure_exception(f"Mock failure of {method}")
        log.debug4("Passing through (%s, **%s)", args, kwargs)
        res = method(*args, **kwargs)
        log.debug4("Passthrough res: %s", res)
        return res

    return failable_method


class FailOnce:
    """Helper callable that will fail once on the N'th call"""

    def __init__(self, fail_val, fail_number=1):
        self.call_count = 0
        self.fail_number = fail_number
        self.fail_val = fail_val

    def __call__(self, *_, **__):
        self.call_count += 1
        if self.call_count == self.fail_number:
            log.debug("Failing on call %d with %s", self.call_count, self.fail_val)
            if isinstance(self.fail_val, type) and issubclass(self.fail_val, Exception):
                raise self.fail_val("Raising!")
            return self.fail_val
        log.debug("Not failing on call %d", self.call_count)
        return None


class MockTransport(DryRunTransport):
    """The MockTransport wraps a standard DryRunTransport and adds
    configuration options to simulate failures in each of its operations.
    Every operation is a mock.Mock so calls can be inspected.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        resources=None,
        get_fail=False,
        create_fail=False,
        patch_fail=False,
        delete_fail=False,
        watch_fail=False,
        replace_status_fail=False,
        reachable=True,
        **kwargs,
    ):
        super().__init__(resources, **kwargs)
        self.get_fail = get_fail
        self.create_fail = create_fail
        self.patch_fail = patch_fail
        self.delete_fail = delete_fail
        self.watch_fail = watch_fail
        self.replace_status_fail = replace_status_fail
        self.reachable = reachable
        self.enable_mocks()

    #######################
    ## Helpers for Tests ##
    #######################

    def enable_mocks(self):
        """Turn the mocks on"""
        self.get_object = mock.Mock(
            side_effect=get_failable_method(self.get_fail, super().get_object)
        )
        self.create_object = mock.Mock(
            side_effect=get_failable_method(self.create_fail, super().create_object)
        )
        self.patch_object = mock.Mock(
            side_effect=get_failable_method(self.patch_fail, super().patch_object)
        )
        self.delete_object = mock.Mock(
            side_effect=get_failable_method(self.delete_fail, super().delete_object)
        )
        self.watch_objects = mock.Mock(
            side_effect=get_failable_method(self.watch_fail, super().watch_objects)
        )
        self.replace_status = mock.Mock(
            side_effect=get_failable_method(
                self.replace_status_fail, super().replace_status
            )
        )
        self.is_reachable = mock.Mock(return_value=self.reachable)

    def get_obj(self, kind, name, namespace=None, api_version=None):
        """Look up an object without going through the mocks"""
        content = self._lookup(kind, name, namespace, api_version)
        return copy.deepcopy(content) if content is not None else None

    def has_obj(self, *args, **kwargs):
        return self.get_obj(*args, **kwargs) is not None
