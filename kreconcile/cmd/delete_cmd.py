"""
Delete the declared resources from the cluster
"""
# Standard
import argparse

# First Party
import alog

# Local
from ..client import Client
from ..exceptions import KReconcileError
from .base import CmdBase

log = alog.use_channel("MAIN")


class DeleteCmd(CmdBase):
    __doc__ = __doc__

    ## Interface ##

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        parser = subparsers.add_parser("delete", help=__doc__)
        self.add_manifest_args(parser)
        return parser

    def cmd(self, args: argparse.Namespace) -> int:
        """Delete every resource, reporting all failures at the end"""
        client = Client(namespace=args.namespace)
        try:
            client.is_reachable()
            resources = self.load_resources(client, args.filename)
        except KReconcileError as err:
            log.error("Delete failed: %s", err)
            return 1

        result, errors = client.delete(resources)
        log.info("Deleted: %d", len(result.deleted))
        for err in errors:
            log.error("Delete failed: %s", err)
        return 1 if errors else 0
