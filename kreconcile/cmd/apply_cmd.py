"""
Apply the declared resources to the cluster, creating them on the first apply
and reconciling them against the previously applied resources afterwards
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


class ApplyCmd(CmdBase):
    __doc__ = __doc__

    ## Interface ##

    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        parser = subparsers.add_parser("apply", help=__doc__)
        self.add_manifest_args(parser)
        apply_args = parser.add_argument_group("Apply Arguments")
        apply_args.add_argument(
            "--previous",
            "-p",
            nargs="*",
            default=None,
            help="Manifest file(s) holding the previously applied resources",
        )
        apply_args.add_argument(
            "--force",
            action="store_true",
            default=False,
            help="Recreate resources whose patch is rejected by the server",
        )
        apply_args.add_argument(
            "--wait",
            "-w",
            action="store_true",
            default=False,
            help="Wait for every resource to become ready",
        )
        apply_args.add_argument(
            "--timeout",
            "-t",
            type=float,
            default=None,
            help="Seconds to wait for each resource. Defaults to config based.",
        )
        return parser

    def cmd(self, args: argparse.Namespace) -> int:
        """Run the create or update and optionally wait for readiness"""
        client = Client(namespace=args.namespace)
        try:
            client.is_reachable()
            desired = self.load_resources(client, args.filename)
            if args.previous:
                current = self.load_resources(client, args.previous)
                result = client.update(current, desired, force=args.force)
            else:
                result = client.create(desired)
            log.info(
                "Created: %d, Updated: %d, Deleted: %d",
                len(result.created),
                len(result.updated),
                len(result.deleted),
            )
            if args.wait:
                client.wait(desired, args.timeout)
        except KReconcileError as err:
            log.error("Apply failed: %s", err)
            return 1
        return 0
