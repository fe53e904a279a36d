"""
Base class for all kreconcile commands
"""

# Standard
from typing import List
import abc
import argparse

# First Party
import alog

# Local
from ..client import Client
from ..resource import ResourceList

log = alog.use_channel("MAIN")


class CmdBase(abc.ABC):
    __doc__ = __doc__

    @abc.abstractmethod
    def add_subparser(
        self,
        subparsers: argparse._SubParsersAction,
    ) -> argparse.ArgumentParser:
        """Add this command's argument parser subcommand

        Args:
            subparsers (argparse._SubParsersAction): The subparser section for
                the central main parser

        Returns:
            subparser (argparse.ArgumentParser): The configured parser for this
                command
        """

    @abc.abstractmethod
    def cmd(self, args: argparse.Namespace) -> int:
        """Execute the command with the parsed arguments

        Args:
            args (argparse.Namespace): The parsed command line arguments

        Returns:
            exit_code (int): The exit code of the process
        """

    ## Shared Helpers ##

    @staticmethod
    def add_manifest_args(parser: argparse.ArgumentParser) -> argparse._ArgumentGroup:
        """Add the arguments shared by all commands that read manifests"""
        manifest_args = parser.add_argument_group("Manifest Arguments")
        manifest_args.add_argument(
            "--filename",
            "-f",
            nargs="+",
            required=True,
            help="Manifest file(s) holding the declared resources",
        )
        manifest_args.add_argument(
            "--namespace",
            "-n",
            default=None,
            help="Namespace for resources that do not declare one",
        )
        return manifest_args

    @staticmethod
    def load_resources(client: Client, paths: List[str]) -> ResourceList:
        """Read every manifest file into a single ResourceList in the order
        the files were given
        """
        handles = []
        for path in paths:
            log.debug("Reading manifests from %s", path)
            with open(path, encoding="utf-8") as manifest_file:
                handles.extend(client.build(manifest_file.read(), path))
        return ResourceList(handles)
