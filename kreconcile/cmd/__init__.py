"""
This module holds all of the command classes for kreconcile's main entrypoint
"""

# Local
from .apply_cmd import ApplyCmd
from .base import CmdBase
from .delete_cmd import DeleteCmd
