"""Directory service (Samba AD) adapter."""

from fsmo_orchestrator.directory.samba import (
    DirectoryService,
    SambaDirectoryClient,
    parse_computer_list,
    parse_fsmo_show,
)

__all__ = [
    "DirectoryService",
    "SambaDirectoryClient",
    "parse_computer_list",
    "parse_fsmo_show",
]
