"""
WORKSPACE MODULE
================

Agent-editable workspace files and system prompt assembly.
"""

from .files import (
    Visibility,
    WorkspaceFile,
    WorkspaceFileCache,
    CachedFile,
    Workspace,
    WORKSPACE_FILES,
    WORKSPACE_FILE_NAMES,
    MEMORY_FILE,
    NOTES_DIR,
    note_name,
)
from .assembler import ContextAssembler, SECTION_DIVIDER, truncate_middle

__all__ = [
    'Visibility',
    'WorkspaceFile',
    'WorkspaceFileCache',
    'CachedFile',
    'Workspace',
    'WORKSPACE_FILES',
    'WORKSPACE_FILE_NAMES',
    'MEMORY_FILE',
    'NOTES_DIR',
    'note_name',
    'ContextAssembler',
    'SECTION_DIVIDER',
    'truncate_middle',
]
