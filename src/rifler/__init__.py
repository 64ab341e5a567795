"""
Rifler - fast find-and-replace across a workspace.

Drives ripgrep for searching when it is available and falls back to an
in-process directory walker when it is not, then applies workspace-bounded,
atomic replacements at the returned match locations.
"""

__version__ = "1.4.0"
