"""
wtdev - per-worktree dev server ports and a shared Inngest dev server

Assigns every git worktree of a repository a stable, collision-free port from
a configured pool and coordinates one system-wide Inngest dev server that all
worktrees share.
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
