"""Core building blocks for wtdev (ports, processes, worktrees, services)."""
