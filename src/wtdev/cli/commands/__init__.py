"""wtdev subcommands (auto-discovered)."""
