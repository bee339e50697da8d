"""Business operations behind paid entrypoints."""
