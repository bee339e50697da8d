"""End-to-end consistency checks against a running (or in-process) agent."""
