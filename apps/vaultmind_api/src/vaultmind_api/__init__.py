"""VaultMind HTTP surface."""
