"""VaultMind core: tool loop, security screening and scoped tool access."""
