"""Services around the engine: audit chain, policy packs, persistence."""
