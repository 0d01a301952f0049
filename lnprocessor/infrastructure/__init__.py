"""Infrastructure adapters: BOLT-11 codec and ledger persistence."""
