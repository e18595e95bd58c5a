"""Domain services; each takes the caller's Session and leaves the transaction boundary documented."""
