"""Certificate module: issuance worker, lookups and verification."""
