"""Certificate issuance and verification services."""
