"""
certchain - certificate NFT issuance and verification service.

Issues academic/professional certificates as non-transferable NFTs on an
EVM chain and answers authenticity queries against the same chain state.
"""

__version__ = "0.1.0"
