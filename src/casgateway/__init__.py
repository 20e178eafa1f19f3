"""Content-addressed storage gateway in front of an IPFS node."""
