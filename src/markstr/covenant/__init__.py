"""Covenant construction: CTV template hashes, leaf scripts, Taproot tree."""
