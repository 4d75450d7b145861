"""Signed data feed server with OEV auctions."""
