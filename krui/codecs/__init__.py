"""Payload codecs for the Moonraker JSON-RPC link."""
