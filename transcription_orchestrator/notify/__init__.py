"""Outbound job status notifications."""
