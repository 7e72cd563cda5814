"""Cadence — recurring prompt scheduling service."""
