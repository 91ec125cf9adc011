"""Inbound interfaces for dynaproxy."""
