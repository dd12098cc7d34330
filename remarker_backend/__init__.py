"""Remarker discourse backend."""
