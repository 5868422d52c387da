"""Tests for :mod:`authstate.services`."""
