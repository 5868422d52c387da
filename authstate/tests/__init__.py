"""Tests for :mod:`authstate`."""
