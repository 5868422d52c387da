"""Tests for :mod:`authstate.services.profiles`."""
