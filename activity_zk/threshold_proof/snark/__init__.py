"""Groth16 backend and circuit artifact handling."""
