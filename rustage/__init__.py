"""Stability-aware symbol resolution for expanded Rust sources."""
