"""Shared utilities used across vaultkit."""
