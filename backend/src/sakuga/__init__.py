"""Sakuga image generation backend."""
