"""Persistence core for the build and record catalog bot."""
