"""Crawler for the National Specialist Register of Malaysia."""
