"""Rollcall FastAPI application."""
