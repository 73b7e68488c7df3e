"""Pydantic models of the API request bodies and error responses."""
