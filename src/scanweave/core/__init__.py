"""Core models, logging, errors and process execution."""
