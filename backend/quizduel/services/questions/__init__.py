"""Question content supplied by the external text-generation service."""
