"""jdmatch: match job descriptions against an LLM-tagged resume corpus."""

__version__ = "0.1.0"
