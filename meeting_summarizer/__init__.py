"""
Queue-driven worker that turns recorded meetings into structured summaries.
"""
__version__ = "0.1.0"
