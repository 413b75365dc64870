"""prcontext: codebase context and diff anchoring for AI pull-request reviews."""

__version__ = "0.1.0"
