"""ralph-loop: drive a coding agent until every story in prd.json passes."""

__version__ = "0.1.0"
