"""
esync-audit: ACL consistency audit between a system-of-record and its search index.

A batch of independent checkers compares documents, ACLs and cardinalities
from both sides and reports every divergence as a finding on a thread-safe
event sink. Importing the package has no side effects: no config loading and
no logging setup.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
