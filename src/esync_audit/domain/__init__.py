"""
esync-audit — domain layer

Purpose
- Types shared by stores, checkers and reporting: ``Document`` and ACL
  normalization, the path tree, findings, run ids and the error taxonomy.

Non-functional requirements
- No IO and no logging setup; modules import only the standard library,
  ``esync_audit.constants`` and each other.
"""
