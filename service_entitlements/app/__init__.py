"""
Entitlements Service package for the Campus Access Layer.

This package decides whether a user may see a dashboard feature, or a
section within it, from the user's subscription, trial and allow-list
flags. It provides:

- app.main: API surface for entitlement checks, the catalog and health.
- app.access: Flag snapshot model, evaluator and feature catalog.
- app.flags: Read-only Redis view of the per-user flags.

Guidelines:
- Evaluation is pure; all I/O happens before an evaluator is built.
- Missing or malformed flags deny extended access, never raise.
"""
