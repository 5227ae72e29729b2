"""
Identity Service package for the Campus Access Layer.

Owns the three role partitions (admins, teachers, students) and decides
which one a signed-in user belongs to. It provides:

- app.main: API surface for reconciliation, profile mutations, the user
  directory and peer lookup.
- app.profiles: Profile models, the reconciler and role-dispatched
  profile operations.
- app.persistence: PostgreSQL storage, one JSONB table per partition.

Guidelines:
- A uid lives in exactly one partition; precedence resolves violations.
- Never assume a role when the partitions could not be read.
"""
