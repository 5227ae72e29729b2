"""
Profiles package.

- models: Role partitions, the RoleProfile union and API models.
- reconciler: Login-time owning-partition lookup and bootstrap.
- service: Status, delete, field updates, permissions, enrollment,
  directory and peers.
"""

from .reconciler import IdentityReconciler
from .service import ProfileService

__all__ = ["IdentityReconciler", "ProfileService"]
