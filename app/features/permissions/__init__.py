"""
Permission management feature module.

Resolves every permission check through three layers: per-user overrides,
role-level overrides, and compiled-in role defaults.
"""
