"""
Workspace permission feature module.

Role-based access control scoped to a workspace: a fixed token vocabulary,
owner roles and an admin override that bypass checks, and an audit trail.
"""
