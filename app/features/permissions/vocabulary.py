"""
Fixed permission vocabulary.

Tokens are workspace-independent. Display labels are what the settings UI
shows next to each toggle.
"""

PERMISSIONS: dict[str, str] = {
    "View wall": "view_wall",
    "View members": "view_members",
    "View Activity History": "view_entire_groups_activity",
    "Post on wall": "post_on_wall",
    "Represent alliance": "represent_alliance",
    "Assign users to Sessions": "sessions_assign",
    "Assign Self to Sessions": "sessions_claim",
    "Host Sessions": "sessions_host",
    "Create Unscheduled": "sessions_unscheduled",
    "Create Scheduled": "sessions_scheduled",
    "Manage sessions": "manage_sessions",
    "Manage activity": "manage_activity",
    "Manage quotas": "manage_quotas",
    "Manage members": "manage_members",
    "Manage docs": "manage_docs",
    "Manage alliances": "manage_alliances",
    "View Live Servers": "view_servers",
    "View Promotions": "view_promotions",
    "Manage Promotions": "manage_promotions",
    "Admin (Manage workspace)": "admin",
}

ALL_PERMISSIONS: tuple[str, ...] = tuple(PERMISSIONS.values())

VIEW_PROMOTIONS = "view_promotions"
MANAGE_PROMOTIONS = "manage_promotions"
ADMIN = "admin"


def unknown_tokens(tokens) -> list[str]:
    """Return the tokens that are not part of the vocabulary, in input order."""
    known = set(ALL_PERMISSIONS)
    return [token for token in tokens if token not in known]
