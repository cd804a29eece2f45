# Overview: Permission names and default role grants for the form workflow.

"""
Permission definitions.

Names follow "<action> <module>", where module is the document type's
human name (see services/document_types.py). The gate compares names
verbatim, so these strings are the contract.
"""

PERMISSION_ACTIONS = ("read", "create", "update", "delete", "approve")

PERMISSION_MODULES = {
    "stock correction": "INVENTORY",
    "sales invoice": "SALES",
}

PERMISSION_DEFINITIONS = [
    (f"{action} {module}", category)
    for module, category in PERMISSION_MODULES.items()
    for action in PERMISSION_ACTIONS
]

DEFAULT_ROLE_PERMISSIONS = {
    "warehouse staff": [
        "read stock correction",
        "create stock correction",
        "update stock correction",
        "delete stock correction",
    ],
    "sales staff": [
        "read sales invoice",
        "create sales invoice",
        "update sales invoice",
        "delete sales invoice",
    ],
    "manager": [name for name, _ in PERMISSION_DEFINITIONS],
}


def get_all_permission_names() -> list[str]:
    return [name for name, _ in PERMISSION_DEFINITIONS]
