"""Storage backends for the permission cache and the audit log."""
