"""audit/ -- Request audit trail and usage statistics for the admin console."""
