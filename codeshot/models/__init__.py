"""Domain models shared by the snapshot services."""
