"""Request/result schemas shared by every stage."""
