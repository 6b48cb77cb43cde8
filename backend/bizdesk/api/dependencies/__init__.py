"""FastAPI dependencies shared by route modules."""
