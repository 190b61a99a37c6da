"""SQLAlchemy-backed entity store and retry store."""
