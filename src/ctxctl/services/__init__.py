"""Service layer: resolution engine and ServiceResult-returning services."""
