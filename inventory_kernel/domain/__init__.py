"""Pure domain layer: DTOs, status rules and the injectable clock."""
