"""Rule set documents bundled with the package."""
