"""Client-side document workflow actions."""
