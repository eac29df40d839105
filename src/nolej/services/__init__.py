"""Bridge services: status tracking, webhooks, package import, workflow."""
