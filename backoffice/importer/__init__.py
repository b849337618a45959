"""Registration import, normalization and reconciliation tooling."""
