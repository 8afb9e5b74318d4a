"""Tournament portal CSV import reconciliation and audit."""
