"""HTTP features and the employee notification producer."""
