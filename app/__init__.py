"""Field layout tools service layer."""
