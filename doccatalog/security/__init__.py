"""doccatalog Security — role-based visibility rules."""
